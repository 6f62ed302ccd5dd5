"""Round-robin key selection.

Starting right after the cursor, probe each pool position at most once
(wrapping) and take the first secret still under its daily ceiling. The
result is deterministic for a given snapshot; with no secret at its ceiling,
consecutive selections visit the pool in order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from app.core.pool import PooledSecret, SecretPool


@dataclass(frozen=True, slots=True)
class Selection:
    secret: PooledSecret
    hits: int  # current-day hits before this dispense

    @property
    def index(self) -> int:
        """Cursor value to store: the selected position, not the last probed one."""
        return self.secret.index


def select_secret(
    pool: SecretPool,
    hits_by_secret: Mapping[str, int],
    last_index: int,
    ceiling: int,
) -> Optional[Selection]:
    """Returns None when every secret is at its ceiling (pool exhausted)."""
    size = len(pool)
    start = (last_index + 1) % size
    for offset in range(size):
        candidate = pool[(start + offset) % size]
        hits = hits_by_secret.get(candidate.secret_id, 0)
        if hits < ceiling:
            return Selection(secret=candidate, hits=hits)
    return None

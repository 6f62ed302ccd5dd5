"""Secret pool: the fixed, ordered set of upstream keys available for rotation."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Iterator, Sequence


def secret_fingerprint(secret: str) -> str:
    """Stable, non-reversible identifier used as the ledger key for a secret."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()[:32]


@dataclass(frozen=True, slots=True)
class PooledSecret:
    index: int
    secret_id: str
    value: str = ""

    def __repr__(self) -> str:
        # Never render the upstream key.
        return f"PooledSecret(index={self.index}, secret_id={self.secret_id!r})"


class SecretPool:
    """Immutable ordered pool. Order determines the rotation sequence."""

    def __init__(self, secrets: Sequence[str]) -> None:
        if not secrets:
            raise ValueError("Secret pool must contain at least one secret.")
        entries: list[PooledSecret] = []
        seen: set[str] = set()
        for i, value in enumerate(secrets):
            if not isinstance(value, str) or not value:
                raise ValueError(f"Secret at position {i} must be a non-empty string.")
            sid = secret_fingerprint(value)
            if sid in seen:
                raise ValueError(f"Secret at position {i} duplicates an earlier entry.")
            seen.add(sid)
            entries.append(PooledSecret(index=i, secret_id=sid, value=value))
        self._entries: tuple[PooledSecret, ...] = tuple(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PooledSecret]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> PooledSecret:
        return self._entries[index]

    @property
    def secret_ids(self) -> list[str]:
        return [e.secret_id for e in self._entries]

    def __repr__(self) -> str:
        return f"SecretPool(size={len(self._entries)})"

"""In-process quota ledger.

Same guarded-update semantics as the SQL store, evaluated under one lock.
Suitable for single-process deployments and tests; not shared between workers.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

from app.core.errors import IdentityQuotaExceeded, SecretCeilingConflict, StoreInvariantViolation
from app.repositories.ledger import (
    Ceilings,
    CommitResult,
    IdentityUsageDTO,
    LedgerSnapshot,
    ResetSummary,
    UsageReport,
    current_count,
    current_cursor,
)


@dataclass(slots=True)
class _KeyRow:
    hits: int
    day: date


@dataclass(slots=True)
class _IdentityRow:
    daily_uses: int
    lifetime_uses: int
    day: date


@dataclass(slots=True)
class _CursorRow:
    last_index: int
    day: date


class InMemoryLedgerStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: dict[str, _KeyRow] = {}
        self._identities: dict[str, _IdentityRow] = {}
        self._cursor: Optional[_CursorRow] = None

    def initialize(self, today: date) -> None:
        with self._lock:
            if self._cursor is None:
                self._cursor = _CursorRow(last_index=-1, day=today)

    def _cursor_row(self) -> _CursorRow:
        if self._cursor is None:
            raise StoreInvariantViolation("rotation cursor is missing")
        return self._cursor

    def _identity_dto(self, identity_id: str, today: date) -> IdentityUsageDTO:
        row = self._identities.get(identity_id)
        if row is None:
            return IdentityUsageDTO(identity_id=identity_id)
        return IdentityUsageDTO(
            identity_id=identity_id,
            daily_uses=current_count(row.daily_uses, row.day, today),
            lifetime_uses=row.lifetime_uses,
        )

    def _hits(self, secret_ids: Sequence[str], today: date) -> dict[str, int]:
        hits: dict[str, int] = {}
        for sid in secret_ids:
            row = self._keys.get(sid)
            hits[sid] = current_count(row.hits, row.day, today) if row else 0
        return hits

    def load_snapshot(self, identity_id: str, secret_ids: Sequence[str], today: date) -> LedgerSnapshot:
        with self._lock:
            cursor = self._cursor_row()
            return LedgerSnapshot(
                day=today,
                identity=self._identity_dto(identity_id, today),
                hits=self._hits(secret_ids, today),
                last_index=current_cursor(cursor.last_index, cursor.day, today),
            )

    def commit_dispense(
        self,
        *,
        identity_id: str,
        secret_id: str,
        index: int,
        today: date,
        ceilings: Ceilings,
    ) -> CommitResult:
        with self._lock:
            cursor = self._cursor_row()

            ident = self._identities.get(identity_id) or _IdentityRow(0, 0, today)
            ident_stale = ident.day < today
            if ident.lifetime_uses >= ceilings.identity_lifetime:
                raise IdentityQuotaExceeded("lifetime")
            if not ident_stale and ident.daily_uses >= ceilings.identity_daily:
                raise IdentityQuotaExceeded("daily")

            key = self._keys.get(secret_id) or _KeyRow(0, today)
            key_stale = key.day < today
            if not key_stale and key.hits >= ceilings.secret_daily:
                raise SecretCeilingConflict(secret_id)

            # All guards passed; apply the three writes together.
            new_ident = _IdentityRow(
                daily_uses=1 if ident_stale else ident.daily_uses + 1,
                lifetime_uses=ident.lifetime_uses + 1,
                day=today if ident_stale else ident.day,
            )
            new_key = _KeyRow(hits=1 if key_stale else key.hits + 1, day=today if key_stale else key.day)
            self._identities[identity_id] = new_ident
            self._keys[secret_id] = new_key
            cursor.last_index = index
            if cursor.day < today:
                cursor.day = today

            return CommitResult(
                secret_id=secret_id,
                hits=new_key.hits,
                daily_uses=new_ident.daily_uses,
                lifetime_uses=new_ident.lifetime_uses,
                cursor_index=index,
            )

    def reset_daily(self, today: date) -> ResetSummary:
        with self._lock:
            cursor = self._cursor_row()
            keys_reset = 0
            for row in self._keys.values():
                if row.day < today:
                    row.hits, row.day = 0, today
                    keys_reset += 1
            identities_reset = 0
            for ident in self._identities.values():
                if ident.day < today:
                    ident.daily_uses, ident.day = 0, today
                    identities_reset += 1
            cursor_reset = cursor.day < today
            if cursor_reset:
                cursor.last_index, cursor.day = -1, today
            return ResetSummary(
                day=today, keys_reset=keys_reset, identities_reset=identities_reset, cursor_reset=cursor_reset
            )

    def register_identity(self, identity_id: str, today: date) -> bool:
        with self._lock:
            if identity_id in self._identities:
                return False
            self._identities[identity_id] = _IdentityRow(0, 0, today)
            return True

    def get_identity_usage(self, identity_id: str, today: date) -> IdentityUsageDTO:
        with self._lock:
            return self._identity_dto(identity_id, today)

    def usage_report(self, secret_ids: Sequence[str], today: date) -> UsageReport:
        with self._lock:
            cursor = self._cursor_row()
            active = sum(
                1 for r in self._identities.values() if current_count(r.daily_uses, r.day, today) > 0
            )
            return UsageReport(
                day=today,
                hits=self._hits(secret_ids, today),
                last_index=current_cursor(cursor.last_index, cursor.day, today),
                identities_active=active,
            )

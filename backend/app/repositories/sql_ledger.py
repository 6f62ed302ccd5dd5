"""SQL-backed quota ledger (PostgreSQL in deployment, SQLite locally).

Atomicity model:
- Counters are only ever changed by single guarded UPDATE statements of the form
  `SET n = n + 1 WHERE (day < :today OR n < :ceiling)`. The database evaluates
  the guard against the row it is about to write (PostgreSQL re-checks it after
  waiting on a concurrent writer's row lock; SQLite serialises writers), so two
  requests holding the same stale snapshot cannot both pass it.
- Each dispense touches identity, then key, then cursor inside one transaction.
  The fixed lock order keeps concurrent dispenses deadlock-free.
- Day rollover is applied in the same statements (lazy reset); a row stamped
  with a later day than the caller's is treated as current and never moved back.
"""

from __future__ import annotations

from datetime import date
from typing import Sequence

from sqlalchemy import Date, case, func, literal, or_, select, update
from sqlalchemy.orm import Session

from app.core.base import Base
from app.core.errors import IdentityQuotaExceeded, SecretCeilingConflict, StoreInvariantViolation
from app.models import CURSOR_ROW_ID, IdentityUsage, KeyUsage, RotationState
from app.repositories.base import BaseRepository
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


key_usage = KeyUsage.__table__
identity_usage = IdentityUsage.__table__
rotation_state = RotationState.__table__


def _day(today: date):
    return literal(today, type_=Date())


def snapshot_execution_options(dialect_name: str) -> dict[str, str]:
    """Isolation for the snapshot read: its three SELECTs must see one database state.

    PostgreSQL defaults to READ COMMITTED (a fresh snapshot per statement).
    SQLite has no such option; pysqlite runs reads outside a transaction and
    fairness there rests on serialised writers.
    """
    if dialect_name == "postgresql":
        return {"isolation_level": "REPEATABLE READ"}
    return {}


class SqlLedgerStore(BaseRepository):
    """`LedgerStore` over SQLAlchemy Core statements."""

    def create_schema(self) -> None:
        """Create tables directly (local SQLite runs and tests). Deployments use Alembic."""
        with self._translate_errors("create_schema", keys=["*"], day=None):
            Base.metadata.create_all(self.engine)

    def initialize(self, today: date) -> None:
        with self._transaction("initialize", keys=["rotation_state"], day=today) as s:
            self._insert_ignore(
                s,
                rotation_state,
                {"id": CURSOR_ROW_ID, "last_index": -1, "day": today},
                ["id"],
            )

    def _read_cursor(self, s: Session, today: date) -> int:
        row = s.execute(
            select(rotation_state.c.last_index, rotation_state.c.day).where(rotation_state.c.id == CURSOR_ROW_ID)
        ).first()
        if row is None:
            raise StoreInvariantViolation("rotation_state singleton is missing")
        if row.last_index < -1:
            raise StoreInvariantViolation(f"rotation_state.last_index is corrupt ({row.last_index})")
        return current_cursor(row.last_index, row.day, today)

    def _read_identity(self, s: Session, identity_id: str, today: date) -> IdentityUsageDTO:
        row = s.execute(
            select(identity_usage.c.daily_uses, identity_usage.c.lifetime_uses, identity_usage.c.day).where(
                identity_usage.c.identity_id == identity_id
            )
        ).first()
        if row is None:
            return IdentityUsageDTO(identity_id=identity_id)
        return IdentityUsageDTO(
            identity_id=identity_id,
            daily_uses=current_count(row.daily_uses, row.day, today),
            lifetime_uses=row.lifetime_uses,
        )

    def _read_hits(self, s: Session, secret_ids: Sequence[str], today: date) -> dict[str, int]:
        hits = {sid: 0 for sid in secret_ids}
        if not secret_ids:
            return hits
        rows = s.execute(
            select(key_usage.c.secret_id, key_usage.c.hits, key_usage.c.day).where(
                key_usage.c.secret_id.in_(list(secret_ids))
            )
        ).all()
        for r in rows:
            hits[r.secret_id] = current_count(r.hits, r.day, today)
        return hits

    def load_snapshot(self, identity_id: str, secret_ids: Sequence[str], today: date) -> LedgerSnapshot:
        with self._transaction("load_snapshot", keys=[identity_id, *secret_ids], day=today) as s:
            options = snapshot_execution_options(self.engine.dialect.name)
            if options:
                s.connection(execution_options=options)
            last_index = self._read_cursor(s, today)
            identity = self._read_identity(s, identity_id, today)
            hits = self._read_hits(s, secret_ids, today)
        return LedgerSnapshot(day=today, identity=identity, hits=hits, last_index=last_index)

    def commit_dispense(
        self,
        *,
        identity_id: str,
        secret_id: str,
        index: int,
        today: date,
        ceilings: Ceilings,
    ) -> CommitResult:
        with self._transaction("commit_dispense", keys=[identity_id, secret_id], day=today) as s:
            self._insert_ignore(
                s,
                identity_usage,
                {"identity_id": identity_id, "daily_uses": 0, "lifetime_uses": 0, "day": today},
                ["identity_id"],
            )
            self._insert_ignore(s, key_usage, {"secret_id": secret_id, "hits": 0, "day": today}, ["secret_id"])

            stale = identity_usage.c.day < _day(today)
            res = s.execute(
                update(identity_usage)
                .where(identity_usage.c.identity_id == identity_id)
                .where(identity_usage.c.lifetime_uses < ceilings.identity_lifetime)
                .where(or_(stale, identity_usage.c.daily_uses < ceilings.identity_daily))
                .values(
                    daily_uses=case((stale, 1), else_=identity_usage.c.daily_uses + 1),
                    lifetime_uses=identity_usage.c.lifetime_uses + 1,
                    day=case((stale, _day(today)), else_=identity_usage.c.day),
                )
            )
            if res.rowcount != 1:
                usage = self._read_identity(s, identity_id, today)
                raise IdentityQuotaExceeded(
                    "lifetime" if usage.lifetime_uses >= ceilings.identity_lifetime else "daily"
                )

            stale = key_usage.c.day < _day(today)
            res = s.execute(
                update(key_usage)
                .where(key_usage.c.secret_id == secret_id)
                .where(or_(stale, key_usage.c.hits < ceilings.secret_daily))
                .values(
                    hits=case((stale, 1), else_=key_usage.c.hits + 1),
                    day=case((stale, _day(today)), else_=key_usage.c.day),
                )
            )
            if res.rowcount != 1:
                raise SecretCeilingConflict(secret_id)

            stale = rotation_state.c.day < _day(today)
            res = s.execute(
                update(rotation_state)
                .where(rotation_state.c.id == CURSOR_ROW_ID)
                .values(
                    last_index=index,
                    day=case((stale, _day(today)), else_=rotation_state.c.day),
                )
            )
            if res.rowcount != 1:
                raise StoreInvariantViolation("rotation_state singleton is missing")

            identity = self._read_identity(s, identity_id, today)
            hits = self._read_hits(s, [secret_id], today)[secret_id]

        return CommitResult(
            secret_id=secret_id,
            hits=hits,
            daily_uses=identity.daily_uses,
            lifetime_uses=identity.lifetime_uses,
            cursor_index=index,
        )

    def reset_daily(self, today: date) -> ResetSummary:
        with self._transaction("reset_daily", keys=["*"], day=today) as s:
            self._read_cursor(s, today)
            keys_reset = s.execute(
                update(key_usage).where(key_usage.c.day < _day(today)).values(hits=0, day=today)
            ).rowcount
            identities_reset = s.execute(
                update(identity_usage)
                .where(identity_usage.c.day < _day(today))
                .values(daily_uses=0, day=today)
            ).rowcount
            cursor_reset = s.execute(
                update(rotation_state)
                .where(rotation_state.c.id == CURSOR_ROW_ID)
                .where(rotation_state.c.day < _day(today))
                .values(last_index=-1, day=today)
            ).rowcount
        return ResetSummary(
            day=today,
            keys_reset=int(keys_reset or 0),
            identities_reset=int(identities_reset or 0),
            cursor_reset=bool(cursor_reset),
        )

    def register_identity(self, identity_id: str, today: date) -> bool:
        with self._transaction("register_identity", keys=[identity_id], day=today) as s:
            created = self._insert_ignore(
                s,
                identity_usage,
                {"identity_id": identity_id, "daily_uses": 0, "lifetime_uses": 0, "day": today},
                ["identity_id"],
            )
        return created == 1

    def get_identity_usage(self, identity_id: str, today: date) -> IdentityUsageDTO:
        with self._transaction("get_identity_usage", keys=[identity_id], day=today) as s:
            return self._read_identity(s, identity_id, today)

    def usage_report(self, secret_ids: Sequence[str], today: date) -> UsageReport:
        with self._transaction("usage_report", keys=list(secret_ids), day=today) as s:
            last_index = self._read_cursor(s, today)
            hits = self._read_hits(s, secret_ids, today)
            active = s.execute(
                select(func.count())
                .select_from(identity_usage)
                .where(identity_usage.c.day >= _day(today))
                .where(identity_usage.c.daily_uses > 0)
            ).scalar_one()
        return UsageReport(day=today, hits=hits, last_index=last_index, identities_active=int(active))

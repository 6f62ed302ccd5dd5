"""Repository base.

Ledger rationale:
- Repositories are the only layer permitted to touch the database.
- Every operation runs in exactly one transaction; any exception inside it
  rolls the whole transaction back, so no sub-write is ever observed alone.
- Driver and I/O errors are logged with the operation, the keys touched and
  the ledger day, then translated into the store error taxonomy. Callers never
  see SQLAlchemy exceptions.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import date
from typing import Any, Optional

from sqlalchemy import Table
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.db import make_session_factory
from app.core.errors import StoreInvariantViolation, StoreUnavailable


logger = logging.getLogger("keyrelay.store")


def _log(event: dict[str, Any]) -> None:
    logger.error(json.dumps(event, ensure_ascii=False, default=str))


class BaseRepository:
    """Transactional helpers shared by SQL-backed repositories."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory: sessionmaker[Session] = make_session_factory(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def _transaction(self, operation: str, *, keys: Sequence[str], day: date) -> Iterator[Session]:
        with self._translate_errors(operation, keys=keys, day=day):
            with self._session_factory() as session, session.begin():
                yield session

    @contextmanager
    def _translate_errors(self, operation: str, *, keys: Sequence[str], day: Optional[date]) -> Iterator[None]:
        """Log driver failures with their context and re-raise them as store errors."""
        try:
            yield
        except StoreInvariantViolation as e:
            _log(
                {
                    "event": "store_invariant_violation",
                    "operation": operation,
                    "keys": list(keys),
                    "day": day.isoformat() if day else None,
                    "detail": str(e),
                }
            )
            raise
        except (IntegrityError, DataError) as e:
            _log(
                {
                    "event": "store_invariant_violation",
                    "operation": operation,
                    "keys": list(keys),
                    "day": day.isoformat() if day else None,
                    "error_type": type(e).__name__,
                }
            )
            raise StoreInvariantViolation(f"{operation}: corrupt or conflicting record") from e
        except SQLAlchemyError as e:
            _log(
                {
                    "event": "store_error",
                    "operation": operation,
                    "keys": list(keys),
                    "day": day.isoformat() if day else None,
                    "error_type": type(e).__name__,
                }
            )
            raise StoreUnavailable(f"{operation} failed") from e

    def _insert_ignore(
        self, session: Session, table: Table, values: dict[str, Any], index_elements: list[str]
    ) -> int:
        """INSERT ... ON CONFLICT DO NOTHING; returns the number of rows created."""
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(table).values(**values).on_conflict_do_nothing(index_elements=index_elements)
        elif dialect == "sqlite":
            stmt = sqlite_insert(table).values(**values).on_conflict_do_nothing(index_elements=index_elements)
        else:
            raise StoreInvariantViolation(f"Unsupported ledger database dialect: {dialect}")
        return int(session.execute(stmt).rowcount or 0)

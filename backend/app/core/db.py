"""Database engine and session factory (SQLAlchemy 2.0).

Supported backends:
- PostgreSQL (`postgresql+psycopg://...`) for deployments.
- SQLite for local runs and tests.

The store is the only shared mutable resource; the statement timeout bounds
every ledger call so a stuck database surfaces as a failed request rather
than a hung worker.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


def _connect_args(url: str, timeout_seconds: int) -> dict[str, Any]:
    if url.startswith("postgresql"):
        return {
            "connect_timeout": timeout_seconds,
            "options": f"-c statement_timeout={timeout_seconds * 1000}",
        }
    if url.startswith("sqlite"):
        return {"timeout": timeout_seconds, "check_same_thread": False}
    return {}


def _is_sqlite_memory(url: str) -> bool:
    u = make_url(url)
    return u.get_backend_name() == "sqlite" and u.database in (None, "", ":memory:")


def create_db_engine(url: str, *, timeout_seconds: int = 5) -> Engine:
    kwargs: dict[str, Any] = {
        "pool_pre_ping": True,
        "future": True,
        "connect_args": _connect_args(url, timeout_seconds),
    }
    if _is_sqlite_memory(url):
        # One shared connection, otherwise every checkout sees an empty database.
        kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False)

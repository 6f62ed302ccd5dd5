from __future__ import annotations

import base64
import hashlib
import hmac
import sys
from datetime import date
from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy.engine import Engine


ROOT = Path(__file__).resolve().parents[2]

# Ensure `backend/app` is importable as top-level `app` for tests.
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app.core.clock import FixedClock  # noqa: E402
from app.core.config import Settings  # noqa: E402
from app.core.db import create_db_engine  # noqa: E402
from app.core.pool import SecretPool  # noqa: E402
from app.repositories.memory_ledger import InMemoryLedgerStore  # noqa: E402
from app.repositories.sql_ledger import SqlLedgerStore  # noqa: E402
from app.services.quota_enforcer import QuotaEnforcer  # noqa: E402


TODAY = date(2026, 3, 14)
PSK = "test-psk"
ADMIN_SECRET = "test-admin-secret"
POOL = ["sk-alpha", "sk-bravo", "sk-charlie"]


def make_settings(**overrides) -> Settings:
    values = {
        "psk": PSK,
        "admin_secret": ADMIN_SECRET,
        "pool": SecretPool(overrides.pop("secrets", POOL)),
        "database_url": "sqlite+pysqlite://",
    }
    values.update(overrides)
    return Settings(**values)


def make_proof(identity_id: str, secret: str = PSK) -> str:
    """Client-side proof generator (mirrors what devices compute)."""
    digest = hmac.new(secret.encode("utf-8"), identity_id.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def make_enforcer(settings: Settings, store, clock) -> QuotaEnforcer:
    return QuotaEnforcer.from_settings(settings, store=store, clock=clock)


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(TODAY)


@pytest.fixture()
def memory_store(clock: FixedClock) -> InMemoryLedgerStore:
    store = InMemoryLedgerStore()
    store.initialize(clock.today())
    return store


@pytest.fixture()
def sql_engine() -> Generator[Engine, None, None]:
    engine = create_db_engine("sqlite+pysqlite://")
    yield engine
    engine.dispose()


@pytest.fixture()
def sql_store(sql_engine: Engine, clock: FixedClock) -> SqlLedgerStore:
    store = SqlLedgerStore(sql_engine)
    store.create_schema()
    store.initialize(clock.today())
    return store


@pytest.fixture(params=["memory", "sql"])
def store(request: pytest.FixtureRequest):
    """Every ledger behaviour is checked against both implementations."""
    return request.getfixturevalue(f"{request.param}_store")

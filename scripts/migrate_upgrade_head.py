"""Upgrade the ledger schema to head, then check the ledger is usable.

Usage:
  python scripts/migrate_upgrade_head.py [--database-url URL]

Without --database-url, reads DATABASE_URL from the environment or `.env`
(repo root / backend). After the upgrade the rotation cursor singleton must
exist; a missing cursor fails the run instead of surfacing on the first
credential request.

Exit codes: 0 ok, 1 ledger check failed, 2 no database configured.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from alembic import command
from alembic.config import Config


ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app.core.clock import UtcClock  # noqa: E402
from app.core.config import load_env_if_present  # noqa: E402
from app.core.db import create_db_engine  # noqa: E402
from app.core.errors import StoreError  # noqa: E402
from app.repositories.sql_ledger import SqlLedgerStore  # noqa: E402


def alembic_config(url: str) -> Config:
    cfg = Config(str(BACKEND_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    cfg.set_main_option("sqlalchemy.url", url)
    return cfg


def check_ledger(url: str) -> str:
    """Reads the cursor and ledger totals. Raises StoreError when the ledger is unusable."""
    engine = create_db_engine(url)
    try:
        report = SqlLedgerStore(engine).usage_report([], UtcClock().today())
    finally:
        engine.dispose()
    return f"cursor last_index={report.last_index}, identities active today={report.identities_active}"


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Upgrade the ledger schema and verify the rotation cursor.")
    ap.add_argument("--database-url", default=None)
    args = ap.parse_args(argv)

    url = args.database_url
    if not url:
        load_env_if_present()
        url = os.environ.get("DATABASE_URL")
    if not url:
        print("Missing DATABASE_URL (set env var, create .env or pass --database-url).")
        return 2

    print("Upgrading ledger schema to head…")
    command.upgrade(alembic_config(url), "head")
    try:
        summary = check_ledger(url)
    except StoreError as e:
        print(f"FAIL: ledger check failed ({type(e).__name__}: {e}).")
        return 1
    print(f"PASS: upgraded to head; {summary}.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

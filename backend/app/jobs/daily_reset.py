"""Scheduled entry point for the daily reset sweep.

Usage:
  python -m app.jobs.daily_reset            (from backend/)

Safe to run any number of times per day; missing a run is harmless.
Exit code 0 on success, 1 when the ledger could not be reset.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional, Sequence

# Ensure backend/ is importable as top-level `app` when run as a script.
BASE_DIR = Path(__file__).resolve().parents[2]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from app.core.clock import FixedClock, UtcClock  # noqa: E402
from app.core.config import Settings  # noqa: E402
from app.core.errors import StoreError  # noqa: E402
from app.main import build_sql_store  # noqa: E402
from app.services.daily_reset import DailyResetSweep  # noqa: E402


logger = logging.getLogger("keyrelay.jobs")
logger.setLevel(logging.INFO)


def _log(event: dict) -> None:
    logger.info(json.dumps(event, ensure_ascii=False, default=str))


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Reset daily key and identity counters.")
    ap.add_argument("--day", type=date.fromisoformat, default=None, help="Ledger day (YYYY-MM-DD); default: today UTC")
    args = ap.parse_args(argv)

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(message)s")

    settings = Settings.from_env()
    clock = FixedClock(args.day) if args.day else UtcClock()
    store = None
    try:
        store = build_sql_store(settings, clock)
        summary = DailyResetSweep(store, clock).run()
    except StoreError as ex:
        _log({"event": "daily_reset_failed", "error_type": type(ex).__name__})
        return 1
    finally:
        if store is not None:
            store.engine.dispose()
    _log({"event": "daily_reset_job_done", "day": summary.day.isoformat()})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

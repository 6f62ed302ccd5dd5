"""Daily reset sweep (eager counterpart of the ledger's lazy reset).

Idempotent: records already stamped with today are left alone, so re-running
on the same day changes nothing. Lifetime usage is never touched and identity
records are never deleted. Skipping the sweep is harmless; reads and commits
apply the day boundary themselves.
"""

from __future__ import annotations

import json
import logging

from app.core.clock import Clock
from app.repositories.ledger import LedgerStore, ResetSummary


logger = logging.getLogger("keyrelay.reset")


class DailyResetSweep:
    def __init__(self, store: LedgerStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    def run(self) -> ResetSummary:
        today = self._clock.today()
        summary = self._store.reset_daily(today)
        logger.info(
            json.dumps(
                {
                    "event": "daily_reset",
                    "day": today.isoformat(),
                    "keys_reset": summary.keys_reset,
                    "identities_reset": summary.identities_reset,
                    "cursor_reset": summary.cursor_reset,
                }
            )
        )
        return summary

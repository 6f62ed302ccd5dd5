"""Calendar-day providers. The UTC day is the reset boundary for every counter."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


UTC = timezone.utc


class Clock(Protocol):
    def today(self) -> date: ...


class UtcClock:
    """Current UTC calendar day."""

    def today(self) -> date:
        return datetime.now(tz=UTC).date()


class FixedClock:
    """Settable clock for tests and replay tooling."""

    def __init__(self, day: date) -> None:
        self._day = day

    def today(self) -> date:
        return self._day

    def set(self, day: date) -> None:
        self._day = day

    def advance(self, days: int = 1) -> date:
        self._day = self._day + timedelta(days=days)
        return self._day

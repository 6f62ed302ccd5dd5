"""SQLAlchemy declarative base and shared mixins.

Ledger rationale:
- Every day-scoped record carries the UTC calendar day its counters belong to;
  readers compare it with the current day instead of trusting the counters.
- Timestamps are UTC, timezone-aware, server-generated and informational only.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class DayStampMixin:
    """UTC calendar day the record's daily counters refer to."""

    day: Mapped[date] = mapped_column(Date, nullable=False)


class CreatedAtMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class UpdatedAtMixin:
    """Updated-at timestamp mixin; ledger rows are mutated on every dispense."""

    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=func.now(),
    )

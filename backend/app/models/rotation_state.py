"""Rotation cursor singleton.

`last_index` is the pool position dispensed most recently on `day`, or -1 when
nothing has been dispensed yet that day. The row is created by the initial
migration; its absence is a store invariant violation, not a default.
"""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Integer
from sqlalchemy.orm import Mapped, mapped_column

from app.core.base import Base, DayStampMixin, UpdatedAtMixin


CURSOR_ROW_ID = 1


class RotationState(DayStampMixin, UpdatedAtMixin, Base):
    __tablename__ = "rotation_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=CURSOR_ROW_ID)
    last_index: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)

    __table_args__ = (
        CheckConstraint("id = 1", name="ck_rotation_state_singleton"),
        CheckConstraint("last_index >= -1", name="ck_rotation_state_last_index"),
    )

    def __repr__(self) -> str:
        return f"<RotationState(last_index={self.last_index}, day={self.day})>"

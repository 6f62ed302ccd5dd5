from __future__ import annotations

from sqlalchemy import CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.base import Base, CreatedAtMixin, DayStampMixin, UpdatedAtMixin


class IdentityUsage(DayStampMixin, CreatedAtMixin, UpdatedAtMixin, Base):
    """Per-caller usage. `daily_uses` follows `day`; `lifetime_uses` never resets."""

    __tablename__ = "identity_usage"

    identity_id: Mapped[str] = mapped_column(String(256), primary_key=True)
    daily_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("daily_uses >= 0", name="ck_identity_usage_daily_non_negative"),
        CheckConstraint("lifetime_uses >= 0", name="ck_identity_usage_lifetime_non_negative"),
        Index("ix_identity_usage_day", "day"),
    )

    def __repr__(self) -> str:
        return (
            f"<IdentityUsage(identity_id={self.identity_id}, daily_uses={self.daily_uses}, "
            f"lifetime_uses={self.lifetime_uses}, day={self.day})>"
        )

"""Per-secret daily hit counter.

One row per upstream secret, keyed by the secret's fingerprint (plaintext keys
are never persisted). `hits` counts successful dispenses on `day`; a row whose
`day` is in the past reads as zero hits.
"""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.base import Base, CreatedAtMixin, DayStampMixin, UpdatedAtMixin


class KeyUsage(DayStampMixin, CreatedAtMixin, UpdatedAtMixin, Base):
    __tablename__ = "key_usage"

    secret_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    hits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("hits >= 0", name="ck_key_usage_hits_non_negative"),
        Index("ix_key_usage_day", "day"),
    )

    def __repr__(self) -> str:
        return f"<KeyUsage(secret_id={self.secret_id}, hits={self.hits}, day={self.day})>"

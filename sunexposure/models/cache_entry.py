"""
CacheEntry model - backing table for the distributed cache tier.
"""
from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sunexposure.models.base import Base, TimestampMixin


class CacheEntry(Base, TimestampMixin):
    """Key/value row with an absolute expiry. Value is a JSON document."""

    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )

    value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<CacheEntry {self.key}>"

"""SQLAlchemy models for the local SQLite result cache.

Only completed audits are stored, one row per normalized (name, area) key.
A newer audit for the same key overwrites the row.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class CachedAudit(Base):
    """The latest completed audit for one cache key."""

    __tablename__ = "cached_audits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cache_key: Mapped[str] = mapped_column(String(500), unique=True, nullable=False)
    breakdown_json: Mapped[str] = mapped_column(Text, nullable=False)
    facts_json: Mapped[str] = mapped_column(Text, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    listing_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    captured_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_cached_audits_captured", "captured_at"),
    )

"""Short-lived result cache in front of the audit scheduler.

Entries are keyed by normalized business name and area and stay fresh for
24 hours. The cache is best effort: if SQLite is unavailable every lookup is
a miss and every store is dropped, with a warning in the log.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .core.models import AuditRequest, CacheEntry, RawFacts, ScoreBreakdown
from .db import get_session_factory
from .sqlmodels import CachedAudit

logger = logging.getLogger(__name__)

DEFAULT_TTL_HOURS = 24

# Normalized names never contain a tab, so URL keys cannot collide with name keys.
REFERENCE_KEY_PREFIX = "\tref|"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize(value: str) -> str:
    """Case-fold and collapse whitespace."""
    return " ".join(value.split()).casefold()


def cache_key(request: AuditRequest) -> str:
    """Key for a request: 'name|area', or the URL behind REFERENCE_KEY_PREFIX for URL-only requests."""
    if request.subject_name.strip() and request.area.strip():
        return f"{normalize(request.subject_name)}|{normalize(request.area)}"
    return REFERENCE_KEY_PREFIX + (request.resource_ref or "").strip()


class ResultCache:
    """Last-write-wins cache of completed audits with a fixed freshness window."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._session_factory = session_factory
        self._ttl = ttl or timedelta(hours=float(os.environ.get(
            "AUDIT_CACHE_TTL_HOURS",
            str(DEFAULT_TTL_HOURS),
        )))
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    async def lookup(self, key: str) -> Optional[CacheEntry]:
        """Return the fresh entry for ``key``, or None on miss, expiry or store failure."""
        try:
            async with self._sessions()() as session:
                result = await session.execute(
                    select(CachedAudit).where(CachedAudit.cache_key == key)
                )
                row = result.scalar_one_or_none()
                if row is None:
                    return None
                if self._clock() - row.captured_at >= self._ttl:
                    logger.debug("Cache entry for %s expired (captured %s)", key, row.captured_at)
                    return None
                return CacheEntry(
                    key=key,
                    breakdown=ScoreBreakdown.model_validate_json(row.breakdown_json),
                    facts=RawFacts.model_validate_json(row.facts_json),
                    captured_at=row.captured_at,
                    display_name=row.display_name,
                    listing_url=row.listing_url,
                )
        except Exception as exc:
            logger.warning("Cache lookup failed for %s, treating as miss: %s", key, exc)
            return None

    async def store(
        self,
        key: str,
        breakdown: ScoreBreakdown,
        facts: RawFacts,
        display_name: Optional[str] = None,
        listing_url: Optional[str] = None,
    ) -> bool:
        """Overwrite the entry for ``key``. Returns False if the store was unavailable."""
        now = self._clock()
        try:
            async with self._sessions()() as session:
                result = await session.execute(
                    select(CachedAudit).where(CachedAudit.cache_key == key)
                )
                row = result.scalar_one_or_none()
                if row:
                    row.breakdown_json = breakdown.model_dump_json()
                    row.facts_json = facts.model_dump_json()
                    row.display_name = display_name
                    row.listing_url = listing_url
                    row.captured_at = now
                else:
                    session.add(CachedAudit(
                        cache_key=key,
                        breakdown_json=breakdown.model_dump_json(),
                        facts_json=facts.model_dump_json(),
                        display_name=display_name,
                        listing_url=listing_url,
                        captured_at=now,
                    ))
                await session.commit()
            return True
        except Exception as exc:
            logger.warning("Cache store failed for %s: %s", key, exc)
            return False

    async def purge_expired(self) -> int:
        """Delete entries older than the freshness window. Returns the number removed."""
        cutoff = self._clock() - self._ttl
        try:
            async with self._sessions()() as session:
                result = await session.execute(
                    delete(CachedAudit).where(CachedAudit.captured_at <= cutoff)
                )
                await session.commit()
                removed = result.rowcount or 0
        except Exception as exc:
            logger.warning("Cache purge failed: %s", exc)
            return 0

        if removed:
            logger.info("Purged %d expired cache entries", removed)
        return removed

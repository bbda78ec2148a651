"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_audit.core.models import ExtractedFacts, RawFacts
from listing_audit.db import create_engine_for, init_db


class FakeClock:
    """Wall clock for the cache that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_extracted(display_name: str = "Test Cafe", **facts) -> ExtractedFacts:
    """Create a test ExtractedFacts."""
    return ExtractedFacts(
        facts=RawFacts(**facts),
        captured_at=datetime(2024, 6, 1, 12, 0, 0),
        display_name=display_name,
    )


FAVORABLE_FACTS = {
    "is_claimed": True,
    "rating": 4.8,
    "latest_review_age": "2 days ago",
    "owner_response_count": 3,
    "has_owner_photos": True,
    "hours": "Mon-Sat 9am-9pm",
    "hours_missing": False,
    "phone": "+91 98765 43210",
    "address": "12 Park Street, Kolkata",
    "secondary_listing": True,
    "website": "https://testcafe.example.com",
}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory bound to a fresh SQLite cache database."""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
    await init_db(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def unavailable_session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory for a database whose schema was never created."""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'missing.db'}")
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()

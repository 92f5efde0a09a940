"""
Test Configuration — Fixtures for async DB, test client, and seeded series.

Each test gets its own in-memory SQLite database, so commits and rollbacks
made by the code under test behave exactly as they would in production.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from api.deps import get_db
from api.main import app
from db.models import ChannelDay, ChannelFeature
from db.session import Base

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

CHANNEL_ID = "UC-test-channel"
SERIES_START = date(2026, 1, 1)
FIXED_NOW = datetime(2026, 2, 12, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
async def test_engine():
    """Fresh in-memory database with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
async def client(test_db):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def seed_series(test_db):
    """
    Insert one channel_days row per value, starting at SERIES_START.

    Usage: await seed_series([100, 110, ...], metric="views")
    """

    async def _seed(values, metric="views", channel_id=CHANNEL_ID, start=SERIES_START):
        for offset, value in enumerate(values):
            row = ChannelDay(channel_id=channel_id, date=start + timedelta(days=offset))
            setattr(row, metric, value)
            test_db.add(row)
        await test_db.commit()

    return _seed


@pytest.fixture
def seed_features(test_db):
    async def _seed(days_since_last_video, channel_id=CHANNEL_ID, start=SERIES_START):
        for offset, days in enumerate(days_since_last_video):
            test_db.add(
                ChannelFeature(
                    channel_id=channel_id,
                    date=start + timedelta(days=offset),
                    feature_set_version="v1",
                    days_since_last_video=days,
                )
            )
        await test_db.commit()

    return _seed


@pytest.fixture
def day():
    """Calendar date of a series offset."""
    return lambda offset: SERIES_START + timedelta(days=offset)


@pytest.fixture
def anomaly_scenario_values():
    """60 days of growth with a weekly wave, a 4.2x spike at day 30 and a 0.18x dip at day 45."""
    values = []
    for i in range(60):
        value = 1800 + i * 12 + (i % 7) * 35
        if i == 30:
            value *= 4.2
        if i == 45:
            value *= 0.18
        values.append(float(round(value)))
    return values


@pytest.fixture
def level_shift_values():
    """80 days with a weekly wave (amplitude 25) and a level shift at day 40."""
    values = []
    for i in range(80):
        seasonal = ((i % 7) - 3) * 25
        base = 1200 + i * 6 if i < 40 else 2300 + (i - 40) * 7
        values.append(float(round(base + seasonal)))
    return values

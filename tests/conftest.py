"""Shared fixtures: an in-memory SQLite database and sample builders."""

from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ratewatch.models import Base, DailyRate, HourlyRate, Sample
from ratewatch.timezones import as_utc, date_partition, fixed_zone

# Sampling and reference zone used throughout the tests
TZ = fixed_zone(8)


def local(year, month, day, hour=0, minute=0) -> datetime:
    """A wall-clock time in TZ."""
    return datetime(year, month, day, hour, minute, tzinfo=TZ)


def make_sample(at: datetime, rate: float) -> Sample:
    return Sample(
        currency_code="USD",
        rate=rate,
        collected_at=as_utc(at),
        date_partition=date_partition(at, TZ),
    )


def make_hourly(partition: str, hour: int, avg_rate: float, sample_count: int = 4) -> HourlyRate:
    stamp = datetime.fromisoformat(f"{partition}T{hour:02d}:00:00").replace(tzinfo=TZ)
    return HourlyRate(
        date_partition=partition,
        hour=hour,
        avg_rate=avg_rate,
        min_rate=avg_rate,
        max_rate=avg_rate,
        sample_count=sample_count,
        first_collected_at=as_utc(stamp),
        last_collected_at=as_utc(stamp),
    )


def make_daily(partition: str, avg_rate: float) -> DailyRate:
    stamp = as_utc(datetime.fromisoformat(f"{partition}T12:00:00").replace(tzinfo=TZ))
    return DailyRate(
        date_partition=partition,
        avg_rate=avg_rate,
        min_rate=avg_rate,
        max_rate=avg_rate,
        peak_rate=avg_rate,
        peak_time=stamp,
        volatility=0.0,
        sample_count=1,
        first_collected_at=stamp,
        last_collected_at=stamp,
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def add_rows(session_factory):
    """Persist ORM rows in their own committed transaction."""

    async def _add(rows):
        async with session_factory() as session:
            session.add_all(rows)
            await session.commit()

    return _add


@pytest.fixture
def add_samples(add_rows):
    """Persist (local datetime, rate) pairs as raw samples."""

    async def _add(points):
        await add_rows([make_sample(at, rate) for at, rate in points])

    return _add

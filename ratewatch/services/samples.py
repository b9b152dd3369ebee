"""Sample store: raw samples plus the hourly/daily aggregate tables.

Thin async query layer used by the retention engine, the pattern analyzer and
the recommendation engine. Every function takes the caller's AsyncSession;
the caller owns commit/rollback. Any SQLAlchemy failure is re-raised as
DataAccessError.

Each call is an ordinary point-in-time query. The producer keeps appending
rows while these run, so two consecutive calls may see different data.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from ratewatch.errors import data_access
from ratewatch.models.daily_rate import DailyRate
from ratewatch.models.hourly_rate import HourlyRate
from ratewatch.models.sample import Sample
from ratewatch.timezones import as_utc, date_partition


@dataclass(frozen=True)
class DailyStats:
    date: str
    min_rate: float
    max_rate: float
    avg_rate: float
    sample_count: int
    peak_time: Optional[datetime]


@dataclass(frozen=True)
class RetentionStats:
    raw_count: int
    hourly_count: int
    daily_count: int
    oldest_raw_date: Optional[str]
    oldest_hourly_date: Optional[str]
    oldest_daily_date: Optional[str]


@data_access("inserting sample")
async def insert_sample(
    session: AsyncSession,
    rate: float,
    collected_at: datetime,
    sampling_tz: timezone,
    currency_code: str = "USD",
) -> Sample:
    """Store a new sample; the date partition is derived in the sampling zone."""
    if rate <= 0:
        raise ValueError(f"rate must be positive, got {rate}")
    sample = Sample(
        currency_code=currency_code,
        rate=rate,
        collected_at=as_utc(collected_at),
        date_partition=date_partition(collected_at, sampling_tz),
    )
    session.add(sample)
    await session.flush()
    return sample


@data_access("querying latest sample")
async def get_latest_sample(session: AsyncSession) -> Optional[Sample]:
    result = await session.execute(
        select(Sample).order_by(Sample.collected_at.desc(), Sample.id.desc()).limit(1)
    )
    return result.scalar_one_or_none()


@data_access("querying samples by time range")
async def get_samples_by_time_range(
    session: AsyncSession, start: datetime, end: datetime
) -> list[Sample]:
    """Samples with start <= collected_at <= end, oldest first."""
    result = await session.execute(
        select(Sample)
        .where(Sample.collected_at >= as_utc(start))
        .where(Sample.collected_at <= as_utc(end))
        .order_by(Sample.collected_at, Sample.id)
    )
    return list(result.scalars().all())


@data_access("querying samples for date")
async def get_samples_for_date(session: AsyncSession, partition: str) -> list[Sample]:
    result = await session.execute(
        select(Sample)
        .where(Sample.date_partition == partition)
        .order_by(Sample.collected_at, Sample.id)
    )
    return list(result.scalars().all())


@data_access("querying daily peak")
async def get_peak_for_date(session: AsyncSession, partition: str) -> Optional[Sample]:
    """Highest sample of the date; ties go to the first row stored."""
    result = await session.execute(
        select(Sample)
        .where(Sample.date_partition == partition)
        .order_by(Sample.rate.desc(), Sample.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


@data_access("querying daily stats")
async def get_daily_stats(session: AsyncSession, partition: str) -> Optional[DailyStats]:
    """Min/max/avg/count for one date from raw samples, None if the date is empty."""
    result = await session.execute(
        select(
            func.min(Sample.rate),
            func.max(Sample.rate),
            func.avg(Sample.rate),
            func.count(Sample.id),
        ).where(Sample.date_partition == partition)
    )
    min_rate, max_rate, avg_rate, count = result.one()
    if not count:
        return None

    peak = await get_peak_for_date(session, partition)
    return DailyStats(
        date=partition,
        min_rate=min_rate,
        max_rate=max_rate,
        avg_rate=float(avg_rate),
        sample_count=count,
        peak_time=as_utc(peak.collected_at) if peak is not None else None,
    )


@data_access("counting samples")
async def count_samples(session: AsyncSession) -> int:
    result = await session.execute(select(func.count(Sample.id)))
    return result.scalar_one()


@data_access("querying old raw dates")
async def get_old_raw_dates(session: AsyncSession, days: int, today: date) -> list[str]:
    """Distinct partitions strictly older than ``today - days``, oldest first."""
    cutoff = (today - timedelta(days=days)).isoformat()
    result = await session.execute(
        select(Sample.date_partition)
        .where(Sample.date_partition < cutoff)
        .distinct()
        .order_by(Sample.date_partition)
    )
    return list(result.scalars().all())


@data_access("counting raw rows before cutoff")
async def count_raw_before(session: AsyncSession, cutoff: str) -> int:
    result = await session.execute(
        select(func.count(Sample.id)).where(Sample.date_partition < cutoff)
    )
    return result.scalar_one()


@data_access("counting hourly rows before cutoff")
async def count_hourly_before(session: AsyncSession, cutoff: str) -> int:
    result = await session.execute(
        select(func.count(HourlyRate.id)).where(HourlyRate.date_partition < cutoff)
    )
    return result.scalar_one()


@data_access("replacing hourly rows")
async def replace_hourly_rows(
    session: AsyncSession, partition: str, rows: list[dict]
) -> int:
    """Replace every hourly row of ``partition`` with ``rows``."""
    await session.execute(
        delete(HourlyRate).where(HourlyRate.date_partition == partition)
    )
    if rows:
        await session.execute(insert(HourlyRate), rows)
    return len(rows)


@data_access("replacing daily row")
async def replace_daily_row(session: AsyncSession, row: dict) -> None:
    await session.execute(
        delete(DailyRate).where(DailyRate.date_partition == row["date_partition"])
    )
    await session.execute(insert(DailyRate), [row])


@data_access("deleting raw rows")
async def delete_raw_before(session: AsyncSession, cutoff: str) -> int:
    result = await session.execute(
        delete(Sample).where(Sample.date_partition < cutoff)
    )
    return result.rowcount


@data_access("deleting hourly rows")
async def delete_hourly_before(session: AsyncSession, cutoff: str) -> int:
    result = await session.execute(
        delete(HourlyRate).where(HourlyRate.date_partition < cutoff)
    )
    return result.rowcount


@data_access("querying hourly rows")
async def get_hourly_rows(
    session: AsyncSession, start_date: str, end_date: str
) -> list[HourlyRate]:
    result = await session.execute(
        select(HourlyRate)
        .where(HourlyRate.date_partition >= start_date)
        .where(HourlyRate.date_partition <= end_date)
        .order_by(HourlyRate.date_partition, HourlyRate.hour)
    )
    return list(result.scalars().all())


@data_access("querying daily rows")
async def get_daily_rows(
    session: AsyncSession, start_date: str, end_date: str
) -> list[DailyRate]:
    result = await session.execute(
        select(DailyRate)
        .where(DailyRate.date_partition >= start_date)
        .where(DailyRate.date_partition <= end_date)
        .order_by(DailyRate.date_partition)
    )
    return list(result.scalars().all())


@data_access("querying retention stats")
async def get_retention_stats(session: AsyncSession) -> RetentionStats:
    raw = (
        await session.execute(
            select(func.count(Sample.id), func.min(Sample.date_partition))
        )
    ).one()
    hourly = (
        await session.execute(
            select(func.count(HourlyRate.id), func.min(HourlyRate.date_partition))
        )
    ).one()
    daily = (
        await session.execute(
            select(func.count(DailyRate.id), func.min(DailyRate.date_partition))
        )
    ).one()
    return RetentionStats(
        raw_count=raw[0],
        hourly_count=hourly[0],
        daily_count=daily[0],
        oldest_raw_date=raw[1],
        oldest_hourly_date=hourly[1],
        oldest_daily_date=daily[1],
    )

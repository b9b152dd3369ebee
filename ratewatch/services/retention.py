"""Retention engine: raw to hourly/daily roll-ups and tier purging.

Storage tiers:
  raw    -- every sample, kept for ``raw_retention_days``
  hourly -- one row per (date, hour), kept for ``hourly_retention_days``
  daily  -- one row per date, kept forever

Both aggregate tiers are computed straight from raw samples; hourly rows are
never re-aggregated into daily ones. Re-running aggregation for a date
replaces its rows, so every step is idempotent.

Ordering contract: a date's raw samples are deleted only after its hourly and
daily rows have been written. ``run_policy`` enforces this by never purging
raw data at or after the oldest date whose aggregation failed.
"""

import asyncio
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ratewatch.errors import AggregationError, DataAccessError
from ratewatch.models.sample import Sample
from ratewatch.services import samples as store
from ratewatch.timezones import as_utc

log = structlog.get_logger(__name__)

# Serializes policy runs between the worker and manual runs
_run_lock = asyncio.Lock()


@dataclass(frozen=True)
class HourlyAggregate:
    date_partition: str
    hour: int
    avg_rate: float
    min_rate: float
    max_rate: float
    sample_count: int
    first_collected_at: datetime
    last_collected_at: datetime


@dataclass(frozen=True)
class DailyAggregate:
    date_partition: str
    avg_rate: float
    min_rate: float
    max_rate: float
    peak_rate: float
    peak_time: datetime
    volatility: float
    sample_count: int
    first_collected_at: datetime
    last_collected_at: datetime


@dataclass
class RetentionSummary:
    dry_run: bool
    dates_found: list[str] = field(default_factory=list)
    dates_processed: int = 0
    hourly_rows_created: int = 0
    daily_rows_created: int = 0
    raw_rows_deleted: int = 0
    hourly_rows_deleted: int = 0
    failed_dates: list[str] = field(default_factory=list)
    raw_cutoff: Optional[str] = None
    hourly_cutoff: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def summarize_hours(partition: str, rows: list[Sample], tz: timezone) -> list[HourlyAggregate]:
    """Group one date's samples by hour-of-day in ``tz``."""
    groups: dict[int, list[Sample]] = defaultdict(list)
    for row in rows:
        groups[as_utc(row.collected_at).astimezone(tz).hour].append(row)

    aggregates = []
    for hour in sorted(groups):
        group = groups[hour]
        values = [r.rate for r in group]
        times = [as_utc(r.collected_at) for r in group]
        aggregates.append(
            HourlyAggregate(
                date_partition=partition,
                hour=hour,
                avg_rate=sum(values) / len(values),
                min_rate=min(values),
                max_rate=max(values),
                sample_count=len(values),
                first_collected_at=min(times),
                last_collected_at=max(times),
            )
        )
    return aggregates


def summarize_day(partition: str, rows: list[Sample], peak: Sample) -> DailyAggregate:
    values = [r.rate for r in rows]
    times = [as_utc(r.collected_at) for r in rows]
    min_rate, max_rate = min(values), max(values)
    return DailyAggregate(
        date_partition=partition,
        avg_rate=sum(values) / len(values),
        min_rate=min_rate,
        max_rate=max_rate,
        peak_rate=peak.rate,
        peak_time=as_utc(peak.collected_at),
        volatility=max_rate - min_rate,
        sample_count=len(values),
        first_collected_at=min(times),
        last_collected_at=max(times),
    )


async def find_dates_older_than(
    session: AsyncSession, raw_retention_days: int, today: date
) -> list[str]:
    """Partitions holding raw samples strictly older than ``today - raw_retention_days``."""
    return await store.get_old_raw_dates(session, raw_retention_days, today)


async def aggregate_hour(session: AsyncSession, partition: str, tz: timezone) -> int:
    """Write the hourly rows for one date. Returns rows written (0 for an empty date)."""
    rows = await store.get_samples_for_date(session, partition)
    if not rows:
        return 0
    aggregates = summarize_hours(partition, rows, tz)
    return await store.replace_hourly_rows(
        session, partition, [asdict(a) for a in aggregates]
    )


async def aggregate_day(session: AsyncSession, partition: str) -> bool:
    """Write the daily row for one date. Returns False (no write) for an empty date."""
    peak = await store.get_peak_for_date(session, partition)
    if peak is None:
        return False
    rows = await store.get_samples_for_date(session, partition)
    await store.replace_daily_row(session, asdict(summarize_day(partition, rows, peak)))
    return True


async def purge_raw_before(session: AsyncSession, cutoff: str) -> int:
    """Delete raw samples with date_partition < cutoff.

    Only call once every date before ``cutoff`` has been aggregated.
    """
    return await store.delete_raw_before(session, cutoff)


async def purge_hourly_before(session: AsyncSession, cutoff: str) -> int:
    """Delete hourly rows with date_partition < cutoff. Daily rows are never purged."""
    return await store.delete_hourly_before(session, cutoff)


async def _aggregate_date(
    session_factory: async_sessionmaker, partition: str, tz: timezone
) -> tuple[int, bool]:
    """Hourly then daily roll-up for one date, committed as one transaction."""
    async with session_factory() as session:
        try:
            hourly = await aggregate_hour(session, partition, tz)
            daily = await aggregate_day(session, partition)
            await session.commit()
        except DataAccessError as exc:
            await session.rollback()
            raise AggregationError(partition, str(exc)) from exc
    return hourly, daily


async def _preview_date(session: AsyncSession, partition: str, tz: timezone) -> int:
    rows = await store.get_samples_for_date(session, partition)
    return len(summarize_hours(partition, rows, tz))


async def run_policy(
    session_factory: async_sessionmaker,
    raw_retention_days: int,
    hourly_retention_days: int,
    dry_run: bool,
    today: date,
    tz: timezone,
) -> RetentionSummary:
    """Aggregate every expiring date, then purge raw and hourly tiers.

    ``today`` is the current date in the sampling zone and ``tz`` the zone
    used for hour buckets. A date whose aggregation fails is logged and
    skipped; raw purging then stops short of the oldest failed date so its
    samples survive for the next run. With ``dry_run`` nothing is written
    and the summary reports what would be affected.

    Runs in one process are serialized; purges are not safe against a
    concurrent aggregation of the same dates.

    Raises:
        ValueError: the hourly horizon is shorter than the raw horizon, which
            would purge freshly written hourly rows along with their raw data.
    """
    if hourly_retention_days < raw_retention_days:
        raise ValueError(
            f"hourly retention ({hourly_retention_days} days) must not be shorter "
            f"than raw retention ({raw_retention_days} days)"
        )
    async with _run_lock:
        return await _run_policy(
            session_factory, raw_retention_days, hourly_retention_days, dry_run, today, tz
        )


async def _run_policy(
    session_factory: async_sessionmaker,
    raw_retention_days: int,
    hourly_retention_days: int,
    dry_run: bool,
    today: date,
    tz: timezone,
) -> RetentionSummary:
    summary = RetentionSummary(dry_run=dry_run)
    raw_cutoff = (today - timedelta(days=raw_retention_days)).isoformat()
    hourly_cutoff = (today - timedelta(days=hourly_retention_days)).isoformat()
    summary.raw_cutoff = raw_cutoff
    summary.hourly_cutoff = hourly_cutoff

    log.info(
        "retention_started",
        raw_retention_days=raw_retention_days,
        hourly_retention_days=hourly_retention_days,
        dry_run=dry_run,
    )

    async with session_factory() as session:
        dates = await find_dates_older_than(session, raw_retention_days, today)
        summary.dates_found = dates

        if dry_run:
            for partition in dates:
                summary.hourly_rows_created += await _preview_date(session, partition, tz)
            summary.dates_processed = len(dates)
            summary.daily_rows_created = len(dates)
            summary.hourly_cutoff = min([hourly_cutoff, *dates])
            summary.raw_rows_deleted = await store.count_raw_before(session, raw_cutoff)
            summary.hourly_rows_deleted = await store.count_hourly_before(
                session, summary.hourly_cutoff
            )
            log.info("retention_dry_run", **summary.to_dict())
            return summary

    if not dates:
        log.info("retention_nothing_to_aggregate")

    aggregated = []
    for partition in dates:
        try:
            hourly, daily = await _aggregate_date(session_factory, partition, tz)
        except AggregationError:
            log.error("retention_aggregation_failed", date=partition, exc_info=True)
            summary.failed_dates.append(partition)
            continue
        aggregated.append(partition)
        summary.dates_processed += 1
        summary.hourly_rows_created += hourly
        summary.daily_rows_created += int(daily)

    # Keep raw data for the oldest failed date and everything after it
    safe_raw_cutoff = min([raw_cutoff, *summary.failed_dates])
    if safe_raw_cutoff != raw_cutoff:
        log.warning(
            "retention_raw_purge_limited",
            requested_cutoff=raw_cutoff,
            effective_cutoff=safe_raw_cutoff,
            failed_dates=summary.failed_dates,
        )
    summary.raw_cutoff = safe_raw_cutoff

    # Hourly rows written by this run outlive it, even past the hourly horizon
    summary.hourly_cutoff = min([hourly_cutoff, *aggregated])

    async with session_factory() as session:
        summary.raw_rows_deleted = await purge_raw_before(session, safe_raw_cutoff)
        summary.hourly_rows_deleted = await purge_hourly_before(session, summary.hourly_cutoff)
        await session.commit()

    if summary.failed_dates:
        log.warning("retention_partial", **summary.to_dict())
    else:
        log.info("retention_completed", **summary.to_dict())
    return summary


async def get_stats(session: AsyncSession) -> store.RetentionStats:
    return await store.get_retention_stats(session)

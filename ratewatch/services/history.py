"""Historical views across the storage tiers.

- Daily stats and peaks straight from raw samples.
- Tiered history: for each date in a range, points come from the finest tier
  still holding that date (raw, then hourly, then daily).
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ratewatch.errors import NoDataError
from ratewatch.services import samples as store
from ratewatch.timezones import as_utc, date_partition


@dataclass(frozen=True)
class DailyPeak:
    date: str
    peak_rate: Optional[float]
    peak_time: Optional[datetime]


@dataclass(frozen=True)
class PeakSummary:
    peaks: list[DailyPeak]
    highest_peak: Optional[float]
    lowest_peak: Optional[float]
    average_peak: Optional[float]
    peak_range: Optional[float]


@dataclass(frozen=True)
class HistoryPoint:
    timestamp: datetime
    rate: float
    source: str  # "raw" | "hourly" | "daily"


def summarize_peaks(peaks: list[DailyPeak]) -> PeakSummary:
    values = [p.peak_rate for p in peaks if p.peak_rate is not None]
    if not values:
        return PeakSummary(peaks, None, None, None, None)
    highest, lowest = max(values), min(values)
    return PeakSummary(
        peaks=peaks,
        highest_peak=highest,
        lowest_peak=lowest,
        average_peak=sum(values) / len(values),
        peak_range=highest - lowest,
    )


def recent_dates(today: date, days: int) -> list[str]:
    """``days`` partitions ending at ``today``, newest first."""
    return [(today - timedelta(days=i)).isoformat() for i in range(days)]


async def get_daily_stats(session: AsyncSession, partition: str) -> store.DailyStats:
    stats = await store.get_daily_stats(session, partition)
    if stats is None:
        raise NoDataError(f"no data available for {partition}")
    return stats


async def get_peak_summary(session: AsyncSession, days: int, today: date) -> PeakSummary:
    peaks = []
    for partition in recent_dates(today, days):
        sample = await store.get_peak_for_date(session, partition)
        if sample is None:
            peaks.append(DailyPeak(partition, None, None))
        else:
            peaks.append(DailyPeak(partition, sample.rate, as_utc(sample.collected_at)))
    return summarize_peaks(peaks)


async def get_tiered_history(
    session: AsyncSession,
    start: datetime,
    end: datetime,
    sampling_tz: timezone,
) -> list[HistoryPoint]:
    """Time-ordered points for [start, end], each date from its finest surviving tier.

    Hourly points are stamped at the top of their hour and daily points at
    noon, both in the sampling zone.
    """
    start, end = as_utc(start), as_utc(end)
    first_date = date_partition(start, sampling_tz)
    last_date = date_partition(end, sampling_tz)

    points = [
        HistoryPoint(as_utc(row.collected_at), row.rate, "raw")
        for row in await store.get_samples_by_time_range(session, start, end)
    ]
    covered = {date_partition(p.timestamp, sampling_tz) for p in points}

    for row in await store.get_hourly_rows(session, first_date, last_date):
        if row.date_partition in covered:
            continue
        stamp = datetime.combine(
            date.fromisoformat(row.date_partition), time(row.hour), tzinfo=sampling_tz
        )
        if start <= stamp <= end:
            points.append(HistoryPoint(as_utc(stamp), row.avg_rate, "hourly"))
    covered |= {date_partition(p.timestamp, sampling_tz) for p in points}

    for row in await store.get_daily_rows(session, first_date, last_date):
        if row.date_partition in covered:
            continue
        stamp = datetime.combine(
            date.fromisoformat(row.date_partition), time(12), tzinfo=sampling_tz
        )
        if start <= stamp <= end:
            points.append(HistoryPoint(as_utc(stamp), row.avg_rate, "daily"))

    points.sort(key=lambda p: p.timestamp)
    return points

"""Hour-of-day and day-of-week rate profiles.

Both profiles are recomputed from raw samples on every call; nothing is
cached. Hours and calendar days are taken in the zone passed by the caller
(the reference zone), the same zone the recommendation engine uses for its
"current hour" lookups.

Day-of-week profiles aggregate in two levels: each calendar day is first
reduced to avg/min/max/range, then days sharing a weekday are averaged, so a
densely sampled day weighs no more than a sparse one.

Peak frequency counts, per hour, the days whose maximum sample fell in that
hour. When the daily maximum repeats in several hours, every one of those
hours is credited for that day.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ratewatch.models.sample import Sample
from ratewatch.services import samples as store
from ratewatch.timezones import as_utc

# 0=Sunday .. 6=Saturday
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


@dataclass(frozen=True)
class HourlyPattern:
    hour: int
    avg_rate: float
    min_rate: float
    max_rate: float
    sample_count: int
    peak_frequency: int


@dataclass(frozen=True)
class DayOfWeekPattern:
    day_of_week: int
    day_name: str
    avg_rate: float
    min_rate: float
    max_rate: float
    avg_range: float
    sample_days: int


def sunday_based_weekday(day: date) -> int:
    """0=Sunday .. 6=Saturday (``date.weekday`` is Monday-based)."""
    return (day.weekday() + 1) % 7


def _localize(rows: Iterable[Sample], tz: timezone) -> list[tuple[datetime, float]]:
    return [(as_utc(r.collected_at).astimezone(tz), r.rate) for r in rows]


def compute_hourly_patterns(rows: Iterable[Sample], tz: timezone) -> list[HourlyPattern]:
    """Hour-of-day profile over ``rows``; hours without samples are omitted."""
    by_hour: dict[int, list[float]] = defaultdict(list)
    by_day: dict[date, list[tuple[int, float]]] = defaultdict(list)
    for local_time, rate in _localize(rows, tz):
        by_hour[local_time.hour].append(rate)
        by_day[local_time.date()].append((local_time.hour, rate))

    peak_frequency: dict[int, int] = defaultdict(int)
    for day_rows in by_day.values():
        day_max = max(rate for _, rate in day_rows)
        for hour in {hour for hour, rate in day_rows if rate == day_max}:
            peak_frequency[hour] += 1

    return [
        HourlyPattern(
            hour=hour,
            avg_rate=sum(values) / len(values),
            min_rate=min(values),
            max_rate=max(values),
            sample_count=len(values),
            peak_frequency=peak_frequency[hour],
        )
        for hour, values in sorted(by_hour.items())
    ]


def compute_day_of_week_patterns(rows: Iterable[Sample], tz: timezone) -> list[DayOfWeekPattern]:
    """Weekday profile built from per-day summaries; empty weekdays are omitted."""
    by_day: dict[date, list[float]] = defaultdict(list)
    for local_time, rate in _localize(rows, tz):
        by_day[local_time.date()].append(rate)

    # day -> (avg, min, max, range), grouped under its weekday
    by_weekday: dict[int, list[tuple[float, float, float, float]]] = defaultdict(list)
    for day, values in by_day.items():
        low, high = min(values), max(values)
        by_weekday[sunday_based_weekday(day)].append(
            (sum(values) / len(values), low, high, high - low)
        )

    patterns = []
    for weekday, summaries in sorted(by_weekday.items()):
        n = len(summaries)
        patterns.append(
            DayOfWeekPattern(
                day_of_week=weekday,
                day_name=DAY_NAMES[weekday],
                avg_rate=sum(s[0] for s in summaries) / n,
                min_rate=sum(s[1] for s in summaries) / n,
                max_rate=sum(s[2] for s in summaries) / n,
                avg_range=sum(s[3] for s in summaries) / n,
                sample_days=n,
            )
        )
    return patterns


def find_hourly_pattern(
    patterns: list[HourlyPattern], hour: int
) -> Optional[HourlyPattern]:
    for pattern in patterns:
        if pattern.hour == hour:
            return pattern
    return None


def find_day_of_week_pattern(
    patterns: list[DayOfWeekPattern], day_of_week: int
) -> Optional[DayOfWeekPattern]:
    for pattern in patterns:
        if pattern.day_of_week == day_of_week:
            return pattern
    return None


async def get_hourly_patterns(
    session: AsyncSession,
    days: int,
    tz: timezone,
    now: Optional[datetime] = None,
) -> list[HourlyPattern]:
    """Hour-of-day profile over the last ``days`` days."""
    end = as_utc(now) if now is not None else datetime.now(timezone.utc)
    rows = await store.get_samples_by_time_range(session, end - timedelta(days=days), end)
    return compute_hourly_patterns(rows, tz)


async def get_day_of_week_patterns(
    session: AsyncSession,
    weeks: int,
    tz: timezone,
    now: Optional[datetime] = None,
) -> list[DayOfWeekPattern]:
    """Weekday profile over the last ``weeks * 7`` days."""
    end = as_utc(now) if now is not None else datetime.now(timezone.utc)
    rows = await store.get_samples_by_time_range(
        session, end - timedelta(days=weeks * 7), end
    )
    return compute_day_of_week_patterns(rows, tz)

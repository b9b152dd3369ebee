"""Time zone helpers.

Two zones take part in every analysis: the sampling zone the producer used
to assign date partitions, and the reference zone used for hour-of-day and
business-hours logic. Both are plain fixed-offset ``timezone`` objects and
are always passed in explicitly.
"""

from datetime import date, datetime, timedelta, timezone

from ratewatch.config import settings


def fixed_zone(offset_hours: int) -> timezone:
    return timezone(timedelta(hours=offset_hours))


def sampling_zone() -> timezone:
    return fixed_zone(settings.sampling_utc_offset_hours)


def reference_zone() -> timezone:
    return fixed_zone(settings.reference_utc_offset_hours)


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def date_partition(value: datetime, tz: timezone) -> str:
    """YYYY-MM-DD partition key of ``value`` in zone ``tz``."""
    return as_utc(value).astimezone(tz).date().isoformat()


def shift_date(partition: str, days: int) -> str:
    return (date.fromisoformat(partition) + timedelta(days=days)).isoformat()

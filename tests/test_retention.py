"""Tests for the retention engine: roll-ups, purging and the run policy."""

from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from conftest import TZ, local, make_daily, make_hourly, make_sample
from ratewatch.config import Settings
from ratewatch.errors import DataAccessError
from ratewatch.models import DailyRate, HourlyRate, Sample
from ratewatch.services import retention

TODAY = date(2026, 10, 18)


async def _count(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.fixture
async def old_and_recent(add_samples):
    """Two expired dates (2026-07-01, 2026-07-02) and one recent one."""
    await add_samples([
        (local(2026, 7, 1, 9, 0), 7.10),
        (local(2026, 7, 1, 9, 30), 7.12),
        (local(2026, 7, 1, 14, 0), 7.05),
        (local(2026, 7, 1, 23, 50), 7.08),
        (local(2026, 7, 2, 10, 0), 7.20),
        (local(2026, 7, 2, 10, 15), 7.22),
        (local(2026, 10, 17, 11, 0), 7.30),
    ])


# --- aggregate_hour / aggregate_day ---


async def test_hourly_counts_sum_to_raw_count(session_factory, old_and_recent):
    """Hourly rows account for every raw sample of the date."""
    async with session_factory() as session:
        written = await retention.aggregate_hour(session, "2026-07-01", TZ)
        await session.commit()

    assert written == 3  # hours 9, 14, 23
    async with session_factory() as session:
        rows = (await session.execute(
            select(HourlyRate).where(HourlyRate.date_partition == "2026-07-01").order_by(HourlyRate.hour)
        )).scalars().all()

    assert [r.hour for r in rows] == [9, 14, 23]
    assert sum(r.sample_count for r in rows) == 4
    nine = rows[0]
    assert nine.avg_rate == pytest.approx(7.11)
    assert nine.min_rate == 7.10
    assert nine.max_rate == 7.12


async def test_aggregate_hour_is_idempotent(session_factory, old_and_recent):
    """Re-aggregating a date replaces its hourly rows."""
    for _ in range(2):
        async with session_factory() as session:
            await retention.aggregate_hour(session, "2026-07-01", TZ)
            await session.commit()

    assert await _count(session_factory, HourlyRate) == 3


async def test_aggregate_day_writes_peak_and_volatility(session_factory, old_and_recent):
    """The daily row carries the peak and the day's range."""
    async with session_factory() as session:
        assert await retention.aggregate_day(session, "2026-07-01") is True
        await session.commit()

    async with session_factory() as session:
        row = (await session.execute(select(DailyRate))).scalar_one()
    assert row.date_partition == "2026-07-01"
    assert row.peak_rate == 7.12
    assert row.min_rate == 7.05
    assert row.volatility == pytest.approx(0.07)
    assert row.sample_count == 4


async def test_aggregate_day_is_idempotent(session_factory, old_and_recent):
    """Re-aggregating a date replaces its daily row instead of adding one."""
    for _ in range(2):
        async with session_factory() as session:
            assert await retention.aggregate_day(session, "2026-07-01") is True
            await session.commit()

    async with session_factory() as session:
        rows = (await session.execute(select(DailyRate))).scalars().all()
    assert len(rows) == 1
    assert rows[0].avg_rate == pytest.approx(7.0875)
    assert rows[0].peak_rate == 7.12
    assert rows[0].min_rate == 7.05
    assert rows[0].sample_count == 4


async def test_empty_date_is_a_noop(session_factory):
    """Aggregating a date without samples writes nothing."""
    async with session_factory() as session:
        assert await retention.aggregate_hour(session, "2026-07-05", TZ) == 0
        assert await retention.aggregate_day(session, "2026-07-05") is False
        await session.commit()

    assert await _count(session_factory, HourlyRate) == 0
    assert await _count(session_factory, DailyRate) == 0


def test_summarize_hours_buckets_in_given_zone():
    """Hour buckets follow the given zone, not UTC."""
    # 23:50 local on 07-01 is 15:50 UTC; the bucket must be 23, not 15
    rows = [make_sample(local(2026, 7, 1, 23, 50), 7.0)]
    aggregates = retention.summarize_hours("2026-07-01", rows, TZ)
    assert [a.hour for a in aggregates] == [23]


# --- run_policy ---


async def test_find_dates_older_than(session_factory, old_and_recent):
    """Only dates before the raw horizon are found."""
    async with session_factory() as session:
        dates = await retention.find_dates_older_than(session, 90, TODAY)
    assert dates == ["2026-07-01", "2026-07-02"]


async def test_run_policy_rolls_up_then_purges(session_factory, old_and_recent):
    """A run rolls expired dates up and then purges their raw samples."""
    summary = await retention.run_policy(
        session_factory, 90, 365, dry_run=False, today=TODAY, tz=TZ
    )

    assert summary.dates_found == ["2026-07-01", "2026-07-02"]
    assert summary.dates_processed == 2
    assert summary.hourly_rows_created == 4
    assert summary.daily_rows_created == 2
    assert summary.raw_rows_deleted == 6
    assert summary.failed_dates == []
    assert summary.raw_cutoff == "2026-07-20"

    assert await _count(session_factory, Sample) == 1
    assert await _count(session_factory, HourlyRate) == 4
    assert await _count(session_factory, DailyRate) == 2


async def test_dry_run_reports_without_mutating(session_factory, old_and_recent):
    """A dry run reports the same counts and writes nothing."""
    summary = await retention.run_policy(
        session_factory, 90, 365, dry_run=True, today=TODAY, tz=TZ
    )

    assert summary.dry_run is True
    assert summary.dates_found == ["2026-07-01", "2026-07-02"]
    assert summary.hourly_rows_created == 4
    assert summary.daily_rows_created == 2
    assert summary.raw_rows_deleted == 6

    assert await _count(session_factory, Sample) == 7
    assert await _count(session_factory, HourlyRate) == 0
    assert await _count(session_factory, DailyRate) == 0


async def test_failed_date_keeps_its_raw_samples(session_factory, old_and_recent, monkeypatch):
    """A date that fails to aggregate keeps its raw samples."""
    real_aggregate_hour = retention.aggregate_hour

    async def flaky_aggregate_hour(session, partition, tz):
        if partition == "2026-07-02":
            raise DataAccessError("disk I/O error")
        return await real_aggregate_hour(session, partition, tz)

    monkeypatch.setattr(retention, "aggregate_hour", flaky_aggregate_hour)

    summary = await retention.run_policy(
        session_factory, 90, 365, dry_run=False, today=TODAY, tz=TZ
    )

    assert summary.failed_dates == ["2026-07-02"]
    assert summary.dates_processed == 1
    assert summary.raw_cutoff == "2026-07-02"
    assert summary.raw_rows_deleted == 4

    async with session_factory() as session:
        remaining = (await session.execute(
            select(Sample.date_partition).distinct().order_by(Sample.date_partition)
        )).scalars().all()
    assert remaining == ["2026-07-02", "2026-10-17"]
    assert await _count(session_factory, DailyRate) == 1


async def test_oldest_date_failing_blocks_all_raw_purging(session_factory, old_and_recent, monkeypatch):
    """If the oldest date fails no raw data is purged."""
    real_aggregate_hour = retention.aggregate_hour

    async def flaky_aggregate_hour(session, partition, tz):
        if partition == "2026-07-01":
            raise DataAccessError("disk I/O error")
        return await real_aggregate_hour(session, partition, tz)

    monkeypatch.setattr(retention, "aggregate_hour", flaky_aggregate_hour)

    summary = await retention.run_policy(
        session_factory, 90, 365, dry_run=False, today=TODAY, tz=TZ
    )

    assert summary.failed_dates == ["2026-07-01"]
    assert summary.raw_rows_deleted == 0
    assert await _count(session_factory, Sample) == 7


async def test_hourly_tier_expires_but_daily_is_kept(session_factory, add_rows):
    """Hourly rows expire while daily rows stay."""
    await add_rows([
        make_hourly("2025-01-01", 9, 7.0),
        make_hourly("2026-07-01", 9, 7.1),
        make_daily("2025-01-01", 7.0),
    ])

    summary = await retention.run_policy(
        session_factory, 90, 365, dry_run=False, today=TODAY, tz=TZ
    )

    assert summary.hourly_rows_deleted == 1
    assert await _count(session_factory, HourlyRate) == 1
    assert await _count(session_factory, DailyRate) == 1


async def test_run_policy_with_nothing_expired(session_factory, add_samples):
    """A run with nothing expired changes nothing."""
    await add_samples([(local(2026, 10, 17, 9), 7.3)])

    summary = await retention.run_policy(
        session_factory, 90, 365, dry_run=False, today=TODAY, tz=TZ
    )

    assert summary.dates_found == []
    assert summary.raw_rows_deleted == 0
    assert await _count(session_factory, Sample) == 1


async def test_hourly_horizon_shorter_than_raw_is_rejected(session_factory, old_and_recent):
    """A run that would purge the hourly rows it just wrote is refused untouched."""
    with pytest.raises(ValueError):
        await retention.run_policy(session_factory, 90, 30, dry_run=False, today=TODAY, tz=TZ)

    assert await _count(session_factory, Sample) == 7
    assert await _count(session_factory, HourlyRate) == 0


async def test_purged_dates_keep_their_hourly_rows(session_factory, add_samples, add_rows):
    """Backlog older than the hourly horizon keeps the hourly rows written for it."""
    await add_samples([
        (local(2025, 6, 1, 9, 0), 6.90),
        (local(2025, 6, 1, 15, 0), 6.95),
        (local(2026, 7, 1, 9, 0), 7.10),
    ])
    # an earlier, already aggregated date with no raw samples left
    await add_rows([make_hourly("2025-01-01", 9, 6.80)])

    summary = await retention.run_policy(
        session_factory, 90, 365, dry_run=False, today=TODAY, tz=TZ
    )

    assert summary.dates_found == ["2025-06-01", "2026-07-01"]
    assert summary.raw_rows_deleted == 3
    assert summary.hourly_cutoff == "2025-06-01"
    assert summary.hourly_rows_deleted == 1

    async with session_factory() as session:
        raw_dates = set((await session.execute(select(Sample.date_partition))).scalars())
        hourly_dates = set((await session.execute(select(HourlyRate.date_partition))).scalars())
    assert raw_dates == set()
    for partition in summary.dates_found:
        assert partition in hourly_dates
    assert "2025-01-01" not in hourly_dates


async def test_stats_report_each_tier(session_factory, old_and_recent):
    """Stats report counts and oldest dates for every tier."""
    await retention.run_policy(session_factory, 90, 365, dry_run=False, today=TODAY, tz=TZ)

    async with session_factory() as session:
        stats = await retention.get_stats(session)

    assert stats.raw_count == 1
    assert stats.hourly_count == 4
    assert stats.daily_count == 2
    assert stats.oldest_raw_date == "2026-10-17"
    assert stats.oldest_hourly_date == "2026-07-01"
    assert stats.oldest_daily_date == "2026-07-01"


def test_settings_reject_hourly_horizon_shorter_than_raw():
    """Configured horizons are checked when settings load."""
    with pytest.raises(ValidationError):
        Settings(raw_retention_days=400, hourly_retention_days=365)

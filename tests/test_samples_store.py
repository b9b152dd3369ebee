"""Tests for the sample store query layer."""

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from conftest import TZ, local
from ratewatch.errors import DataAccessError
from ratewatch.services import samples as store


async def test_insert_derives_partition_in_sampling_zone(db):
    """The date partition comes from the sampling zone."""
    sample = await store.insert_sample(
        db, 7.12, datetime(2026, 10, 17, 16, 30, tzinfo=timezone.utc), TZ
    )
    await db.commit()

    assert sample.id is not None
    assert sample.date_partition == "2026-10-18"
    assert await store.count_samples(db) == 1


async def test_insert_rejects_non_positive_rate(db):
    """Non-positive rates are refused."""
    with pytest.raises(ValueError):
        await store.insert_sample(db, 0.0, datetime.now(timezone.utc), TZ)


async def test_latest_and_time_range(db, add_samples):
    """Latest and time-range reads see the stored samples."""
    await add_samples([
        (local(2026, 10, 17, 9), 7.10),
        (local(2026, 10, 17, 11), 7.30),
        (local(2026, 10, 17, 10), 7.20),
    ])

    latest = await store.get_latest_sample(db)
    assert latest.rate == 7.30

    rows = await store.get_samples_by_time_range(
        db, local(2026, 10, 17, 9), local(2026, 10, 17, 10)
    )
    # inclusive on both ends, oldest first
    assert [r.rate for r in rows] == [7.10, 7.20]


async def test_peak_tie_goes_to_first_stored(db, add_samples):
    """On a tie the first stored sample is the peak."""
    await add_samples([
        (local(2026, 10, 17, 9), 7.30),
        (local(2026, 10, 17, 8), 7.30),
    ])

    peak = await store.get_peak_for_date(db, "2026-10-17")

    assert peak.collected_at.replace(tzinfo=timezone.utc) == local(2026, 10, 17, 9)
    assert await store.get_peak_for_date(db, "2026-10-16") is None


async def test_old_raw_dates_are_strictly_older(db, add_samples):
    """A date equal to the cutoff is not old."""
    await add_samples([
        (local(2026, 7, 19, 9), 7.0),
        (local(2026, 7, 20, 9), 7.0),
        (local(2026, 7, 19, 15), 7.0),
    ])

    # cutoff is 2026-07-20; that date itself is kept
    assert await store.get_old_raw_dates(db, 90, date(2026, 10, 18)) == ["2026-07-19"]


async def test_sqlalchemy_failures_become_data_access_errors():
    """Database failures surface as DataAccessError."""
    session = AsyncMock()
    session.execute.side_effect = OperationalError("SELECT", {}, Exception("unable to open database file"))

    with pytest.raises(DataAccessError, match="counting samples"):
        await store.count_samples(session)

"""Rate analytics endpoints.

GET /api/v1/rates/percentile   -- percentile of a rate within the trailing window
GET /api/v1/rates/ranking      -- human-readable ranking label for a rate
GET /api/v1/rates/daily/{date} -- min/max/avg/count for one date
GET /api/v1/rates/peaks        -- daily peaks for the last N dates
GET /api/v1/rates/history      -- tiered history (raw, then hourly, then daily)
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from ratewatch.config import settings
from ratewatch.dependencies import DbSession
from ratewatch.errors import NoDataError
from ratewatch.schemas.rates import (
    DailyStatsResponse,
    HistoryPointResponse,
    HistoryResponse,
    PeakSummaryResponse,
    PercentileResponse,
)
from ratewatch.services import history
from ratewatch.services import samples as store
from ratewatch.services.recommendation import get_percentile_rank, ranking_label
from ratewatch.timezones import as_utc, sampling_zone

router = APIRouter(prefix="/api/v1", tags=["rates"])

DEFAULT_HISTORY_DAYS = 7


async def _rate_or_latest(db, rate: Optional[float]) -> float:
    if rate is not None:
        return rate
    latest = await store.get_latest_sample(db)
    if latest is None:
        raise NoDataError("no data available")
    return latest.rate


@router.get("/rates/percentile", response_model=PercentileResponse)
async def rate_percentile(
    db: DbSession,
    rate: Optional[float] = Query(None, gt=0),
    days: int = Query(settings.history_days, ge=1, le=365),
) -> PercentileResponse:
    """Percentile of ``rate`` (latest sample when omitted) over the last ``days`` days."""
    value = await _rate_or_latest(db, rate)
    percentile = await get_percentile_rank(db, value, days)
    return PercentileResponse(
        rate=value, days=days, percentile=percentile, ranking=ranking_label(percentile)
    )


@router.get("/rates/ranking")
async def rate_ranking(
    db: DbSession,
    rate: Optional[float] = Query(None, gt=0),
    days: int = Query(settings.history_days, ge=1, le=365),
) -> dict:
    value = await _rate_or_latest(db, rate)
    percentile = await get_percentile_rank(db, value, days)
    return {"rate": value, "days": days, "ranking": ranking_label(percentile)}


@router.get("/rates/daily/{day}", response_model=DailyStatsResponse)
async def daily_stats(day: date, db: DbSession) -> DailyStatsResponse:
    stats = await history.get_daily_stats(db, day.isoformat())
    return DailyStatsResponse.model_validate(stats)


@router.get("/rates/peaks", response_model=PeakSummaryResponse)
async def daily_peaks(
    db: DbSession,
    days: int = Query(7, ge=1, le=90),
) -> PeakSummaryResponse:
    """Peaks for the last ``days`` dates in the sampling zone, newest first."""
    today = datetime.now(timezone.utc).astimezone(sampling_zone()).date()
    summary = await history.get_peak_summary(db, days, today)
    return PeakSummaryResponse.model_validate(summary)


@router.get("/rates/history", response_model=HistoryResponse)
async def rate_history(
    db: DbSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> HistoryResponse:
    """Points for [start, end]; defaults to the last seven days."""
    end = as_utc(end) if end else datetime.now(timezone.utc)
    start = as_utc(start) if start else end - timedelta(days=DEFAULT_HISTORY_DAYS)
    if start > end:
        raise HTTPException(status_code=422, detail="start must not be after end")

    points = await history.get_tiered_history(db, start, end, sampling_zone())
    return HistoryResponse(
        start=start,
        end=end,
        points=[HistoryPointResponse.model_validate(p) for p in points],
    )

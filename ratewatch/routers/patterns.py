"""Rate profile endpoints.

GET /api/v1/patterns/hourly -- hour-of-day profile over the last N days
GET /api/v1/patterns/weekly -- day-of-week profile over the last N weeks
"""

from fastapi import APIRouter, Query

from ratewatch.config import settings
from ratewatch.dependencies import DbSession
from ratewatch.schemas.patterns import DayOfWeekPatternResponse, HourlyPatternResponse
from ratewatch.services.patterns import get_day_of_week_patterns, get_hourly_patterns
from ratewatch.timezones import reference_zone

router = APIRouter(prefix="/api/v1", tags=["patterns"])


@router.get("/patterns/hourly", response_model=list[HourlyPatternResponse])
async def hourly_patterns(
    db: DbSession,
    days: int = Query(settings.pattern_days, ge=1, le=365),
) -> list[HourlyPatternResponse]:
    patterns = await get_hourly_patterns(db, days, reference_zone())
    return [HourlyPatternResponse.model_validate(p) for p in patterns]


@router.get("/patterns/weekly", response_model=list[DayOfWeekPatternResponse])
async def weekly_patterns(
    db: DbSession,
    weeks: int = Query(settings.pattern_weeks, ge=1, le=52),
) -> list[DayOfWeekPatternResponse]:
    patterns = await get_day_of_week_patterns(db, weeks, reference_zone())
    return [DayOfWeekPatternResponse.model_validate(p) for p in patterns]

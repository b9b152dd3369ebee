"""Recommendation endpoint.

GET /api/v1/recommendation?amount= -- exchange-now / wait advice for the latest rate.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Query

from ratewatch.config import settings
from ratewatch.dependencies import DbSession
from ratewatch.metrics import recommendations_issued
from ratewatch.schemas.recommendation import RecommendationResponse
from ratewatch.services.recommendation import BusinessHours, get_recommendation
from ratewatch.timezones import reference_zone

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["recommendation"])


@router.get("/recommendation", response_model=RecommendationResponse)
async def recommend(
    db: DbSession,
    amount: Optional[float] = Query(None, gt=0),
) -> RecommendationResponse:
    """Recommend whether to exchange ``amount`` (in the tracked currency) now.

    Returns 404 before any sample exists and 422 while the history window
    holds fewer samples than configured.
    """
    rec = await get_recommendation(
        db,
        amount,
        tz=reference_zone(),
        business_hours=BusinessHours(settings.business_hours_start, settings.business_hours_end),
        history_days=settings.history_days,
        min_samples=settings.min_history_samples,
        pattern_days=settings.pattern_days,
        pattern_weeks=settings.pattern_weeks,
    )
    recommendations_issued.labels(action=rec.action.value).inc()
    log.info(
        "recommendation_issued",
        action=rec.action.value,
        score=rec.confidence_score,
        percentile=rec.percentile_rank,
    )
    return RecommendationResponse.model_validate(rec)

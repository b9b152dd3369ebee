"""Retention endpoints.

GET  /api/v1/retention/stats -- row counts and oldest date per storage tier
POST /api/v1/retention/run   -- run the retention policy now (optionally dry)
"""

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException

from ratewatch.config import settings
from ratewatch.dependencies import DbSession, SessionFactory
from ratewatch.metrics import record_retention
from ratewatch.schemas.retention import (
    RetentionRunRequest,
    RetentionStatsResponse,
    RetentionSummaryResponse,
)
from ratewatch.services import retention
from ratewatch.timezones import sampling_zone

router = APIRouter(prefix="/api/v1", tags=["retention"])


@router.get("/retention/stats", response_model=RetentionStatsResponse)
async def retention_stats(db: DbSession) -> RetentionStatsResponse:
    stats = await retention.get_stats(db)
    return RetentionStatsResponse.model_validate(stats)


@router.post("/retention/run", response_model=RetentionSummaryResponse)
async def run_retention(
    body: RetentionRunRequest,
    session_factory: SessionFactory,
) -> RetentionSummaryResponse:
    """Run the policy with the given horizons; dry runs write nothing."""
    tz = sampling_zone()
    try:
        summary = await retention.run_policy(
            session_factory,
            body.raw_days or settings.raw_retention_days,
            body.hourly_days or settings.hourly_retention_days,
            dry_run=body.dry_run,
            today=datetime.now(timezone.utc).astimezone(tz).date(),
            tz=tz,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    record_retention(summary)
    return RetentionSummaryResponse.model_validate(summary)

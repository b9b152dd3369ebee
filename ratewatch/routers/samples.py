"""Sample ingestion endpoints.

POST /api/v1/samples        -- store a rate sample and run alert checks on it.
GET  /api/v1/samples/latest -- the most recent stored sample.
"""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Request

from ratewatch.config import settings
from ratewatch.dependencies import DbSession
from ratewatch.errors import NoDataError
from ratewatch.metrics import alerts_fired, samples_ingested
from ratewatch.schemas.sample import (
    AlertResponse,
    SampleCreate,
    SampleIngested,
    SampleResponse,
)
from ratewatch.services import samples as store
from ratewatch.services.alerts import check_rate, dispatch
from ratewatch.services.patterns import find_hourly_pattern, get_hourly_patterns
from ratewatch.timezones import as_utc, reference_zone, sampling_zone

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["samples"])


@router.post("/samples", response_model=SampleIngested, status_code=201)
async def ingest_sample(body: SampleCreate, request: Request, db: DbSession) -> SampleIngested:
    """Store a sample, then check it against the alert rules.

    Alert state (cooldowns, previous rate) is held on app.state and swapped
    under a lock so concurrent ingests see a consistent previous rate.
    """
    collected_at = as_utc(body.collected_at) if body.collected_at else datetime.now(timezone.utc)
    sample = await store.insert_sample(
        db,
        body.rate,
        collected_at,
        sampling_zone(),
        currency_code=body.currency_code or settings.currency_code,
    )
    await db.commit()
    samples_ingested.inc()

    state = request.app.state
    config = state.alert_config
    hourly_pattern = None
    if config.check_patterns:
        tz = reference_zone()
        patterns = await get_hourly_patterns(db, settings.pattern_days, tz)
        hourly_pattern = find_hourly_pattern(patterns, collected_at.astimezone(tz).hour)

    async with state.alert_lock:
        alerts, state.alert_state = check_rate(
            config, state.alert_state, sample.rate, collected_at, hourly_pattern
        )

    for alert in alerts:
        alerts_fired.labels(type=alert.type.value).inc()
    if alerts:
        await dispatch(state.notifiers, alerts)

    log.info("sample_ingested", sample_id=sample.id, rate=sample.rate, alerts=len(alerts))
    return SampleIngested(
        sample=SampleResponse.model_validate(sample),
        alerts=[AlertResponse.model_validate(a) for a in alerts],
    )


@router.get("/samples/latest", response_model=SampleResponse)
async def latest_sample(db: DbSession) -> SampleResponse:
    sample = await store.get_latest_sample(db)
    if sample is None:
        raise NoDataError("no data available")
    return SampleResponse.model_validate(sample)

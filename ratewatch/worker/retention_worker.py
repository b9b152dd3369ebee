"""Retention worker: scheduled roll-up and purge of old samples.

Runs the retention policy periodically:
1. Discover dates whose raw samples passed the raw retention horizon
2. Aggregate each into hourly and daily rows (failures are skipped, not fatal)
3. Purge raw samples that are safely aggregated
4. Purge hourly rows past the hourly retention horizon

Every cycle leaves a RetentionRun audit row. Only one cycle runs per
interval; a recent completed run makes the next cycle a no-op.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from ratewatch.config import settings
from ratewatch.database import async_session_factory
from ratewatch.metrics import record_retention
from ratewatch.models.retention_run import RetentionRun
from ratewatch.services.retention import run_policy
from ratewatch.timezones import as_utc, sampling_zone

log = structlog.get_logger(__name__)

# Let the app warm up before the first cycle
INITIAL_DELAY_SECONDS = 60


async def run_retention_cycle(
    session_factory: Optional[async_sessionmaker] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Execute one retention cycle.

    Returns stats dict for audit trail.
    """
    session_factory = session_factory or async_session_factory
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    tz = sampling_zone()

    async with session_factory() as session:
        # Check for recent completed run (idempotency)
        cutoff = now - timedelta(hours=settings.retention_interval_hours)
        recent = await session.execute(
            select(RetentionRun)
            .where(RetentionRun.completed_at > cutoff, RetentionRun.status == "completed")
            .limit(1)
        )
        if recent.scalar_one_or_none():
            log.info("retention_skipped", reason="recent_run_exists")
            return {"skipped": True}

        run = RetentionRun(status="running", started_at=now)
        session.add(run)
        await session.commit()

        try:
            summary = await run_policy(
                session_factory,
                settings.raw_retention_days,
                settings.hourly_retention_days,
                dry_run=False,
                today=now.astimezone(tz).date(),
                tz=tz,
            )
        except Exception as exc:
            log.error("retention_cycle_failed", exc_info=True)
            run.status = "failed"
            run.completed_at = datetime.now(timezone.utc)
            run.stats_json = {"error": str(exc)}
            await session.commit()
            return {"failed": True, "error": str(exc)}

        stats = summary.to_dict()
        record_retention(summary)
        run.status = "partial" if summary.failed_dates else "completed"
        run.completed_at = datetime.now(timezone.utc)
        run.stats_json = stats
        await session.commit()

    return stats


async def retention_worker_loop():
    """Background loop that runs retention on a configurable interval."""
    interval = settings.retention_interval_hours * 3600
    log.info("retention_worker_started", interval_hours=settings.retention_interval_hours)

    await asyncio.sleep(INITIAL_DELAY_SECONDS)

    while True:
        try:
            await run_retention_cycle()
        except Exception:
            log.error("retention_worker_error", exc_info=True)
        await asyncio.sleep(interval)

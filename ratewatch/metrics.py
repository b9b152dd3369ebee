"""Prometheus metrics for ingestion, retention, recommendations and alerts."""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

samples_ingested = Counter(
    "ratewatch_samples_ingested_total",
    "Rate samples accepted by the ingest endpoint",
)
retention_rows_created = Counter(
    "ratewatch_retention_rows_created_total",
    "Aggregate rows written by retention runs",
    ["tier"],
)
retention_rows_deleted = Counter(
    "ratewatch_retention_rows_deleted_total",
    "Rows purged by retention runs",
    ["tier"],
)
retention_failed_dates = Counter(
    "ratewatch_retention_failed_dates_total",
    "Dates whose aggregation failed and were left for the next run",
)
recommendations_issued = Counter(
    "ratewatch_recommendations_total",
    "Recommendations produced",
    ["action"],
)
alerts_fired = Counter(
    "ratewatch_alerts_fired_total",
    "Rate alerts raised",
    ["type"],
)


def record_retention(summary) -> None:
    """Count a non-dry-run RetentionSummary."""
    if summary.dry_run:
        return
    retention_rows_created.labels(tier="hourly").inc(summary.hourly_rows_created)
    retention_rows_created.labels(tier="daily").inc(summary.daily_rows_created)
    retention_rows_deleted.labels(tier="raw").inc(summary.raw_rows_deleted)
    retention_rows_deleted.labels(tier="hourly").inc(summary.hourly_rows_deleted)
    retention_failed_dates.inc(len(summary.failed_dates))


async def metrics_endpoint() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

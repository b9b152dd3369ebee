"""Pydantic schemas for retention runs and tier statistics."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RetentionRunRequest(BaseModel):
    """Manual retention run. Omitted horizons fall back to the configured ones."""

    raw_days: Optional[int] = Field(None, ge=1)
    hourly_days: Optional[int] = Field(None, ge=1)
    dry_run: bool = False


class RetentionSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    dry_run: bool
    dates_found: list[str]
    dates_processed: int
    hourly_rows_created: int
    daily_rows_created: int
    raw_rows_deleted: int
    hourly_rows_deleted: int
    failed_dates: list[str]
    raw_cutoff: Optional[str] = None
    hourly_cutoff: Optional[str] = None


class RetentionStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    raw_count: int
    hourly_count: int
    daily_count: int
    oldest_raw_date: Optional[str] = None
    oldest_hourly_date: Optional[str] = None
    oldest_daily_date: Optional[str] = None

"""Pydantic schemas for sample ingestion and response."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ratewatch.services.alerts import AlertType
from ratewatch.timezones import as_utc


class SampleCreate(BaseModel):
    """Request schema for storing a new rate sample."""

    rate: float = Field(gt=0)
    # Defaults to receipt time; naive values are taken as UTC
    collected_at: Optional[datetime] = None
    currency_code: Optional[str] = Field(None, min_length=3, max_length=3)


class SampleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    currency_code: str
    rate: float
    collected_at: datetime
    date_partition: str

    @field_validator("collected_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        # SQLite hands back naive UTC
        return as_utc(value)


class AlertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: AlertType
    message: str
    rate: float
    timestamp: datetime
    threshold: float = 0.0
    change: float = 0.0


class SampleIngested(BaseModel):
    """Response after a sample is stored: the row plus any alerts it raised."""

    sample: SampleResponse
    alerts: list[AlertResponse] = Field(default_factory=list)

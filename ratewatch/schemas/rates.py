"""Pydantic schemas for percentile, daily stats, peaks and history responses."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class PercentileResponse(BaseModel):
    rate: float
    days: int
    percentile: float
    ranking: str


class DailyStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: str
    min_rate: float
    max_rate: float
    avg_rate: float
    sample_count: int
    peak_time: Optional[datetime] = None


class DailyPeakResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: str
    peak_rate: Optional[float] = None
    peak_time: Optional[datetime] = None


class PeakSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    peaks: list[DailyPeakResponse]
    highest_peak: Optional[float] = None
    lowest_peak: Optional[float] = None
    average_peak: Optional[float] = None
    peak_range: Optional[float] = None


class HistoryPointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    rate: float
    source: str


class HistoryResponse(BaseModel):
    start: datetime
    end: datetime
    points: list[HistoryPointResponse]

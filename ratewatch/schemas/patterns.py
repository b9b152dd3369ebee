"""Pydantic schemas for hour-of-day and day-of-week profiles."""

from pydantic import BaseModel, ConfigDict


class HourlyPatternResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    hour: int
    avg_rate: float
    min_rate: float
    max_rate: float
    sample_count: int
    peak_frequency: int


class DayOfWeekPatternResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day_of_week: int
    day_name: str
    avg_rate: float
    min_rate: float
    max_rate: float
    avg_range: float
    sample_days: int

"""Pydantic schemas for the recommendation response."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ratewatch.services.recommendation import Action, Confidence, RiskLevel


class HourPredictionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    hour: int
    time_label: str
    predicted_rate: float
    confidence: float
    reasoning: str


class TimeWindowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start_hour: int
    end_hour: int
    start_time: datetime
    end_time: datetime
    expected_rate: float
    probability: float
    reasoning: str


class HistoricalContextResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    avg_rate: float
    min_rate: float
    max_rate: float
    std_dev: float
    day_of_week: str
    current_hour: int
    hourly_avg_rate: float
    daily_avg_rate: float


class RecommendationResponse(BaseModel):
    """Serialized Recommendation; amounts are None when no amount was given."""

    model_config = ConfigDict(from_attributes=True)

    action: Action
    confidence: Confidence
    confidence_score: float
    current_rate: float
    percentile_rank: float
    historical: HistoricalContextResponse
    next_check_time: datetime
    amount: Optional[float] = None
    converted_amount: Optional[float] = None
    predictions: list[HourPredictionResponse] = Field(default_factory=list)
    optimal_window: Optional[TimeWindowResponse] = None
    reasoning: list[str] = Field(default_factory=list)
    potential_gain: float = 0.0
    potential_loss: float = 0.0
    risk_level: RiskLevel

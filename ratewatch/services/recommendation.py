"""Exchange-now / wait recommendation engine.

Produces an explainable, bounded-confidence recommendation from the latest
sample, the trailing history window and the hourly/weekday profiles. The
short-horizon "prediction" is a fixed linear blend, not a fitted model:

    predicted = 0.7 * hour_avg + 0.3 * (current + 0.3 * (current - current_hour_avg))

The blend weights and the scoring table below are fixed; reasoning
strings and downstream expectations are keyed to their exact output.

Score (0-100):
  percentile rank          up to 40
  current vs hour average  up to 25
  optimal window timing    up to 35
Decision: >= 75 EXCHANGE_NOW, 40-74 NEUTRAL, < 40 WAIT.

Every call recomputes from the store; no state survives between calls.
"""

import enum
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ratewatch.errors import InsufficientDataError, NoDataError
from ratewatch.services import samples as store
from ratewatch.services.patterns import (
    DAY_NAMES,
    DayOfWeekPattern,
    HourlyPattern,
    find_day_of_week_pattern,
    find_hourly_pattern,
    get_day_of_week_patterns,
    get_hourly_patterns,
    sunday_based_weekday,
)
from ratewatch.timezones import as_utc


class Action(str, enum.Enum):
    EXCHANGE_NOW = "EXCHANGE_NOW"  # exchange immediately
    WAIT = "WAIT"                  # better rate likely soon
    NEUTRAL = "NEUTRAL"            # no strong signal


class Confidence(str, enum.Enum):
    VERY_HIGH = "VERY_HIGH"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class RiskLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


# Prediction blend
PATTERN_WEIGHT = 0.7
CURRENT_WEIGHT = 0.3
TREND_DAMPING = 0.3
PREDICTION_HORIZON_HOURS = 6

# Per-prediction confidence
BASE_PREDICTION_CONFIDENCE = 50.0
DENSE_HOUR_SAMPLES = 100
DENSE_HOUR_BONUS = 20.0
CALM_HOUR_RANGE_RATIO = 0.01
CALM_HOUR_BONUS = 15.0
MAX_PREDICTION_CONFIDENCE = 85.0

# Optimal window timing
NEAR_WINDOW_HOURS = 3
WORTH_WAITING_GAIN_PCT = 0.3

# Risk level thresholds on stddev / mean
HIGH_RISK_VOLATILITY = 0.02
MEDIUM_RISK_VOLATILITY = 0.01


@dataclass(frozen=True)
class BusinessHours:
    """Operating window [start, end) in the reference zone."""

    start: int = 8
    end: int = 22

    def contains(self, hour: int) -> bool:
        return self.start <= hour < self.end


@dataclass(frozen=True)
class HourPrediction:
    hour: int
    time_label: str
    predicted_rate: float
    confidence: float
    reasoning: str


@dataclass(frozen=True)
class TimeWindow:
    start_hour: int
    end_hour: int
    start_time: datetime
    end_time: datetime
    expected_rate: float
    probability: float
    reasoning: str


@dataclass(frozen=True)
class HistoricalContext:
    avg_rate: float
    min_rate: float
    max_rate: float
    std_dev: float
    day_of_week: str
    current_hour: int
    hourly_avg_rate: float
    daily_avg_rate: float


@dataclass
class Recommendation:
    action: Action
    confidence: Confidence
    confidence_score: float
    current_rate: float
    percentile_rank: float
    historical: HistoricalContext
    next_check_time: datetime
    amount: Optional[float] = None
    converted_amount: Optional[float] = None
    predictions: list[HourPrediction] = field(default_factory=list)
    optimal_window: Optional[TimeWindow] = None
    reasoning: list[str] = field(default_factory=list)
    potential_gain: float = 0.0
    potential_loss: float = 0.0
    risk_level: RiskLevel = RiskLevel.LOW


def calculate_percentile(rate: float, values: list[float]) -> float:
    """Share of ``values`` at or below ``rate``, scaled to 0-100."""
    if not values:
        return 0.0
    at_or_below = sum(1 for v in values if v <= rate)
    return at_or_below / len(values) * 100.0


def ranking_label(percentile: float) -> str:
    if percentile >= 95:
        return "Excellent (top 5%)"
    if percentile >= 85:
        return "Very Good (top 15%)"
    if percentile >= 70:
        return "Good (top 30%)"
    if percentile >= 50:
        return "Average (median)"
    if percentile >= 30:
        return "Below Average (bottom 70%)"
    return "Poor (bottom 30%)"


def build_historical_context(
    values: list[float],
    hourly_patterns: list[HourlyPattern],
    dow_patterns: list[DayOfWeekPattern],
    now: datetime,
    tz: timezone,
) -> HistoricalContext:
    n = len(values)
    avg = sum(values) / n
    # Population variance via E[x^2] - E[x]^2; clamp float noise below zero
    variance = sum(v * v for v in values) / n - avg * avg
    std_dev = math.sqrt(max(variance, 0.0))

    local_now = as_utc(now).astimezone(tz)
    weekday = sunday_based_weekday(local_now.date())
    hour_pattern = find_hourly_pattern(hourly_patterns, local_now.hour)
    day_pattern = find_day_of_week_pattern(dow_patterns, weekday)

    return HistoricalContext(
        avg_rate=avg,
        min_rate=min(values),
        max_rate=max(values),
        std_dev=std_dev,
        day_of_week=DAY_NAMES[weekday],
        current_hour=local_now.hour,
        hourly_avg_rate=hour_pattern.avg_rate if hour_pattern else 0.0,
        daily_avg_rate=day_pattern.avg_rate if day_pattern else 0.0,
    )


def predict_rate(pattern_avg: float, current_rate: float, current_hour_avg: float) -> float:
    trend = current_rate - current_hour_avg
    return PATTERN_WEIGHT * pattern_avg + CURRENT_WEIGHT * (current_rate + TREND_DAMPING * trend)


def prediction_confidence(pattern: HourlyPattern) -> float:
    confidence = BASE_PREDICTION_CONFIDENCE
    if pattern.sample_count > DENSE_HOUR_SAMPLES:
        confidence += DENSE_HOUR_BONUS
    if (pattern.max_rate - pattern.min_rate) / pattern.avg_rate < CALM_HOUR_RANGE_RATIO:
        confidence += CALM_HOUR_BONUS
    return min(confidence, MAX_PREDICTION_CONFIDENCE)


def predict_next_hours(
    now: datetime,
    hourly_patterns: list[HourlyPattern],
    current_rate: float,
    context: HistoricalContext,
    tz: timezone,
    business_hours: BusinessHours,
    pattern_days: int,
) -> list[HourPrediction]:
    """Predict up to the next six operating hours; stops at the operating boundary."""
    current_hour = as_utc(now).astimezone(tz).hour
    predictions = []
    for offset in range(1, PREDICTION_HORIZON_HOURS + 1):
        hour = (current_hour + offset) % 24
        if not business_hours.contains(hour):
            break
        pattern = find_hourly_pattern(hourly_patterns, hour)
        if pattern is None:
            continue

        reasoning = f"Based on {pattern.sample_count} samples"
        if pattern.peak_frequency > 0 and pattern_days > 0:
            reasoning += f", peak hour {pattern.peak_frequency / pattern_days * 100:.0f}% of time"

        predictions.append(
            HourPrediction(
                hour=hour,
                time_label=f"{hour:02d}:00",
                predicted_rate=predict_rate(pattern.avg_rate, current_rate, context.hourly_avg_rate),
                confidence=prediction_confidence(pattern),
                reasoning=reasoning,
            )
        )
    return predictions


def find_optimal_window(
    now: datetime,
    predictions: list[HourPrediction],
    tz: timezone,
    business_hours: BusinessHours,
) -> Optional[TimeWindow]:
    """One-hour window around the best predicted hour, clamped to operating hours."""
    if not predictions:
        return None
    best = max(predictions, key=lambda p: p.predicted_rate)

    start_hour = best.hour
    end_hour = best.hour + 1
    if end_hour >= business_hours.end:
        end_hour = business_hours.end - 1

    # Predicted hours always lie ahead, so an earlier clock hour means tomorrow
    local_now = as_utc(now).astimezone(tz)
    offset = (start_hour - local_now.hour) % 24
    start_time = local_now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=offset)
    end_time = start_time + timedelta(
        hours=(end_hour - start_hour) % 24, minutes=59, seconds=59
    )

    return TimeWindow(
        start_hour=start_hour,
        end_hour=end_hour,
        start_time=start_time,
        end_time=end_time,
        expected_rate=best.predicted_rate,
        probability=best.confidence,
        reasoning=(
            f"Historical data shows {start_hour:02d}:00-{end_hour:02d}:00 "
            "typically has higher rates"
        ),
    )


def _percentile_points(percentile: float) -> tuple[float, str]:
    if percentile >= 90:
        return 40, "excellent"
    if percentile >= 75:
        return 30, "good"
    if percentile >= 50:
        return 15, "average"
    return 0, "below average"


def determine_action(
    current_rate: float,
    percentile: float,
    window: Optional[TimeWindow],
    context: HistoricalContext,
    now: datetime,
) -> tuple[Action, Confidence, float, list[str]]:
    """Score the three factors and map the total to an action and confidence."""
    reasons = []
    score = 0.0

    points, label = _percentile_points(percentile)
    score += points
    reasons.append(f"Current rate is at {percentile:.0f}th percentile ({label}) (+{points:.0f})")

    if context.hourly_avg_rate > 0:
        diff_pct = (current_rate - context.hourly_avg_rate) / context.hourly_avg_rate * 100
        if diff_pct > 0.5:
            score += 25
            reasons.append(f"Rate is {diff_pct:.2f}% above hourly average (+25)")
        elif diff_pct >= 0:
            score += 15
            reasons.append("Rate matches hourly average (+15)")
        else:
            score += 5
            reasons.append(f"Rate is {-diff_pct:.2f}% below hourly average (+5)")
    else:
        reasons.append("No hourly average for the current hour yet (+0)")

    if window is None:
        score += 10
        reasons.append("No prediction window available (+10)")
    else:
        hours_until = (window.start_time - as_utc(now)).total_seconds() / 3600
        if hours_until <= 0:
            score += 35
            reasons.append("Currently in predicted optimal time window (+35)")
        elif hours_until <= NEAR_WINDOW_HOURS:
            gain_pct = (window.expected_rate - current_rate) / current_rate * 100
            if gain_pct > WORTH_WAITING_GAIN_PCT:
                score += 5
                reasons.append(
                    f"Better rate predicted in {hours_until:.0f} hours (+{gain_pct:.2f}%) (+5)"
                )
            else:
                score += 20
                reasons.append(
                    f"Marginal improvement expected ({hours_until:.0f} hours, +{gain_pct:.2f}%) (+20)"
                )
        else:
            score += 10
            reasons.append("No significant improvement predicted in near term (+10)")

    if score >= 75:
        action = Action.EXCHANGE_NOW
        if score >= 90:
            confidence = Confidence.VERY_HIGH
        elif score >= 80:
            confidence = Confidence.HIGH
        else:
            confidence = Confidence.MEDIUM
    elif score >= 40:
        action = Action.NEUTRAL
        confidence = Confidence.MEDIUM
    else:
        action = Action.WAIT
        confidence = Confidence.HIGH if score < 25 else Confidence.MEDIUM

    return action, confidence, score, reasons


def calculate_risk_reward(
    current_rate: float,
    amount: Optional[float],
    window: Optional[TimeWindow],
    context: HistoricalContext,
) -> tuple[float, float, RiskLevel]:
    """Gain from waiting for the window vs. loss if the rate falls to the 30-day low.

    ``amount`` is in the tracked (base) currency; it converts at ``amount * rate``.
    """
    if not amount or window is None or window.expected_rate <= current_rate:
        return 0.0, 0.0, RiskLevel.LOW

    converted_now = amount * current_rate
    potential_gain = amount * window.expected_rate - converted_now
    potential_loss = converted_now - amount * context.min_rate

    volatility = context.std_dev / context.avg_rate
    if volatility > HIGH_RISK_VOLATILITY:
        risk = RiskLevel.HIGH
    elif volatility > MEDIUM_RISK_VOLATILITY:
        risk = RiskLevel.MEDIUM
    else:
        risk = RiskLevel.LOW
    return potential_gain, potential_loss, risk


def determine_next_check_time(
    now: datetime, action: Action, window: Optional[TimeWindow]
) -> datetime:
    if action == Action.EXCHANGE_NOW:
        return now + timedelta(minutes=30)
    if action == Action.WAIT and window is not None:
        return window.start_time - timedelta(minutes=30)
    return now + timedelta(hours=1)


async def get_recommendation(
    session: AsyncSession,
    amount: Optional[float],
    *,
    tz: timezone,
    business_hours: BusinessHours,
    now: Optional[datetime] = None,
    history_days: int = 30,
    min_samples: int = 100,
    pattern_days: int = 30,
    pattern_weeks: int = 4,
) -> Recommendation:
    """Analyze current conditions and recommend an action.

    Raises:
        NoDataError: no sample has been stored yet.
        InsufficientDataError: fewer than ``min_samples`` in the history window.
    """
    latest = await store.get_latest_sample(session)
    if latest is None:
        raise NoDataError("no data available")

    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    current_rate = latest.rate

    history = await store.get_samples_by_time_range(
        session, now - timedelta(days=history_days), now
    )
    if len(history) < min_samples:
        raise InsufficientDataError(min_samples, len(history))
    values = [row.rate for row in history]

    hourly_patterns = await get_hourly_patterns(session, pattern_days, tz, now)
    dow_patterns = await get_day_of_week_patterns(session, pattern_weeks, tz, now)

    percentile = calculate_percentile(current_rate, values)
    context = build_historical_context(values, hourly_patterns, dow_patterns, now, tz)
    predictions = predict_next_hours(
        now, hourly_patterns, current_rate, context, tz, business_hours, pattern_days
    )
    window = find_optimal_window(now, predictions, tz, business_hours)
    action, confidence, score, reasons = determine_action(
        current_rate, percentile, window, context, now
    )
    gain, loss, risk = calculate_risk_reward(current_rate, amount, window, context)

    return Recommendation(
        action=action,
        confidence=confidence,
        confidence_score=score,
        current_rate=current_rate,
        percentile_rank=percentile,
        historical=context,
        next_check_time=determine_next_check_time(now, action, window),
        amount=amount,
        converted_amount=amount * current_rate if amount else None,
        predictions=predictions,
        optimal_window=window,
        reasoning=reasons,
        potential_gain=gain,
        potential_loss=loss,
        risk_level=risk,
    )


async def get_percentile_rank(
    session: AsyncSession,
    rate: float,
    days: int,
    now: Optional[datetime] = None,
) -> float:
    end = as_utc(now) if now is not None else datetime.now(timezone.utc)
    rows = await store.get_samples_by_time_range(session, end - timedelta(days=days), end)
    if not rows:
        raise NoDataError("no historical data available")
    return calculate_percentile(rate, [row.rate for row in rows])


async def get_historical_ranking(
    session: AsyncSession,
    rate: float,
    days: int,
    now: Optional[datetime] = None,
) -> str:
    return ranking_label(await get_percentile_rank(session, rate, days, now))

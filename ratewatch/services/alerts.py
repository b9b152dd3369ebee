"""Rate alert checks and notification transports.

Alert checking is a pure function over an explicit ``AlertState`` value:
callers pass the previous state in and keep the state handed back. Cooldown
timestamps and the last seen rate therefore live with the caller, not in
module globals.

Alert types:
  threshold_high / threshold_low -- rate crossed a configured bound
  change_increase / change_decrease -- move vs. the previous rate >= change_percent
  unusual_pattern -- rate deviates from the hour's average by >= N std devs,
                    with std dev approximated as (max - min) / 6
"""

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import httpx
import structlog

from ratewatch.config import Settings
from ratewatch.services.patterns import HourlyPattern

log = structlog.get_logger(__name__)

# An hour needs this many samples before pattern alerts fire
MIN_PATTERN_SAMPLES = 10


class AlertType(str, enum.Enum):
    THRESHOLD_HIGH = "threshold_high"
    THRESHOLD_LOW = "threshold_low"
    CHANGE_INCREASE = "change_increase"
    CHANGE_DECREASE = "change_decrease"
    UNUSUAL = "unusual_pattern"


@dataclass(frozen=True)
class Alert:
    type: AlertType
    message: str
    rate: float
    timestamp: datetime
    threshold: float = 0.0
    change: float = 0.0


@dataclass(frozen=True)
class AlertConfig:
    high_threshold: float = 0.0
    low_threshold: float = 0.0
    change_percent: float = 0.0
    check_patterns: bool = False
    pattern_std_devs: float = 2.0
    cooldown_minutes: int = 30

    @classmethod
    def from_settings(cls, settings: Settings) -> "AlertConfig":
        return cls(
            high_threshold=settings.alert_high_threshold,
            low_threshold=settings.alert_low_threshold,
            change_percent=settings.alert_change_percent,
            check_patterns=settings.alert_check_patterns,
            pattern_std_devs=settings.alert_pattern_std_devs,
            cooldown_minutes=settings.alert_cooldown_minutes,
        )


@dataclass(frozen=True)
class AlertState:
    last_alerts: dict[AlertType, datetime] = field(default_factory=dict)
    last_rate: Optional[float] = None
    last_rate_time: Optional[datetime] = None


def _cooled_down(config: AlertConfig, fired: dict[AlertType, datetime], alert_type: AlertType, now: datetime) -> bool:
    if config.cooldown_minutes <= 0:
        return True
    last = fired.get(alert_type)
    if last is None:
        return True
    return now - last >= timedelta(minutes=config.cooldown_minutes)


def check_rate(
    config: AlertConfig,
    state: AlertState,
    rate: float,
    timestamp: datetime,
    hourly_pattern: Optional[HourlyPattern] = None,
    now: Optional[datetime] = None,
) -> tuple[list[Alert], AlertState]:
    """Evaluate a new rate. Returns the alerts to send and the next state.

    ``hourly_pattern`` is the profile for ``timestamp``'s hour; pattern
    checks are skipped without it.
    """
    now = now or datetime.now(timezone.utc)
    fired = dict(state.last_alerts)
    alerts: list[Alert] = []

    def emit(alert: Alert) -> None:
        alerts.append(alert)
        fired[alert.type] = now

    if config.high_threshold > 0 and rate > config.high_threshold:
        if _cooled_down(config, fired, AlertType.THRESHOLD_HIGH, now):
            emit(Alert(
                type=AlertType.THRESHOLD_HIGH,
                message=f"Rate exceeded high threshold: {rate:.4f} > {config.high_threshold:.4f}",
                rate=rate,
                timestamp=timestamp,
                threshold=config.high_threshold,
            ))

    if config.low_threshold > 0 and rate < config.low_threshold:
        if _cooled_down(config, fired, AlertType.THRESHOLD_LOW, now):
            emit(Alert(
                type=AlertType.THRESHOLD_LOW,
                message=f"Rate dropped below low threshold: {rate:.4f} < {config.low_threshold:.4f}",
                rate=rate,
                timestamp=timestamp,
                threshold=config.low_threshold,
            ))

    if state.last_rate and config.change_percent > 0:
        change_pct = (rate - state.last_rate) / state.last_rate * 100
        if abs(change_pct) >= config.change_percent:
            increase = change_pct > 0
            alert_type = AlertType.CHANGE_INCREASE if increase else AlertType.CHANGE_DECREASE
            if _cooled_down(config, fired, alert_type, now):
                minutes = 0
                if state.last_rate_time is not None:
                    minutes = round((timestamp - state.last_rate_time).total_seconds() / 60)
                emit(Alert(
                    type=alert_type,
                    message=(
                        f"Rate {'increased' if increase else 'decreased'} by "
                        f"{abs(change_pct):.2f}% in {minutes}m: "
                        f"{state.last_rate:.4f} -> {rate:.4f}"
                    ),
                    rate=rate,
                    timestamp=timestamp,
                    change=change_pct,
                ))

    if config.check_patterns and hourly_pattern is not None:
        if _cooled_down(config, fired, AlertType.UNUSUAL, now):
            alert = _pattern_deviation(config, hourly_pattern, rate, timestamp)
            if alert is not None:
                emit(alert)

    next_state = replace(
        state, last_alerts=fired, last_rate=rate, last_rate_time=timestamp
    )
    return alerts, next_state


def _pattern_deviation(
    config: AlertConfig, pattern: HourlyPattern, rate: float, timestamp: datetime
) -> Optional[Alert]:
    if pattern.sample_count < MIN_PATTERN_SAMPLES:
        return None
    std_dev = (pattern.max_rate - pattern.min_rate) / 6.0
    if std_dev == 0:
        return None

    deviation = (rate - pattern.avg_rate) / std_dev
    if abs(deviation) < config.pattern_std_devs:
        return None
    direction = "higher" if deviation > 0 else "lower"
    return Alert(
        type=AlertType.UNUSUAL,
        message=(
            f"Unusual rate at {pattern.hour:02d}:00: {rate:.4f} is "
            f"{abs(deviation):.1f} std devs {direction} than usual (avg: {pattern.avg_rate:.4f})"
        ),
        rate=rate,
        timestamp=timestamp,
        threshold=pattern.avg_rate,
    )


class NotificationError(Exception):
    """Raised when a notification transport rejects an alert."""


class Notifier(Protocol):
    async def notify(self, alert: Alert) -> None: ...


class LogNotifier:
    """Writes alerts to the structured log."""

    async def notify(self, alert: Alert) -> None:
        log.warning(
            "rate_alert",
            type=alert.type.value,
            message=alert.message,
            rate=alert.rate,
            timestamp=alert.timestamp.isoformat(),
        )


class WebhookNotifier:
    """Posts alerts to a group-chat robot webhook as a text message."""

    def __init__(self, webhook_url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._client = client

    @staticmethod
    def format_message(alert: Alert) -> str:
        titles = {
            AlertType.THRESHOLD_HIGH: "Rate above upper bound",
            AlertType.THRESHOLD_LOW: "Rate below lower bound",
            AlertType.CHANGE_INCREASE: "Rate rising fast",
            AlertType.CHANGE_DECREASE: "Rate falling fast",
            AlertType.UNUSUAL: "Unusual rate movement",
        }
        return (
            f"[Rate alert] {titles.get(alert.type, 'Rate update')}\n"
            f"{alert.message}\n"
            f"Time: {alert.timestamp.strftime('%Y-%m-%d %H:%M:%S')}"
        )

    async def notify(self, alert: Alert) -> None:
        payload = {"msgtype": "text", "text": {"content": self.format_message(alert)}}
        if self._client is not None:
            response = await self._client.post(self.webhook_url, json=payload, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=payload)

        if response.status_code != 200:
            raise NotificationError(
                f"webhook returned status {response.status_code}: {response.text}"
            )
        body = response.json()
        if body.get("errcode", 0) != 0:
            raise NotificationError(
                f"webhook error {body.get('errcode')}: {body.get('errmsg', '')}"
            )
        log.debug("webhook_notification_sent", type=alert.type.value)


def build_notifiers(settings: Settings) -> list[Notifier]:
    notifiers: list[Notifier] = [LogNotifier()]
    if settings.alert_webhook_url:
        notifiers.append(
            WebhookNotifier(settings.alert_webhook_url, timeout=settings.alert_webhook_timeout)
        )
    return notifiers


async def dispatch(notifiers: list[Notifier], alerts: list[Alert]) -> int:
    """Send every alert through every notifier. Returns successful deliveries.

    A failing transport is logged and does not stop the others.
    """
    delivered = 0
    for alert in alerts:
        for notifier in notifiers:
            try:
                await notifier.notify(alert)
                delivered += 1
            except (NotificationError, httpx.HTTPError):
                log.error(
                    "alert_notification_failed",
                    notifier=type(notifier).__name__,
                    type=alert.type.value,
                    exc_info=True,
                )
    return delivered

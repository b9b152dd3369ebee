"""Tests for alert checks and notification transports."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from ratewatch.config import Settings
from ratewatch.services.alerts import (
    Alert,
    AlertConfig,
    AlertState,
    AlertType,
    LogNotifier,
    NotificationError,
    WebhookNotifier,
    build_notifiers,
    check_rate,
    dispatch,
)
from ratewatch.services.patterns import HourlyPattern

T0 = datetime(2026, 10, 18, 2, 0, tzinfo=timezone.utc)


def test_high_threshold_fires_once_per_cooldown():
    """A high-threshold alert fires once, then waits out its cooldown."""
    config = AlertConfig(high_threshold=7.2, cooldown_minutes=30)

    alerts, state = check_rate(config, AlertState(), 7.25, T0, now=T0)
    assert [a.type for a in alerts] == [AlertType.THRESHOLD_HIGH]
    assert alerts[0].threshold == 7.2
    assert alerts[0].message == "Rate exceeded high threshold: 7.2500 > 7.2000"

    later = T0 + timedelta(minutes=10)
    alerts, state = check_rate(config, state, 7.26, later, now=later)
    assert alerts == []

    much_later = T0 + timedelta(minutes=31)
    alerts, _ = check_rate(config, state, 7.27, much_later, now=much_later)
    assert [a.type for a in alerts] == [AlertType.THRESHOLD_HIGH]


def test_low_threshold():
    """A rate under the low threshold raises a low alert."""
    config = AlertConfig(low_threshold=7.0)
    alerts, _ = check_rate(config, AlertState(), 6.95, T0, now=T0)
    assert [a.type for a in alerts] == [AlertType.THRESHOLD_LOW]


def test_zero_thresholds_are_disabled():
    """Thresholds set to zero never fire."""
    alerts, _ = check_rate(AlertConfig(), AlertState(), 100.0, T0, now=T0)
    assert alerts == []


def test_change_alert_needs_previous_rate():
    """Change alerts compare against the previous rate and need one."""
    config = AlertConfig(change_percent=1.0)

    alerts, state = check_rate(config, AlertState(), 7.0, T0, now=T0)
    assert alerts == []
    assert state.last_rate == 7.0
    assert state.last_rate_time == T0

    later = T0 + timedelta(minutes=15)
    alerts, state = check_rate(config, state, 7.1, later, now=later)
    assert [a.type for a in alerts] == [AlertType.CHANGE_INCREASE]
    assert alerts[0].change == pytest.approx(1.4286, abs=1e-4)
    assert alerts[0].message == "Rate increased by 1.43% in 15m: 7.0000 -> 7.1000"
    assert state.last_rate == 7.1


def test_change_decrease_and_small_moves():
    """Drops past the limit alert; small moves do not."""
    config = AlertConfig(change_percent=1.0)
    state = AlertState(last_rate=7.0, last_rate_time=T0)

    alerts, _ = check_rate(config, state, 7.05, T0, now=T0)
    assert alerts == []

    alerts, _ = check_rate(config, state, 6.9, T0, now=T0)
    assert [a.type for a in alerts] == [AlertType.CHANGE_DECREASE]
    assert alerts[0].change < 0


def test_cooldowns_are_tracked_per_type():
    """One alert type cooling down does not block another."""
    config = AlertConfig(high_threshold=7.2, change_percent=1.0, cooldown_minutes=30)
    state = AlertState(last_alerts={AlertType.THRESHOLD_HIGH: T0}, last_rate=7.0)

    alerts, _ = check_rate(config, state, 7.25, T0, now=T0 + timedelta(minutes=5))

    assert [a.type for a in alerts] == [AlertType.CHANGE_INCREASE]


def test_zero_cooldown_always_fires():
    """With no cooldown every breach alerts."""
    config = AlertConfig(high_threshold=7.2, cooldown_minutes=0)
    state = AlertState(last_alerts={AlertType.THRESHOLD_HIGH: T0})
    alerts, _ = check_rate(config, state, 7.25, T0, now=T0)
    assert len(alerts) == 1


def test_input_state_is_not_modified():
    """Checking a rate returns new state and leaves the old one alone."""
    config = AlertConfig(high_threshold=7.2)
    state = AlertState()

    _, new_state = check_rate(config, state, 7.25, T0, now=T0)

    assert state.last_alerts == {}
    assert state.last_rate is None
    assert new_state.last_alerts == {AlertType.THRESHOLD_HIGH: T0}


def _pattern(count=20, low=6.97, high=7.03) -> HourlyPattern:
    return HourlyPattern(hour=10, avg_rate=7.0, min_rate=low, max_rate=high, sample_count=count, peak_frequency=0)


def test_unusual_rate_against_hourly_pattern():
    """A rate far from its hour's average raises an unusual-rate alert."""
    config = AlertConfig(check_patterns=True, pattern_std_devs=2.0)

    # std dev ~ 0.06 / 6 = 0.01, so 7.05 is 5 std devs out
    alerts, _ = check_rate(config, AlertState(), 7.05, T0, hourly_pattern=_pattern(), now=T0)

    assert [a.type for a in alerts] == [AlertType.UNUSUAL]
    assert "5.0 std devs higher" in alerts[0].message
    assert alerts[0].threshold == 7.0


def test_pattern_check_skipped_when_not_meaningful():
    """The pattern check is skipped without a usable hourly profile."""
    config = AlertConfig(check_patterns=True)

    for pattern in (_pattern(count=5), _pattern(low=7.0, high=7.0)):
        alerts, _ = check_rate(config, AlertState(), 7.5, T0, hourly_pattern=pattern, now=T0)
        assert alerts == []

    alerts, _ = check_rate(config, AlertState(), 7.005, T0, hourly_pattern=_pattern(), now=T0)
    assert alerts == []


def test_config_from_settings():
    """Alert rules are read from settings."""
    settings = Settings(alert_high_threshold=7.3, alert_cooldown_minutes=5)
    config = AlertConfig.from_settings(settings)
    assert config.high_threshold == 7.3
    assert config.cooldown_minutes == 5


def test_build_notifiers():
    """A webhook notifier is added only when a URL is configured."""
    assert [type(n) for n in build_notifiers(Settings(alert_webhook_url=""))] == [LogNotifier]
    notifiers = build_notifiers(Settings(alert_webhook_url="https://hooks.example/send"))
    assert [type(n) for n in notifiers] == [LogNotifier, WebhookNotifier]


# --- webhook transport ---


def _alert() -> Alert:
    return Alert(
        type=AlertType.THRESHOLD_HIGH,
        message="Rate exceeded high threshold: 7.2500 > 7.2000",
        rate=7.25,
        timestamp=T0,
        threshold=7.2,
    )


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_webhook_posts_text_message():
    """The webhook receives a JSON body with the formatted message."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"errcode": 0, "errmsg": "ok"})

    async with _client(handler) as client:
        await WebhookNotifier("https://hooks.example/send", client=client).notify(_alert())

    assert len(seen) == 1
    assert seen[0]["msgtype"] == "text"
    content = seen[0]["text"]["content"]
    assert "Rate above upper bound" in content
    assert "7.2500 > 7.2000" in content
    assert "Time: 2026-10-18 02:00:00" in content


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"errcode": 93000, "errmsg": "invalid webhook url"}),
    ],
)
async def test_webhook_rejections_raise(response):
    """A non-2xx webhook response raises."""
    async with _client(lambda request: response) as client:
        with pytest.raises(NotificationError):
            await WebhookNotifier("https://hooks.example/send", client=client).notify(_alert())


async def test_dispatch_survives_failing_notifier():
    """One failing notifier does not stop the others."""
    failing = MagicMock()
    failing.notify = AsyncMock(side_effect=NotificationError("webhook down"))
    working = MagicMock()
    working.notify = AsyncMock()

    delivered = await dispatch([failing, working], [_alert(), _alert()])

    assert delivered == 2
    assert working.notify.await_count == 2
    assert failing.notify.await_count == 2


async def test_log_notifier_does_not_raise():
    """The log notifier only logs."""
    await LogNotifier().notify(_alert())

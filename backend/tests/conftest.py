"""Pytest configuration and fixtures."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from stockwatch.alerts.interface import NotificationSender
from stockwatch.alerts.models import AlertOwner, AlertRule, AlertSettings
from stockwatch.clock import ManualClock
from stockwatch.market.models import PriceSnapshot
from stockwatch.realtime.interface import Broadcaster

VN_TZ = ZoneInfo("Asia/Ho_Chi_Minh")


@pytest.fixture
def event_loop_policy():
    """Use the default event loop policy for all async tests."""
    import asyncio

    return asyncio.DefaultEventLoopPolicy()


@pytest.fixture
def tz():
    return VN_TZ


@pytest.fixture
def clock():
    """Manual clock at Monday 2024-03-04 10:00 in Ho Chi Minh City."""
    return ManualClock(datetime(2024, 3, 4, 10, 0, tzinfo=VN_TZ))


@pytest.fixture
def make_snapshot():
    def _make(symbol="ABC", current_price=100_000.0, previous_close=100_000.0, **kwargs):
        return PriceSnapshot(symbol=symbol, current_price=current_price, previous_close=previous_close, **kwargs)

    return _make


@pytest.fixture
def owner():
    return AlertOwner(id="u1", email="an@example.com", first_name="An")


@pytest.fixture
def make_rule(owner):
    def _make(rule_id="r1", symbol="ABC", condition="above", value=100_000.0, settings=None, **kwargs):
        return AlertRule(
            id=rule_id,
            symbol=symbol,
            condition=condition,
            owner=kwargs.pop("owner", owner),
            value=value,
            settings=settings or AlertSettings(),
            **kwargs,
        )

    return _make


class RecordingBroadcaster(Broadcaster):
    def __init__(self):
        self.events = []

    def publish(self, topic, payload):
        self.events.append((topic, payload))

    def topics(self):
        return [topic for topic, _ in self.events]


class RecordingSender(NotificationSender):
    def __init__(self, fail_on=()):
        self.sent = []
        self.fail_on = set(fail_on)

    async def send(self, channel, recipient, message, context):
        if channel in self.fail_on:
            raise RuntimeError(f"{channel.value} is down")
        self.sent.append((channel, recipient.id, message))


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def recording_sender():
    return RecordingSender


@pytest.fixture
def sender():
    return RecordingSender()

"""Shared fixtures for owner alert tests."""

import threading
import time as time_module
from datetime import datetime, timedelta, timezone

import pytest

from owner_alerts.alert_store import AlertStore
from owner_alerts.channels import NotificationChannel
from owner_alerts.engine import AlertEngine
from owner_alerts.models import (
    AlertClassification,
    AlertCode,
    AlertLevel,
    AlertType,
    ChannelId,
    DeliveryResult,
)
from owner_alerts.settings import (
    RecipientSettings,
    StaticOwnerResolver,
    StaticSettingsResolver,
)

OWNER_ID = "owner-1"
START = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeChannel(NotificationChannel):
    """Channel that records sends instead of talking to a provider."""

    def __init__(self, channel_id, result=None, error=None, delay=0.0, configured=True):
        self.channel_id = channel_id
        self.result = result or DeliveryResult.ok(f"{channel_id}-msg")
        self.error = error
        self.delay = delay
        self.configured = configured
        self.sent = []
        self.tests = 0
        self._lock = threading.Lock()

    def send(self, record, settings):
        with self._lock:
            self.sent.append(record.id)
        if self.delay:
            time_module.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result

    def is_configured(self, settings):
        return self.configured

    def test_connection(self, settings):
        self.tests += 1
        return self.result


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "alerts.db")


@pytest.fixture
def store(db_path):
    return AlertStore(db_path)


@pytest.fixture
def owner_settings():
    return RecipientSettings(
        recipient_id=OWNER_ID,
        telegram_chat_id="12345",
        telegram_bot_token="bot-token",
        email_address="owner@example.com",
    )


@pytest.fixture
def telegram():
    return FakeChannel(ChannelId.TELEGRAM)


@pytest.fixture
def email():
    return FakeChannel(ChannelId.EMAIL)


@pytest.fixture
def make_engine(store, clock, owner_settings, telegram, email):
    """Build an engine with fake channels; override pieces per test."""
    def _make(settings=owner_settings, owner_id=OWNER_ID, channels=None, timeout=None):
        resolver = StaticSettingsResolver(settings if settings is not None else {})
        return AlertEngine(
            store=store,
            settings_resolver=resolver,
            owner_resolver=StaticOwnerResolver(owner_id),
            channels=channels if channels is not None else [telegram, email],
            timeout=timeout,
            timezone_name="UTC",
            clock=clock,
        )
    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def quota_low():
    return AlertClassification(
        type=AlertType.QUOTA,
        code=AlertCode.QUOTA_LOW,
        level=AlertLevel.WARNING,
        title="Quota low: Acme",
        message="Monthly quota at 8%.\nUsed: 9,200 / 10,000",
        context={"tenant_id": 42, "tenant_name": "Acme", "remaining_percent": 8},
    )

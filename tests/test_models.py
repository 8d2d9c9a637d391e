"""Tests for alert data models."""

from datetime import date

from owner_alerts.alert_store import AlertRecord, parse_timestamp, to_db_timestamp
from owner_alerts.models import (
    AlertClassification,
    AlertLevel,
    AlertType,
    DeliveryResult,
    DigestPayload,
)

from conftest import START


class TestEnums:
    """Test enum definitions."""

    def test_level_ordering(self):
        assert AlertLevel.INFO < AlertLevel.WARNING < AlertLevel.CRITICAL
        assert max(AlertLevel) == AlertLevel.CRITICAL
        assert sorted(AlertLevel, reverse=True)[0] == AlertLevel.CRITICAL

    def test_type_display_names(self):
        assert AlertType.display_name(AlertType.PROFIT) == "Profit & Margin"
        assert AlertType.display_name("connection_status") == "Connection Status"
        assert AlertType.display_name("custom_thing") == "Custom Thing"


class TestClassification:
    """Tests for AlertClassification."""

    def test_tenant_id_from_context(self):
        c = AlertClassification(AlertType.QUOTA, "Q", AlertLevel.INFO, "t", "m", {"tenant_id": 7})
        assert c.tenant_id == "7"

    def test_no_tenant(self):
        assert AlertClassification(AlertType.QUOTA, "Q", AlertLevel.INFO, "t", "m").tenant_id is None


class TestDeliveryResult:
    """Tests for DeliveryResult constructors."""

    def test_constructors(self):
        assert DeliveryResult.ok("1") == DeliveryResult(success=True, provider_message_id="1")
        assert not DeliveryResult.failed("x").permanent
        assert DeliveryResult.misconfigured("x").permanent


class TestTimestamps:
    """Tests for stored timestamp format."""

    def test_round_trip_keeps_microseconds(self):
        moment = START.replace(microsecond=123456)
        stored = to_db_timestamp(moment)

        assert stored == "2026-03-10T12:00:00.123456+00:00"
        assert parse_timestamp(stored) == moment

    def test_naive_treated_as_utc(self):
        assert to_db_timestamp(START.replace(tzinfo=None)) == to_db_timestamp(START)


class TestAlertRecord:
    """Tests for AlertRecord helpers."""

    def test_to_dict(self):
        record = AlertRecord(
            id="a1", dedup_key="k", alert_type=AlertType.SECURITY, code="IP_MISMATCH",
            level=AlertLevel.CRITICAL, first_seen_at=START, last_seen_at=START,
        )
        data = record.to_dict()

        assert data["type"] == "security"
        assert data["type_label"] == "Security"
        assert data["level"] == "critical"
        assert data["status"] == "open"
        assert data["first_seen_at"] == "2026-03-10T12:00:00+00:00"
        assert data["deliveries"] == {}

    def test_digest_payload_total(self):
        payload = DigestPayload(date=date(2026, 3, 10), counts={"critical": 0, "total": 3})
        assert payload.total == 3
        assert payload.critical_count == 0

"""Tests for the SQLite alert store."""

import sqlite3
from datetime import timedelta

import pytest

from owner_alerts.alert_store import AlertRecord, AlertStatus, AlertStore
from owner_alerts.models import AlertLevel, AlertType, DeliveryResult

from conftest import START


def make_record(store, key="key-1", level=AlertLevel.WARNING, alert_type=AlertType.QUOTA,
                seen=START, tenant_id=None, security=False):
    return AlertRecord(
        id=store.new_id(),
        dedup_key=key,
        alert_type=alert_type,
        code="QUOTA_LOW",
        level=level,
        title="Quota low",
        message="Quota at 8%",
        context={"remaining_percent": 8},
        tenant_id=tenant_id,
        is_security_sensitive=security,
        first_seen_at=seen,
        last_seen_at=seen,
    )


class TestDedupContract:
    """Tests for increment_open / insert_if_absent."""

    def test_insert_then_increment(self, store):
        """Test a fresh head is incremented inside the window."""
        record = make_record(store)
        assert store.insert_if_absent(record, START - timedelta(minutes=15))

        later = START + timedelta(minutes=5)
        updated = store.increment_open("key-1", later - timedelta(minutes=15), later)

        assert updated.id == record.id
        assert updated.occurrence_count == 2
        assert updated.last_seen_at == later
        assert updated.first_seen_at == START

    def test_increment_without_head_returns_none(self, store):
        """Test nothing is updated when no record exists."""
        assert store.increment_open("missing", START, START) is None

    def test_increment_ignores_stale_head(self, store):
        """Test a head last seen before the cutoff is not bumped."""
        store.insert_if_absent(make_record(store), START - timedelta(minutes=15))

        later = START + timedelta(minutes=16)
        assert store.increment_open("key-1", later - timedelta(minutes=15), later) is None

    def test_second_fresh_insert_conflicts(self, store):
        """Test the unique head index rejects a second fresh insert."""
        cutoff = START - timedelta(minutes=15)
        assert store.insert_if_absent(make_record(store), cutoff)
        assert not store.insert_if_absent(make_record(store), cutoff)

        assert len(store.list_alerts()) == 1

    def test_insert_releases_stale_head(self, store):
        """Test a new record replaces an expired head and the old one is untouched."""
        old = make_record(store)
        store.insert_if_absent(old, START - timedelta(minutes=15))

        later = START + timedelta(minutes=20)
        new = make_record(store, seen=later)
        assert store.insert_if_absent(new, later - timedelta(minutes=15))

        found = store.find_open_alert("key-1", later - timedelta(minutes=15))
        assert found.id == new.id
        assert store.get_alert(old.id).occurrence_count == 1

    def test_resolve_releases_head(self, store):
        """Test a resolved record no longer deduplicates."""
        record = make_record(store)
        store.insert_if_absent(record, START - timedelta(minutes=15))

        assert store.resolve(record.id, now=START)
        assert store.increment_open("key-1", START - timedelta(minutes=15), START) is None
        assert store.insert_if_absent(make_record(store), START - timedelta(minutes=15))


class TestDeliveries:
    """Tests for per-channel delivery state."""

    def test_record_delivery_counts_attempts(self, store):
        """Test repeated attempts upsert one row."""
        record = make_record(store)
        store.insert_if_absent(record, START)

        store.record_delivery(record.id, "telegram", DeliveryResult.failed("HTTP 502"), now=START)
        store.record_delivery(record.id, "telegram", DeliveryResult.ok("77"), now=START + timedelta(minutes=1))

        delivery = store.get_alert(record.id).delivery("telegram")
        assert delivery.sent is True
        assert delivery.error is None
        assert delivery.attempts == 2
        assert delivery.provider_message_id == "77"
        assert delivery.sent_at == START + timedelta(minutes=1)

    def test_permanent_failure_flag(self, store):
        """Test misconfiguration is stored as permanent."""
        record = make_record(store)
        store.insert_if_absent(record, START)

        store.record_delivery(record.id, "email", DeliveryResult.misconfigured("no address"), now=START)

        delivery = store.get_alert(record.id).delivery("email")
        assert delivery.sent is False
        assert delivery.permanent is True
        assert delivery.error == "no address"

    def test_list_failed_deliveries(self, store):
        """Test only records with an unsent channel inside the window are listed."""
        failed = make_record(store, key="a")
        ok = make_record(store, key="b")
        old = make_record(store, key="c", seen=START - timedelta(hours=30))
        for r in (failed, ok, old):
            store.insert_if_absent(r, START - timedelta(days=2))

        store.record_delivery(failed.id, "telegram", DeliveryResult.failed("timeout"))
        store.record_delivery(failed.id, "email", DeliveryResult.ok())
        store.record_delivery(ok.id, "telegram", DeliveryResult.ok())
        store.record_delivery(old.id, "telegram", DeliveryResult.failed("timeout"))

        records = store.list_failed_deliveries(START - timedelta(hours=24))

        assert [r.id for r in records] == [failed.id]
        assert records[0].failed_channels() == ["telegram"]

    def test_list_failed_deliveries_channel_filters(self, store):
        """Test disabled channels and unfixable permanent failures are filtered before the limit."""
        disabled = make_record(store, key="a", seen=START - timedelta(hours=3))
        unfixable = make_record(store, key="b", seen=START - timedelta(hours=2))
        retryable = make_record(store, key="c", seen=START - timedelta(hours=1))
        for r in (disabled, unfixable, retryable):
            store.insert_if_absent(r, START - timedelta(days=2))

        store.record_delivery(disabled.id, "telegram", DeliveryResult.failed("HTTP 502"))
        store.record_delivery(unfixable.id, "email", DeliveryResult.misconfigured("no address"))
        store.record_delivery(retryable.id, "email", DeliveryResult.failed("SMTP error"))
        since = START - timedelta(hours=24)

        records = store.list_failed_deliveries(
            since, limit=1, enabled_channels={"email"}, configured_channels=set()
        )
        assert [r.id for r in records] == [retryable.id]

        records = store.list_failed_deliveries(
            since, enabled_channels={"email"}, configured_channels={"email"}
        )
        assert [r.id for r in records] == [unfixable.id, retryable.id]

        assert store.list_failed_deliveries(since, enabled_channels=set()) == []


class TestLifecycle:
    """Tests for read/acknowledge/resolve and queries."""

    def test_acknowledge_only_open(self, store):
        """Test acknowledge works once and marks the alert read."""
        record = make_record(store)
        store.insert_if_absent(record, START)

        assert store.acknowledge(record.id, acknowledged_by="owner", now=START)
        assert not store.acknowledge(record.id, acknowledged_by="owner", now=START)

        stored = store.get_alert(record.id)
        assert stored.status == AlertStatus.ACKNOWLEDGED
        assert stored.is_read
        assert stored.acknowledged_by == "owner"

    def test_acknowledged_alert_still_deduplicates(self, store):
        """Test acknowledging keeps the dedup head."""
        record = make_record(store)
        store.insert_if_absent(record, START)
        store.acknowledge(record.id, now=START)

        updated = store.increment_open("key-1", START - timedelta(minutes=15), START)
        assert updated.id == record.id

    def test_mark_all_read_with_filter(self, store):
        """Test bulk read respects the level filter."""
        store.insert_if_absent(make_record(store, key="a", level=AlertLevel.CRITICAL), START)
        store.insert_if_absent(make_record(store, key="b", level=AlertLevel.INFO), START)

        assert store.mark_all_read(level=AlertLevel.CRITICAL, now=START) == 1
        assert len(store.list_alerts(unread_only=True)) == 1

    def test_list_alerts_hides_security(self, store):
        """Test security records can be excluded."""
        store.insert_if_absent(make_record(store, key="a", tenant_id="42"), START)
        store.insert_if_absent(
            make_record(store, key="b", alert_type=AlertType.SECURITY, tenant_id="42", security=True),
            START,
        )

        visible = store.list_alerts(tenant_id="42", include_security=False)
        assert [r.alert_type for r in visible] == [AlertType.QUOTA]
        assert len(store.list_alerts(tenant_id="42")) == 2

    def test_list_alerts_between(self, store):
        """Test range query is half-open on first_seen_at."""
        store.insert_if_absent(make_record(store, key="a", seen=START), START)
        store.insert_if_absent(make_record(store, key="b", seen=START + timedelta(days=1)), START)

        records = store.list_alerts_between(START, START + timedelta(days=1))
        assert len(records) == 1
        assert records[0].dedup_key == "a"

    def test_get_stats(self, store):
        """Test overview counters."""
        record = make_record(store, key="a", level=AlertLevel.CRITICAL)
        store.insert_if_absent(record, START)
        store.insert_if_absent(make_record(store, key="b"), START)
        store.record_delivery(record.id, "telegram", DeliveryResult.failed("down"))

        stats = store.get_stats(days=7, now=START, tz_name="UTC")

        assert stats["by_level"] == {"critical": 1, "warning": 1, "info": 0}
        assert stats["by_type"] == {"quota": 2}
        assert stats["unread"] == 2
        assert stats["unacknowledged_critical"] == 1
        assert stats["today"] == 2
        assert stats["failed_deliveries"] == 1
        assert len(stats["trend"]) == 7
        assert stats["trend"][-1] == {"date": "2026-03-10", "count": 2}

    def test_cleanup_old_alerts(self, store):
        """Test old alerts and their deliveries are removed."""
        old = make_record(store, key="a", seen=START - timedelta(days=40))
        store.insert_if_absent(old, START - timedelta(days=41))
        store.record_delivery(old.id, "email", DeliveryResult.ok())
        store.insert_if_absent(make_record(store, key="b"), START)

        assert store.cleanup_old_alerts(days=30, now=START) == 1
        assert store.get_alert(old.id) is None
        assert len(store.list_alerts()) == 1


class TestStorageErrors:
    """Storage failures are not swallowed."""

    def test_unwritable_database_raises(self, tmp_path):
        """Test sqlite errors propagate to the caller."""
        store = AlertStore(str(tmp_path / "alerts.db"))
        with sqlite3.connect(store.db_path) as conn:
            conn.execute("DROP TABLE alert_deliveries")

        with pytest.raises(sqlite3.Error):
            store.record_delivery("x", "email", DeliveryResult.ok())

"""Tests for the Flask JSON API."""

import pytest

from owner_alerts.dashboard import create_app
from owner_alerts.models import AlertLevel, AlertType, ChannelId, DeliveryResult

from conftest import FakeChannel

API_KEY = "test-key"


@pytest.fixture
def app(engine, db_path):
    return create_app(
        config={"TESTING": True, "DASHBOARD_API_KEY": API_KEY, "ALERT_DB_PATH": db_path},
        engine=engine,
    )


@pytest.fixture
def client(app):
    client = app.test_client()
    client.environ_base["HTTP_X_API_KEY"] = API_KEY
    return client


@pytest.fixture
def alerts(engine, clock, quota_low):
    quota = engine.trigger(quota_low)
    clock.advance(minutes=1)
    security = engine.trigger_security_alert("BRUTE_FORCE", "Too many logins", {"tenant_id": 42})
    clock.advance(minutes=1)
    info = engine.trigger_alert(AlertType.SYSTEM, "BACKUP_OK", AlertLevel.INFO, "Backup done", "ok")
    return {"quota": quota, "security": security, "info": info}


class TestAuth:
    """Tests for the API key check."""

    def test_missing_key_rejected(self, app):
        response = app.test_client().get("/api/alerts")
        assert response.status_code == 401

    def test_query_param_key(self, app):
        response = app.test_client().get(f"/api/alerts?key={API_KEY}")
        assert response.status_code == 200

    def test_no_key_configured_allows_all(self, engine):
        app = create_app(config={"TESTING": True, "DASHBOARD_API_KEY": ""}, engine=engine)
        assert app.test_client().get("/api/alerts").status_code == 200


class TestAlerts:
    """Tests for alert listing and lifecycle endpoints."""

    def test_list_most_recent_first(self, client, alerts):
        data = client.get("/api/alerts").get_json()

        assert data["count"] == 3
        assert [a["id"] for a in data["alerts"]] == [
            alerts["info"].id, alerts["security"].id, alerts["quota"].id,
        ]

    def test_tenant_filter_hides_security(self, client, alerts):
        data = client.get("/api/alerts?tenant=42").get_json()
        assert [a["id"] for a in data["alerts"]] == [alerts["quota"].id]

    def test_level_filter(self, client, alerts):
        data = client.get("/api/alerts?level=critical").get_json()
        assert [a["id"] for a in data["alerts"]] == [alerts["security"].id]

    def test_invalid_filter(self, client, alerts):
        assert client.get("/api/alerts?level=urgent").status_code == 400

    def test_get_alert(self, client, alerts):
        data = client.get(f"/api/alerts/{alerts['quota'].id}").get_json()

        assert data["code"] == "QUOTA_LOW"
        assert data["deliveries"]["telegram"]["sent"] is True

    def test_get_missing_alert(self, client):
        assert client.get("/api/alerts/nope").status_code == 404

    def test_mark_read(self, client, alerts):
        response = client.post(f"/api/alerts/{alerts['quota'].id}/read")

        assert response.get_json()["success"]
        unread = client.get("/api/alerts?unread=true").get_json()
        assert alerts["quota"].id not in [a["id"] for a in unread["alerts"]]

    def test_read_all(self, client, alerts):
        response = client.post("/api/alerts/read-all", json={"level": "info"})

        assert response.get_json()["count"] == 1
        assert client.get("/api/alerts?unread=1").get_json()["count"] == 2

    def test_acknowledge(self, client, alerts):
        response = client.post(f"/api/alerts/{alerts['quota'].id}/ack", json={"user": "owner"})

        data = response.get_json()
        assert data["success"]
        assert data["status"] == "acknowledged"
        assert client.post(f"/api/alerts/{alerts['quota'].id}/ack").status_code == 400

    def test_resolve(self, client, alerts, engine, quota_low):
        response = client.post(f"/api/alerts/{alerts['quota'].id}/resolve")

        assert response.get_json()["status"] == "resolved"
        # Resolving ends deduplication
        assert engine.trigger(quota_low).id != alerts["quota"].id

    def test_stats(self, client, alerts):
        data = client.get("/api/stats").get_json()

        assert data["by_level"]["critical"] == 1
        assert data["unread"] == 3


class TestSettings:
    """Tests for the settings endpoints."""

    def test_get_defaults(self, client):
        data = client.get("/api/settings").get_json()

        assert data["recipient_id"] == "owner-1"
        assert data["throttle_minutes"] == 15

    def test_update(self, client):
        response = client.put("/api/settings", json={"throttle_minutes": 30, "digest_enabled": False})

        assert response.status_code == 200
        data = client.get("/api/settings").get_json()
        assert data["throttle_minutes"] == 30
        assert data["digest_enabled"] is False

    def test_update_invalid(self, client):
        response = client.put("/api/settings", json={"channels_by_level": {"critical": ["pager"]}})
        assert response.status_code == 400

    def test_update_unknown_timezone(self, client):
        response = client.put("/api/settings", json={
            "quiet_hours_enabled": True,
            "quiet_hours_start": "22:00",
            "quiet_hours_end": "07:00",
            "quiet_hours_timezone": "Mars/Olympus",
        })

        assert response.status_code == 400
        assert "Unknown timezone" in response.get_json()["error"]
        assert client.get("/api/settings").get_json()["quiet_hours_enabled"] is False

    def test_no_owner(self, make_engine, db_path):
        app = create_app(config={"TESTING": True}, engine=make_engine(owner_id=None))
        assert app.test_client().get("/api/settings").status_code == 404


class TestActions:
    """Tests for test, retry and digest endpoints."""

    def test_test_channel(self, client, telegram):
        response = client.post(f"/api/test/{ChannelId.TELEGRAM}")

        assert response.get_json()["success"]
        assert telegram.tests == 1

    def test_test_unknown_channel(self, client):
        assert client.post("/api/test/pager").status_code == 404

    def test_retry(self, make_engine, clock, quota_low, email):
        flaky = FakeChannel(ChannelId.TELEGRAM, result=DeliveryResult.failed("HTTP 500"))
        engine = make_engine(channels=[flaky, email])
        engine.trigger(quota_low)
        flaky.result = DeliveryResult.ok()
        clock.advance(minutes=5)

        app = create_app(config={"TESTING": True}, engine=engine)
        data = app.test_client().post("/api/retry", json={"limit": 10}).get_json()

        assert data["success"] == 1

    def test_digest_without_email_channel(self, client):
        data = client.post("/api/digest", json={"date": "2026-03-10"}).get_json()
        assert data["sent"] is False

    def test_digest_bad_date(self, client):
        assert client.post("/api/digest", json={"date": "10/03/2026"}).status_code == 400

"""JSON API routes for polling, reading and acknowledging alerts."""

from datetime import date
from functools import wraps

from flask import Blueprint, current_app, jsonify, request

from ...alert_store import AlertStatus
from ...exceptions import UnknownChannelError
from ...models import AlertLevel, AlertType

api_bp = Blueprint("alerts_api", __name__)


def check_api_key(f):
    """Decorator to check API key for protected endpoints."""
    @wraps(f)
    def decorated(*args, **kwargs):
        api_key = current_app.config.get("DASHBOARD_API_KEY")

        # If no API key configured, allow all requests (dev mode)
        if not api_key:
            return f(*args, **kwargs)

        # Check key from query param or header
        provided_key = request.args.get("key") or request.headers.get("X-API-Key")

        if provided_key != api_key:
            return jsonify({"error": "Invalid or missing API key"}), 401

        return f(*args, **kwargs)

    return decorated


def _parse_enum(enum_cls, value):
    if not value:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        return False


def _owner_id():
    return current_app.alert_engine.owner_resolver.resolve_owner()


@api_bp.route("/alerts", methods=["GET"])
@check_api_key
def list_alerts():
    """List alerts, most recently seen first.

    Query params: level, type, status, unread, tenant, limit.
    Security alerts are never included when filtering by tenant.
    """
    level = _parse_enum(AlertLevel, request.args.get("level"))
    alert_type = _parse_enum(AlertType, request.args.get("type"))
    status = _parse_enum(AlertStatus, request.args.get("status"))
    if level is False or alert_type is False or status is False:
        return jsonify({"error": "Invalid level, type or status filter"}), 400

    tenant_id = request.args.get("tenant")
    limit = request.args.get("limit", current_app.config.get("ALERTS_PER_PAGE", 100), type=int)
    limit = max(1, min(limit, current_app.config.get("MAX_ALERTS_PER_PAGE", 500)))

    alerts = current_app.alert_store.list_alerts(
        level=level,
        alert_type=alert_type,
        status=status,
        unread_only=request.args.get("unread", "").lower() in ("1", "true", "yes"),
        tenant_id=tenant_id,
        include_security=tenant_id is None,
        limit=limit,
    )

    return jsonify({
        "alerts": [a.to_dict() for a in alerts],
        "count": len(alerts),
    })


@api_bp.route("/alerts/<alert_id>", methods=["GET"])
@check_api_key
def get_alert(alert_id):
    alert = current_app.alert_store.get_alert(alert_id)
    if alert is None:
        return jsonify({"error": "Alert not found"}), 404
    return jsonify(alert.to_dict())


@api_bp.route("/alerts/<alert_id>/read", methods=["POST"])
@check_api_key
def mark_read(alert_id):
    store = current_app.alert_store
    if store.get_alert(alert_id) is None:
        return jsonify({"error": "Alert not found"}), 404

    store.mark_read(alert_id)
    return jsonify({"success": True, "alert_id": alert_id})


@api_bp.route("/alerts/read-all", methods=["POST"])
@check_api_key
def mark_all_read():
    data = request.get_json(silent=True) or {}
    level = _parse_enum(AlertLevel, data.get("level"))
    alert_type = _parse_enum(AlertType, data.get("type"))
    if level is False or alert_type is False:
        return jsonify({"error": "Invalid level or type"}), 400

    count = current_app.alert_store.mark_all_read(level=level, alert_type=alert_type)
    return jsonify({"success": True, "count": count})


@api_bp.route("/alerts/<alert_id>/ack", methods=["POST"])
@check_api_key
def acknowledge_alert(alert_id):
    store = current_app.alert_store

    data = request.get_json(silent=True) or {}
    acknowledged_by = (
        data.get("user")
        or request.headers.get("X-User")
        or _owner_id()
        or "Dashboard User"
    )

    if store.acknowledge(alert_id, acknowledged_by=acknowledged_by):
        alert = store.get_alert(alert_id)
        return jsonify({
            "success": True,
            "alert_id": alert_id,
            "status": alert.status.value if alert else "unknown",
        })

    return jsonify({
        "success": False,
        "error": "Failed to acknowledge alert",
    }), 400


@api_bp.route("/alerts/<alert_id>/resolve", methods=["POST"])
@check_api_key
def resolve_alert(alert_id):
    store = current_app.alert_store

    if store.resolve(alert_id):
        return jsonify({
            "success": True,
            "alert_id": alert_id,
            "status": AlertStatus.RESOLVED.value,
        })

    return jsonify({
        "success": False,
        "error": "Failed to resolve alert",
    }), 400


@api_bp.route("/stats", methods=["GET"])
@check_api_key
def get_stats():
    days = request.args.get("days", 7, type=int)
    days = max(1, min(days, 90))
    engine = current_app.alert_engine
    return jsonify(current_app.alert_store.get_stats(
        days=days,
        now=engine.clock(),
        tz_name=engine.timezone_name,
    ))


@api_bp.route("/settings", methods=["GET"])
@check_api_key
def get_settings():
    owner_id = _owner_id()
    if not owner_id:
        return jsonify({"error": "No owner configured"}), 404
    return jsonify(current_app.settings_store.get_or_default(owner_id).to_dict())


@api_bp.route("/settings", methods=["PUT"])
@check_api_key
def update_settings():
    owner_id = _owner_id()
    if not owner_id:
        return jsonify({"error": "No owner configured"}), 404

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Expected a JSON object"}), 400

    try:
        settings = current_app.settings_store.update(owner_id, data)
    except (ValueError, TypeError) as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"success": True, "settings": settings.to_dict()})


@api_bp.route("/test/<channel>", methods=["POST"])
@check_api_key
def test_channel(channel):
    try:
        result = current_app.alert_engine.test_channel(channel)
    except UnknownChannelError as e:
        return jsonify({"success": False, "error": str(e)}), 404

    return jsonify({
        "success": result.success,
        "channel": channel,
        "error": result.error,
    }), (200 if result.success else 502)


@api_bp.route("/retry", methods=["POST"])
@check_api_key
def retry_failed():
    data = request.get_json(silent=True) or {}
    stats = current_app.alert_engine.retry_failed_notifications(
        limit=int(data.get("limit", 50)),
        max_age_hours=int(data.get("max_age_hours", 24)),
    )
    return jsonify(stats)


@api_bp.route("/digest", methods=["POST"])
@check_api_key
def send_digest():
    data = request.get_json(silent=True) or {}
    day = None
    if data.get("date"):
        try:
            day = date.fromisoformat(data["date"])
        except ValueError:
            return jsonify({"error": "date must be YYYY-MM-DD"}), 400

    result = current_app.alert_engine.send_daily_digest(day)
    if result is None:
        return jsonify({"sent": False, "reason": "No alerts or digest disabled"})

    return jsonify({
        "sent": result.success,
        "error": result.error,
    }), (200 if result.success else 502)

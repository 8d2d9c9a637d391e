"""SQLite-backed alert storage for deduplication and delivery tracking."""

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from ..config import config
from ..models import AlertLevel, AlertType, DeliveryResult
from .db import connect, prepare_database
from .models import (
    AlertRecord,
    AlertStatus,
    ChannelDelivery,
    to_db_timestamp,
)

logger = logging.getLogger(__name__)

_ALERT_COLUMNS = """
    id, dedup_key, alert_type, code, level, title, message, context,
    tenant_id, is_security_sensitive, occurrence_count, first_seen_at,
    last_seen_at, status, is_read, read_at, acknowledged_at,
    acknowledged_by, resolved_at
"""


class AlertStore:
    """SQLite-backed storage for the owner alert lifecycle."""

    def __init__(self, db_path: str | None = None):
        """Initialize alert store.

        Args:
            db_path: Path to SQLite database. Defaults to ALERT_DB_PATH env var
                     or ~/.owner-alerts/alerts.db
        """
        self.db_path = prepare_database(db_path)

    def _connect(self):
        return connect(self.db_path)

    def _generate_id(self) -> str:
        """Generate a unique alert ID."""
        return uuid.uuid4().hex[:12]

    # Deduplication contract

    def increment_open(
        self,
        dedup_key: str,
        cutoff: datetime,
        now: datetime,
    ) -> AlertRecord | None:
        """Bump the open record for dedup_key if it was seen at or after cutoff.

        Returns the updated record, or None when no record is eligible.
        """
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                """
                SELECT id FROM alerts
                WHERE dedup_key = ? AND dedup_head = 1 AND last_seen_at >= ?
                """,
                (dedup_key, to_db_timestamp(cutoff)),
            ).fetchone()

            if row is None:
                return None

            conn.execute(
                """
                UPDATE alerts
                SET occurrence_count = occurrence_count + 1,
                    last_seen_at = MAX(last_seen_at, ?)
                WHERE id = ?
                """,
                (to_db_timestamp(now), row["id"]),
            )
            alert_id = row["id"]

        return self.get_alert(alert_id)

    def insert_if_absent(self, record: AlertRecord, cutoff: datetime) -> bool:
        """Insert record as the dedup head for its key.

        Heads last seen before cutoff are released first. Returns False when
        another writer already holds a fresh head for the key.
        """
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute(
                """
                UPDATE alerts SET dedup_head = NULL
                WHERE dedup_key = ? AND dedup_head = 1 AND last_seen_at < ?
                """,
                (record.dedup_key, to_db_timestamp(cutoff)),
            )
            try:
                conn.execute(
                    f"""
                    INSERT INTO alerts ({_ALERT_COLUMNS}, dedup_head)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)
                    """,
                    (
                        record.id, record.dedup_key, record.alert_type.value,
                        record.code, record.level.value, record.title,
                        record.message, json.dumps(record.context, default=str),
                        record.tenant_id, int(record.is_security_sensitive),
                        record.occurrence_count,
                        to_db_timestamp(record.first_seen_at),
                        to_db_timestamp(record.last_seen_at),
                        record.status.value, int(record.is_read),
                        to_db_timestamp(record.read_at),
                        to_db_timestamp(record.acknowledged_at),
                        record.acknowledged_by,
                        to_db_timestamp(record.resolved_at),
                    ),
                )
            except sqlite3.IntegrityError:
                conn.rollback()
                logger.debug(f"Dedup head already present for {record.dedup_key[:12]}")
                return False

        logger.info(
            f"Created alert {record.id} for {record.alert_type.value}/{record.code}"
        )
        return True

    def find_open_alert(self, dedup_key: str, cutoff: datetime) -> AlertRecord | None:
        """Find the open record for dedup_key last seen at or after cutoff."""
        with self._connect() as conn:
            row = conn.execute(
                f"""
                SELECT {_ALERT_COLUMNS} FROM alerts
                WHERE dedup_key = ? AND dedup_head = 1 AND last_seen_at >= ?
                """,
                (dedup_key, to_db_timestamp(cutoff)),
            ).fetchone()
            if row is None:
                return None
            return self._hydrate(conn, [row])[0]

    # Lookups

    def new_id(self) -> str:
        return self._generate_id()

    def get_alert(self, alert_id: str) -> AlertRecord | None:
        """Get an alert by ID, with its delivery state."""
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_ALERT_COLUMNS} FROM alerts WHERE id = ?",
                (alert_id,),
            ).fetchone()
            if row is None:
                return None
            return self._hydrate(conn, [row])[0]

    def _hydrate(self, conn: sqlite3.Connection, rows: list) -> list[AlertRecord]:
        """Attach delivery rows to alert rows."""
        if not rows:
            return []
        ids = [row["id"] for row in rows]
        placeholders = ",".join("?" * len(ids))
        deliveries: dict[str, list[ChannelDelivery]] = {}
        cursor = conn.execute(
            f"""
            SELECT alert_id, channel, sent, sent_at, error, permanent,
                   attempts, last_attempt_at, provider_message_id
            FROM alert_deliveries
            WHERE alert_id IN ({placeholders})
            """,
            ids,
        )
        for d in cursor.fetchall():
            deliveries.setdefault(d["alert_id"], []).append(ChannelDelivery.from_row(d))

        return [AlertRecord.from_row(row, deliveries.get(row["id"])) for row in rows]

    # Delivery state

    def record_delivery(
        self,
        alert_id: str,
        channel: str,
        result: DeliveryResult,
        now: datetime | None = None,
    ) -> None:
        """Persist the outcome of one send attempt for a channel."""
        now_ts = to_db_timestamp(now or datetime.now(timezone.utc))
        sent_at = now_ts if result.success else None

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO alert_deliveries (
                    alert_id, channel, sent, sent_at, error, permanent,
                    attempts, last_attempt_at, provider_message_id
                ) VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?)
                ON CONFLICT (alert_id, channel) DO UPDATE SET
                    sent = excluded.sent,
                    sent_at = excluded.sent_at,
                    error = excluded.error,
                    permanent = excluded.permanent,
                    attempts = alert_deliveries.attempts + 1,
                    last_attempt_at = excluded.last_attempt_at,
                    provider_message_id = COALESCE(
                        excluded.provider_message_id,
                        alert_deliveries.provider_message_id
                    )
                """,
                (
                    alert_id, channel, int(result.success), sent_at,
                    None if result.success else result.error,
                    int(result.permanent and not result.success),
                    now_ts, result.provider_message_id,
                ),
            )

    def list_failed_deliveries(
        self,
        since: datetime,
        limit: int = 50,
        enabled_channels: Iterable[str] | None = None,
        configured_channels: Iterable[str] | None = None,
    ) -> list[AlertRecord]:
        """List records first seen since `since` with at least one retryable unsent channel.

        Args:
            since: Oldest first_seen_at to include
            limit: Maximum records returned
            enabled_channels: If given, only unsent deliveries on these channels count
            configured_channels: If given, permanent failures only count on these channels
        """
        delivery_conditions = ["sent = 0"]
        params: list[Any] = []

        if enabled_channels is not None:
            enabled = sorted(set(enabled_channels))
            if not enabled:
                return []
            delivery_conditions.append(f"channel IN ({', '.join('?' * len(enabled))})")
            params.extend(enabled)

        if configured_channels is not None:
            configured = sorted(set(configured_channels))
            if configured:
                delivery_conditions.append(
                    f"(permanent = 0 OR channel IN ({', '.join('?' * len(configured))}))"
                )
                params.extend(configured)
            else:
                delivery_conditions.append("permanent = 0")

        params = [to_db_timestamp(since)] + params + [limit]

        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_ALERT_COLUMNS} FROM alerts
                WHERE first_seen_at >= ?
                  AND id IN (
                      SELECT alert_id FROM alert_deliveries
                      WHERE {' AND '.join(delivery_conditions)}
                  )
                ORDER BY first_seen_at ASC
                LIMIT ?
                """,
                params,
            ).fetchall()
            return self._hydrate(conn, rows)

    # Status updates

    def mark_read(self, alert_id: str, now: datetime | None = None) -> bool:
        """Mark an alert as read."""
        now = now or datetime.now(timezone.utc)
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE alerts SET is_read = 1, read_at = ? WHERE id = ? AND is_read = 0",
                (to_db_timestamp(now), alert_id),
            )
            return cursor.rowcount > 0

    def mark_all_read(
        self,
        level: AlertLevel | None = None,
        alert_type: AlertType | None = None,
        now: datetime | None = None,
    ) -> int:
        """Mark every unread alert (optionally filtered) as read."""
        now = now or datetime.now(timezone.utc)
        conditions = ["is_read = 0"]
        params: list[Any] = [to_db_timestamp(now)]

        if level:
            conditions.append("level = ?")
            params.append(level.value)
        if alert_type:
            conditions.append("alert_type = ?")
            params.append(alert_type.value)

        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE alerts SET is_read = 1, read_at = ? WHERE {' AND '.join(conditions)}",
                params,
            )
            return cursor.rowcount

    def acknowledge(
        self,
        alert_id: str,
        acknowledged_by: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Acknowledge an alert. Acknowledged alerts keep deduplicating."""
        now_ts = to_db_timestamp(now or datetime.now(timezone.utc))
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE alerts
                SET status = ?, acknowledged_at = ?, acknowledged_by = ?,
                    is_read = 1, read_at = COALESCE(read_at, ?)
                WHERE id = ? AND status = ?
                """,
                (
                    AlertStatus.ACKNOWLEDGED.value, now_ts, acknowledged_by,
                    now_ts, alert_id, AlertStatus.OPEN.value,
                ),
            )
            if cursor.rowcount > 0:
                logger.info(f"Alert {alert_id} acknowledged by {acknowledged_by}")
                return True
            return False

    def resolve(self, alert_id: str, now: datetime | None = None) -> bool:
        """Resolve an alert and release it from deduplication."""
        now_ts = to_db_timestamp(now or datetime.now(timezone.utc))
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE alerts
                SET status = ?, resolved_at = ?, dedup_head = NULL
                WHERE id = ? AND status != ?
                """,
                (AlertStatus.RESOLVED.value, now_ts, alert_id, AlertStatus.RESOLVED.value),
            )
            if cursor.rowcount > 0:
                logger.info(f"Alert {alert_id} resolved")
                return True
            return False

    # Query methods

    def list_alerts(
        self,
        level: AlertLevel | None = None,
        alert_type: AlertType | None = None,
        status: AlertStatus | None = None,
        unread_only: bool = False,
        tenant_id: str | None = None,
        include_security: bool = True,
        limit: int = 100,
    ) -> list[AlertRecord]:
        """List alerts with optional filters, most recently seen first.

        Args:
            level: Filter by level
            alert_type: Filter by alert type
            status: Filter by lifecycle status
            unread_only: Only unread alerts
            tenant_id: Only alerts about this tenant
            include_security: If False, hide security-sensitive alerts
            limit: Maximum results
        """
        conditions = []
        params: list[Any] = []

        if level:
            conditions.append("level = ?")
            params.append(level.value)
        if alert_type:
            conditions.append("alert_type = ?")
            params.append(alert_type.value)
        if status:
            conditions.append("status = ?")
            params.append(status.value)
        if unread_only:
            conditions.append("is_read = 0")
        if tenant_id is not None:
            conditions.append("tenant_id = ?")
            params.append(str(tenant_id))
        if not include_security:
            conditions.append("is_security_sensitive = 0")

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_ALERT_COLUMNS} FROM alerts
                WHERE {where_clause}
                ORDER BY last_seen_at DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
            return self._hydrate(conn, rows)

    def list_alerts_between(self, start: datetime, end: datetime) -> list[AlertRecord]:
        """List alerts first seen in [start, end)."""
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {_ALERT_COLUMNS} FROM alerts
                WHERE first_seen_at >= ? AND first_seen_at < ?
                ORDER BY first_seen_at DESC
                """,
                (to_db_timestamp(start), to_db_timestamp(end)),
            ).fetchall()
            return self._hydrate(conn, rows)

    # Statistics

    def get_stats(
        self,
        days: int = 7,
        now: datetime | None = None,
        tz_name: str | None = None,
    ) -> dict[str, Any]:
        """Get alert statistics for the owner overview.

        Args:
            days: Window for the per-level/per-type breakdown and trend
            now: Reference time (defaults to current UTC time)
            tz_name: Timezone used for "today" and the daily trend
        """
        now = now or datetime.now(timezone.utc)
        tz = ZoneInfo(tz_name or config.ALERT_TIMEZONE)
        local_now = now.astimezone(tz)
        today_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        window_start = today_start - timedelta(days=days - 1)
        since = to_db_timestamp(window_start)

        with self._connect() as conn:
            stats: dict[str, Any] = {"period_days": days}

            cursor = conn.execute(
                "SELECT level, COUNT(*) FROM alerts WHERE first_seen_at >= ? GROUP BY level",
                (since,),
            )
            by_level = {row[0]: row[1] for row in cursor}
            stats["by_level"] = {
                level.value: by_level.get(level.value, 0)
                for level in sorted(AlertLevel, reverse=True)
            }

            cursor = conn.execute(
                "SELECT alert_type, COUNT(*) FROM alerts WHERE first_seen_at >= ? GROUP BY alert_type",
                (since,),
            )
            stats["by_type"] = {row[0]: row[1] for row in cursor}

            stats["unread"] = conn.execute(
                "SELECT COUNT(*) FROM alerts WHERE is_read = 0"
            ).fetchone()[0]

            stats["unacknowledged_critical"] = conn.execute(
                "SELECT COUNT(*) FROM alerts WHERE level = ? AND status = ?",
                (AlertLevel.CRITICAL.value, AlertStatus.OPEN.value),
            ).fetchone()[0]

            stats["today"] = conn.execute(
                "SELECT COUNT(*) FROM alerts WHERE first_seen_at >= ?",
                (to_db_timestamp(today_start),),
            ).fetchone()[0]

            stats["failed_deliveries"] = conn.execute(
                "SELECT COUNT(*) FROM alert_deliveries WHERE sent = 0"
            ).fetchone()[0]

            rows = conn.execute(
                "SELECT first_seen_at FROM alerts WHERE first_seen_at >= ?",
                (since,),
            ).fetchall()

        trend: dict[str, int] = {}
        for offset in range(days):
            day = (window_start + timedelta(days=offset)).date().isoformat()
            trend[day] = 0
        for row in rows:
            day = datetime.fromisoformat(row[0]).astimezone(tz).date().isoformat()
            if day in trend:
                trend[day] += 1
        stats["trend"] = [{"date": d, "count": c} for d, c in trend.items()]

        return stats

    # Cleanup

    def cleanup_old_alerts(self, days: int = 30, now: datetime | None = None) -> int:
        """Remove alerts last seen more than `days` ago.

        Returns number of alerts removed.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = to_db_timestamp(now - timedelta(days=days))

        with self._connect() as conn:
            conn.execute(
                """
                DELETE FROM alert_deliveries
                WHERE alert_id IN (SELECT id FROM alerts WHERE last_seen_at < ?)
                """,
                (cutoff,),
            )
            cursor = conn.execute(
                "DELETE FROM alerts WHERE last_seen_at < ?",
                (cutoff,),
            )
            count = cursor.rowcount

        if count > 0:
            logger.info(f"Cleaned up {count} alerts older than {days} days")

        return count

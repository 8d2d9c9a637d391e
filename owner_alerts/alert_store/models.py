"""Data models for persistent alert storage."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import json

from ..models import AlertLevel, AlertType


class AlertStatus(Enum):
    """Alert lifecycle status."""
    OPEN = "open"                  # Created, still collecting occurrences
    ACKNOWLEDGED = "acknowledged"  # Owner has seen and acknowledged it
    RESOLVED = "resolved"          # Closed, no longer deduplicated against


def to_db_timestamp(value: datetime | None) -> str | None:
    """Format a datetime as a sortable UTC ISO-8601 string."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value) -> datetime | None:
    """Parse a stored timestamp back into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class ChannelDelivery:
    """Delivery state of one alert on one channel."""
    channel: str
    sent: bool = False
    sent_at: datetime | None = None
    error: str | None = None
    permanent: bool = False
    attempts: int = 0
    last_attempt_at: datetime | None = None
    provider_message_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            "sent": self.sent,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "error": self.error,
            "permanent": self.permanent,
            "attempts": self.attempts,
            "last_attempt_at": self.last_attempt_at.isoformat() if self.last_attempt_at else None,
            "provider_message_id": self.provider_message_id,
        }

    @classmethod
    def from_row(cls, row) -> "ChannelDelivery":
        """Create from an alert_deliveries row."""
        return cls(
            channel=row["channel"],
            sent=bool(row["sent"]),
            sent_at=parse_timestamp(row["sent_at"]),
            error=row["error"],
            permanent=bool(row["permanent"]),
            attempts=row["attempts"] or 0,
            last_attempt_at=parse_timestamp(row["last_attempt_at"]),
            provider_message_id=row["provider_message_id"],
        )


@dataclass
class AlertRecord:
    """A stored alert, possibly standing for several occurrences."""
    id: str
    dedup_key: str
    alert_type: AlertType
    code: str
    level: AlertLevel
    title: str = ""
    message: str = ""
    context: dict = field(default_factory=dict)
    tenant_id: str | None = None
    is_security_sensitive: bool = False

    occurrence_count: int = 1
    first_seen_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_seen_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    status: AlertStatus = AlertStatus.OPEN
    is_read: bool = False
    read_at: datetime | None = None
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None
    resolved_at: datetime | None = None

    deliveries: dict[str, ChannelDelivery] = field(default_factory=dict)

    @property
    def type_label(self) -> str:
        return AlertType.display_name(self.alert_type)

    @property
    def is_critical(self) -> bool:
        return self.level == AlertLevel.CRITICAL

    def delivery(self, channel: str) -> ChannelDelivery | None:
        return self.deliveries.get(channel)

    def failed_channels(self) -> list[str]:
        """Channels that were attempted and have not succeeded yet."""
        return sorted(c for c, d in self.deliveries.items() if not d.sent)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "dedup_key": self.dedup_key,
            "type": self.alert_type.value,
            "type_label": self.type_label,
            "code": self.code,
            "level": self.level.value,
            "title": self.title,
            "message": self.message,
            "context": self.context,
            "tenant_id": self.tenant_id,
            "is_security_sensitive": self.is_security_sensitive,
            "occurrence_count": self.occurrence_count,
            "first_seen_at": self.first_seen_at.isoformat() if self.first_seen_at else None,
            "last_seen_at": self.last_seen_at.isoformat() if self.last_seen_at else None,
            "status": self.status.value,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            "acknowledged_by": self.acknowledged_by,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "deliveries": {c: d.to_dict() for c, d in sorted(self.deliveries.items())},
        }

    @classmethod
    def from_row(cls, row, deliveries: list[ChannelDelivery] | None = None) -> "AlertRecord":
        """Create from an alerts row (sqlite3.Row)."""
        context_json = row["context"]
        context = json.loads(context_json) if context_json else {}

        return cls(
            id=row["id"],
            dedup_key=row["dedup_key"],
            alert_type=AlertType(row["alert_type"]),
            code=row["code"],
            level=AlertLevel(row["level"]),
            title=row["title"] or "",
            message=row["message"] or "",
            context=context,
            tenant_id=row["tenant_id"],
            is_security_sensitive=bool(row["is_security_sensitive"]),
            occurrence_count=row["occurrence_count"],
            first_seen_at=parse_timestamp(row["first_seen_at"]),
            last_seen_at=parse_timestamp(row["last_seen_at"]),
            status=AlertStatus(row["status"]),
            is_read=bool(row["is_read"]),
            read_at=parse_timestamp(row["read_at"]),
            acknowledged_at=parse_timestamp(row["acknowledged_at"]),
            acknowledged_by=row["acknowledged_by"],
            resolved_at=parse_timestamp(row["resolved_at"]),
            deliveries={d.channel: d for d in (deliveries or [])},
        )

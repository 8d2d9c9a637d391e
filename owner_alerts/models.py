"""Data models for alert classification and delivery."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any


class AlertLevel(Enum):
    """Ordered alert severity."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    @property
    def icon(self) -> str:
        return _LEVEL_ICON[self]

    def __lt__(self, other):
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank >= other.rank


_LEVEL_RANK = {
    AlertLevel.INFO: 0,
    AlertLevel.WARNING: 1,
    AlertLevel.CRITICAL: 2,
}

_LEVEL_ICON = {
    AlertLevel.INFO: "ℹ️",
    AlertLevel.WARNING: "⚠️",
    AlertLevel.CRITICAL: "🚨",
}


class AlertType(Enum):
    """Alert categories the owner can enable or disable."""
    PROFIT = "profit"
    QUOTA = "quota"
    CONNECTION_STATUS = "connection_status"
    SECURITY = "security"
    SYSTEM = "system"

    @classmethod
    def display_name(cls, alert_type: "AlertType | str") -> str:
        """Get human-readable label for an alert type.

        Args:
            alert_type: Either an AlertType enum or a string value
        """
        display_names = {
            cls.PROFIT: "Profit & Margin",
            cls.QUOTA: "Quota",
            cls.CONNECTION_STATUS: "Connection Status",
            cls.SECURITY: "Security",
            cls.SYSTEM: "System",
        }
        if isinstance(alert_type, str):
            try:
                alert_type = cls(alert_type)
            except ValueError:
                return alert_type.replace("_", " ").title()
        return display_names.get(alert_type, alert_type.value)


class AlertCode:
    """Well-known alert codes. Codes are free strings; these are shortcuts."""
    LOW_MARGIN = "LOW_MARGIN"
    NEGATIVE_PROFIT = "NEGATIVE_PROFIT"
    HIGH_DAILY_COST = "HIGH_DAILY_COST"
    QUOTA_LOW = "QUOTA_LOW"
    QUOTA_EXHAUSTED = "QUOTA_EXHAUSTED"
    CONNECTION_DISCONNECTED = "CONNECTION_DISCONNECTED"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    CONNECTION_BANNED = "CONNECTION_BANNED"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    IP_MISMATCH = "IP_MISMATCH"


class ChannelId:
    """Identifiers of the supported notification channels."""
    TELEGRAM = "telegram"
    EMAIL = "email"

    ALL = (TELEGRAM, EMAIL)


@dataclass(frozen=True)
class AlertClassification:
    """A classified alert candidate produced by a business rule."""
    type: AlertType
    code: str
    level: AlertLevel
    title: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    is_security_sensitive: bool = False

    @property
    def tenant_id(self) -> str | None:
        value = self.context.get("tenant_id")
        return str(value) if value is not None else None


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a single channel send."""
    success: bool
    provider_message_id: str | None = None
    error: str | None = None
    # Missing address/credential; retrying will not help until settings change
    permanent: bool = False

    @classmethod
    def ok(cls, provider_message_id: str | None = None) -> "DeliveryResult":
        return cls(success=True, provider_message_id=provider_message_id)

    @classmethod
    def failed(cls, error: str) -> "DeliveryResult":
        return cls(success=False, error=error)

    @classmethod
    def misconfigured(cls, error: str) -> "DeliveryResult":
        return cls(success=False, error=error, permanent=True)


@dataclass
class DigestPayload:
    """Daily rollup of every alert first seen on one day."""
    date: date
    counts: dict[str, int]
    alerts: list = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.counts.get("total", len(self.alerts))

    @property
    def critical_count(self) -> int:
        return self.counts.get(AlertLevel.CRITICAL.value, 0)

    @property
    def subject(self) -> str:
        day = self.date.isoformat()
        if self.critical_count > 0:
            return f"🚨 {self.critical_count} Critical Alerts - Daily Digest {day}"
        return f"📊 Daily Alert Digest - {day}"

"""
Alert engine: the entry points business rules and schedulers call.

Flow for a trigger:
1. Resolve the platform owner and their settings
2. Find or create the deduplicated alert record
3. For a new record only, route it to channels and dispatch
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Callable
from zoneinfo import ZoneInfo

from .alert_store import AlertRecord, AlertStore
from .channels import EmailChannel, NotificationChannel, TelegramChannel
from .config import config
from .dedup import Deduplicator
from .digest import DigestAggregator
from .dispatch import DispatchCoordinator
from .exceptions import UnknownChannelError
from .models import (
    AlertClassification,
    AlertCode,
    AlertLevel,
    AlertType,
    DeliveryResult,
)
from .router import NotificationRouter
from .settings import (
    DEFAULT_THROTTLE_MINUTES,
    ConfigOwnerResolver,
    OwnerResolver,
    RecipientSettings,
    SettingsResolver,
    SettingsStore,
    default_settings,
)

logger = logging.getLogger(__name__)


def _truncate_signature(value: str | None) -> str:
    return f"{(value or 'N/A')[:20]}..."


class AlertEngine:
    """Trigger, retry and digest entry points for owner alerts."""

    def __init__(
        self,
        store: AlertStore,
        settings_resolver: SettingsResolver,
        owner_resolver: OwnerResolver,
        channels: list[NotificationChannel],
        timeout: float | None = None,
        timezone_name: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the engine.

        Args:
            store: Alert store
            settings_resolver: Resolves recipient settings
            owner_resolver: Finds the platform owner
            channels: Available notification channels
            timeout: Per-send timeout in seconds
            timezone_name: Timezone for digest day boundaries
            clock: Returns the current time (UTC); injectable for tests
        """
        self.store = store
        self.settings_resolver = settings_resolver
        self.owner_resolver = owner_resolver
        self.channels = {channel.channel_id: channel for channel in channels}
        self.timezone_name = timezone_name or config.ALERT_TIMEZONE
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.deduplicator = Deduplicator(store, clock=self.clock)
        self.router = NotificationRouter()
        self.dispatcher = DispatchCoordinator(store, self.channels, timeout=timeout)

        email = self.channels.get(EmailChannel.channel_id)
        self.digest = (
            DigestAggregator(store, email, self.timezone_name)
            if isinstance(email, EmailChannel) else None
        )

    @classmethod
    def from_config(cls, db_path: str | None = None) -> "AlertEngine":
        """Build an engine from environment configuration."""
        db_path = db_path or config.ALERT_DB_PATH
        return cls(
            store=AlertStore(db_path),
            settings_resolver=SettingsStore(db_path, use_defaults=True),
            owner_resolver=ConfigOwnerResolver(),
            channels=[TelegramChannel(), EmailChannel()],
        )

    def _owner_settings(self) -> tuple[str | None, RecipientSettings | None]:
        owner_id = self.owner_resolver.resolve_owner()
        if not owner_id:
            return None, None
        return owner_id, self.settings_resolver.resolve(owner_id)

    # Triggers

    def trigger(self, classification: AlertClassification) -> AlertRecord | None:
        """
        Record an alert and notify the owner if it is a new incident.

        Returns:
            The stored record, or None if no owner is configured. Delivery
            failures never raise; storage errors do.
        """
        owner_id, settings = self._owner_settings()
        if owner_id is None:
            logger.info(
                f"No owner configured; dropping {classification.type.value}/{classification.code} alert"
            )
            return None

        throttle = settings.effective_throttle_minutes if settings else DEFAULT_THROTTLE_MINUTES
        now = self.clock()
        record, is_new = self.deduplicator.resolve(classification, throttle, now=now)

        if not is_new:
            logger.info(f"Alert {record.id} deduplicated ({record.occurrence_count}x)")
            return record

        if settings is None:
            logger.info(f"No alert settings for owner {owner_id}; alert {record.id} stored without notifying")
            return record

        channels = self.router.route_channels(record, settings, now=now)
        if not channels:
            return record

        self.dispatcher.dispatch(record, channels, settings)

        logger.info(
            f"Alert triggered: {record.id} {record.alert_type.value}/{record.code} ({record.level.value})"
        )
        return self.store.get_alert(record.id) or record

    def trigger_alert(
        self,
        alert_type: AlertType,
        code: str,
        level: AlertLevel,
        title: str,
        message: str,
        context: dict[str, Any] | None = None,
        is_security_sensitive: bool = False,
    ) -> AlertRecord | None:
        """Classify and trigger an alert in one call."""
        return self.trigger(AlertClassification(
            type=alert_type,
            code=code,
            level=level,
            title=title,
            message=message,
            context=dict(context or {}),
            is_security_sensitive=is_security_sensitive,
        ))

    def trigger_security_alert(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> AlertRecord | None:
        """Security alerts are always critical and only ever reach the owner."""
        return self.trigger_alert(
            alert_type=AlertType.SECURITY,
            code=code,
            level=AlertLevel.CRITICAL,
            title=f"Security Alert: {code}",
            message=message,
            context=context,
            is_security_sensitive=True,
        )

    def trigger_invalid_signature_alert(
        self,
        ip: str,
        endpoint: str,
        expected: str | None = None,
        received: str | None = None,
        user_agent: str | None = None,
    ) -> AlertRecord | None:
        """Webhook arrived with a signature that did not verify."""
        message = (
            "Webhook signature INVALID!\n"
            f"Endpoint: {endpoint}\n"
            f"IP: {ip}\n"
            f"Expected: {_truncate_signature(expected)}\n"
            f"Received: {_truncate_signature(received)}\n\n"
            "⚠️ Possible attack or misconfiguration!"
        )
        return self.trigger_security_alert(
            AlertCode.INVALID_SIGNATURE,
            message,
            {
                "ip": ip,
                "endpoint": endpoint,
                "user_agent": user_agent,
                "timestamp": self.clock().isoformat(),
            },
        )

    def trigger_ip_mismatch_alert(
        self,
        ip: str,
        endpoint: str,
        allowed_ips: list[str],
    ) -> AlertRecord | None:
        """Webhook arrived from an IP outside the allow-list."""
        message = (
            "Webhook from unknown IP!\n"
            f"Endpoint: {endpoint}\n"
            f"IP: {ip}\n"
            f"Allowed IPs: {', '.join(allowed_ips)}\n\n"
            "⚠️ Request rejected!"
        )
        return self.trigger_security_alert(
            AlertCode.IP_MISMATCH,
            message,
            {
                "ip": ip,
                "endpoint": endpoint,
                "allowed_ips": list(allowed_ips),
                "timestamp": self.clock().isoformat(),
            },
        )

    # Periodic entry points

    def retry_failed_notifications(self, limit: int = 50, max_age_hours: int = 24) -> dict[str, int]:
        """Re-send deliveries that have not succeeded yet."""
        owner_id, settings = self._owner_settings()
        if owner_id is None or settings is None:
            logger.info("No owner settings; skipping retry sweep")
            return {"records": 0, "success": 0, "failed": 0, "skipped": 0}

        return self.dispatcher.retry_sweep(
            settings,
            max_age_hours=max_age_hours,
            limit=limit,
            now=self.clock(),
        )

    def today(self) -> date:
        return self.clock().astimezone(ZoneInfo(self.timezone_name)).date()

    def send_daily_digest(self, day: date | None = None) -> DeliveryResult | None:
        """Email the digest for day (default today). Returns None if nothing was sent."""
        if self.digest is None:
            logger.info("Email channel not available; skipping digest")
            return None

        owner_id, settings = self._owner_settings()
        if owner_id is None or settings is None:
            logger.info("No owner settings; skipping digest")
            return None

        return self.digest.send_digest(day or self.today(), settings)

    def test_channel(self, channel_id: str) -> DeliveryResult:
        """
        Send a test notification on one channel.

        Raises:
            UnknownChannelError: If no channel is registered under channel_id
        """
        channel = self.channels.get(channel_id)
        if channel is None:
            raise UnknownChannelError(channel_id)

        owner_id, settings = self._owner_settings()
        if owner_id is None:
            return DeliveryResult.misconfigured("No owner configured")

        result = channel.test_connection(settings or default_settings(owner_id))
        if result.success:
            logger.info(f"Test notification sent via {channel_id}")
        else:
            logger.warning(f"Test notification via {channel_id} failed: {result.error}")
        return result

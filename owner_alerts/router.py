"""Decide which channels a new alert goes to."""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from zoneinfo import ZoneInfoNotFoundError

from .alert_store import AlertRecord
from .models import AlertLevel
from .settings import RecipientSettings

logger = logging.getLogger(__name__)


def is_quiet_hours(settings: RecipientSettings, now: datetime | None = None) -> bool:
    """Check if now falls inside the recipient's quiet hours."""
    quiet = settings.quiet_hours
    if quiet is None:
        return False

    now = now or datetime.now(timezone.utc)
    try:
        return quiet.contains(now)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(
            f"Unknown quiet hours timezone {quiet.timezone!r} for recipient "
            f"{settings.recipient_id}; evaluating in UTC"
        )
        return replace(quiet, timezone="UTC").contains(now)


class NotificationRouter:
    """Apply the recipient's type, level, quiet-hours and channel rules."""

    def route_channels(
        self,
        record: AlertRecord,
        settings: RecipientSettings,
        now: datetime | None = None,
    ) -> set[str]:
        """
        Return the channel ids to notify for a newly created record.

        Args:
            record: The new alert record
            settings: Recipient settings
            now: Reference time for quiet hours (defaults to current UTC time)
        """
        if not settings.is_type_enabled(record.alert_type):
            logger.info(f"Alert type {record.alert_type.value} disabled; not notifying for {record.id}")
            return set()

        candidates = set(settings.channels_for_level(record.level))
        if not candidates:
            return set()

        # Critical alerts always go through
        if record.level != AlertLevel.CRITICAL and is_quiet_hours(settings, now):
            logger.info(f"Quiet hours active; holding back {record.level.value} alert {record.id}")
            return set()

        channels = {c for c in candidates if settings.is_channel_enabled(c)}
        if channels != candidates:
            logger.debug(f"Channels disabled for alert {record.id}: {sorted(candidates - channels)}")
        return channels

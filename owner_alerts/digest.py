"""Daily digest of alerts, sent by email only."""

import logging
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from .alert_store import AlertRecord, AlertStore
from .channels import EmailChannel
from .config import config
from .models import AlertLevel, DeliveryResult, DigestPayload
from .settings import RecipientSettings

logger = logging.getLogger(__name__)


def _digest_order(record: AlertRecord):
    return (-record.level.rank, -record.first_seen_at.timestamp())


class DigestAggregator:
    """Build and send the per-day rollup of alerts."""

    def __init__(
        self,
        store: AlertStore,
        email_channel: EmailChannel,
        timezone_name: str | None = None,
    ):
        self.store = store
        self.email_channel = email_channel
        self.timezone_name = timezone_name or config.ALERT_TIMEZONE

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """Start and end (exclusive) of a calendar day in the digest timezone."""
        tz = ZoneInfo(self.timezone_name)
        start = datetime.combine(day, time.min, tzinfo=tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
        return start, end

    def build_digest(self, day: date) -> DigestPayload | None:
        """
        Collect every alert first seen on day.

        Returns:
            DigestPayload with counts per level and alerts ordered critical
            first then most recent first, or None if there were no alerts
        """
        start, end = self.day_bounds(day)
        alerts = self.store.list_alerts_between(start, end)
        if not alerts:
            return None

        counts = {level.value: 0 for level in sorted(AlertLevel, reverse=True)}
        for record in alerts:
            counts[record.level.value] += 1
        counts["total"] = len(alerts)

        return DigestPayload(
            date=day,
            counts=counts,
            alerts=sorted(alerts, key=_digest_order),
        )

    def send_digest(self, day: date, settings: RecipientSettings) -> DeliveryResult | None:
        """Build and email the digest for day. Returns None when nothing was sent."""
        if not settings.digest_enabled:
            logger.info(f"Digest disabled for recipient {settings.recipient_id}")
            return None

        payload = self.build_digest(day)
        if payload is None:
            logger.info(f"No alerts on {day}; skipping digest")
            return None

        return self.email_channel.send_digest(payload, settings)

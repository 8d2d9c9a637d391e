"""Send alerts to channels and keep per-channel delivery state."""

import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timedelta, timezone
from typing import Iterable

from .alert_store import AlertRecord, AlertStore
from .channels import NotificationChannel
from .config import config
from .models import ChannelId, DeliveryResult
from .settings import RecipientSettings

logger = logging.getLogger(__name__)

# Extra time allowed on top of the per-send timeout before giving up on a channel
TIMEOUT_GRACE_SECONDS = 2.0


class DispatchCoordinator:
    """Fan a record out to its channels and write the results back.

    Sends run concurrently on a short-lived thread pool. A channel that
    raises or exceeds the timeout gets a failed result; the other channels
    are unaffected. Nothing is raised to the caller.
    """

    def __init__(
        self,
        store: AlertStore,
        channels: Iterable[NotificationChannel] | dict[str, NotificationChannel],
        timeout: float | None = None,
    ):
        """
        Initialize coordinator.

        Args:
            store: Alert store receiving delivery results
            channels: Available channels, keyed by channel_id
            timeout: Per-send timeout in seconds (defaults to NOTIFICATION_TIMEOUT)
        """
        self.store = store
        if isinstance(channels, dict):
            self.channels = dict(channels)
        else:
            self.channels = {channel.channel_id: channel for channel in channels}
        self.timeout = timeout or config.NOTIFICATION_TIMEOUT

    def _send_one(
        self,
        channel: NotificationChannel,
        record: AlertRecord,
        settings: RecipientSettings,
    ) -> DeliveryResult:
        try:
            return channel.send(record, settings)
        except Exception as e:
            logger.exception(f"Channel {channel.channel_id} raised while sending alert {record.id}")
            return DeliveryResult.failed(f"{type(e).__name__}: {e}")

    def _record(self, record: AlertRecord, channel_id: str, result: DeliveryResult) -> None:
        try:
            self.store.record_delivery(record.id, channel_id, result)
        except sqlite3.Error as e:
            logger.error(f"Could not record {channel_id} delivery for alert {record.id}: {e}")

    def dispatch(
        self,
        record: AlertRecord,
        channels: Iterable[str],
        settings: RecipientSettings,
    ) -> dict[str, DeliveryResult]:
        """
        Send record to each channel and persist every outcome.

        Args:
            record: The alert record to send
            channels: Channel ids chosen by the router
            settings: Recipient settings passed to every channel

        Returns:
            Mapping of channel id to its DeliveryResult
        """
        results: dict[str, DeliveryResult] = {}
        pending: dict = {}

        channel_ids = sorted(set(channels))
        if not channel_ids:
            return results

        executor = ThreadPoolExecutor(
            max_workers=len(channel_ids),
            thread_name_prefix=f"dispatch-{record.id}",
        )
        try:
            for channel_id in channel_ids:
                channel = self.channels.get(channel_id)
                if channel is None:
                    results[channel_id] = DeliveryResult.misconfigured(
                        f"Unknown channel: {channel_id}"
                    )
                    continue
                future = executor.submit(self._send_one, channel, record, settings)
                pending[future] = channel_id

            done, not_done = wait(pending, timeout=self.timeout + TIMEOUT_GRACE_SECONDS)

            for future in done:
                results[pending[future]] = future.result()

            for future in not_done:
                future.cancel()
                channel_id = pending[future]
                logger.warning(f"Channel {channel_id} timed out for alert {record.id}")
                results[channel_id] = DeliveryResult.failed(f"Timed out after {self.timeout:g}s")
        finally:
            # A hung send keeps its worker thread; do not block on it
            executor.shutdown(wait=False, cancel_futures=True)

        for channel_id in channel_ids:
            self._record(record, channel_id, results[channel_id])

        sent = [c for c in channel_ids if results[c].success]
        failed = [c for c in channel_ids if not results[c].success]
        if failed:
            logger.warning(f"Alert {record.id}: sent via {sent or 'none'}, failed via {failed}")
        else:
            logger.info(f"Alert {record.id} sent via {sent}")

        return results

    def retry_sweep(
        self,
        settings: RecipientSettings,
        max_age_hours: int = 24,
        limit: int = 50,
        now: datetime | None = None,
    ) -> dict[str, int]:
        """
        Re-send channels that have not succeeded yet.

        Only channels with sent=False are retried. Channels the recipient has
        since disabled are skipped, as are permanent failures while the channel
        is still not configured.

        Args:
            settings: Recipient settings
            max_age_hours: Only records first seen within this window
            limit: Maximum records to process
            now: Reference time (defaults to current UTC time)

        Returns:
            Counts: records, success, failed, skipped
        """
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(hours=max_age_hours)
        stats = {"records": 0, "success": 0, "failed": 0, "skipped": 0}

        known = set(self.channels) | set(ChannelId.ALL)
        records = self.store.list_failed_deliveries(
            since,
            limit=limit,
            enabled_channels={c for c in known if settings.is_channel_enabled(c)},
            configured_channels={
                channel_id for channel_id, channel in self.channels.items()
                if channel.is_configured(settings)
            },
        )
        stats["records"] = len(records)

        for record in records:
            to_send = []
            for channel_id in record.failed_channels():
                if not settings.is_channel_enabled(channel_id):
                    stats["skipped"] += 1
                    continue

                delivery = record.delivery(channel_id)
                channel = self.channels.get(channel_id)
                if delivery.permanent and (channel is None or not channel.is_configured(settings)):
                    stats["skipped"] += 1
                    continue

                to_send.append(channel_id)

            if not to_send:
                continue

            results = self.dispatch(record, to_send, settings)
            for result in results.values():
                if result.success:
                    stats["success"] += 1
                else:
                    stats["failed"] += 1

        if stats["records"]:
            logger.info(
                f"Retry sweep: {stats['records']} records, {stats['success']} sent, "
                f"{stats['failed']} failed, {stats['skipped']} skipped"
            )

        return stats

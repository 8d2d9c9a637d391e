"""Collapse repeated alert conditions into a single stored record."""

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from .alert_store import AlertRecord, AlertStore
from .exceptions import DedupContentionError
from .models import AlertClassification, AlertType
from .settings import DEFAULT_THROTTLE_MINUTES

logger = logging.getLogger(__name__)

MAX_INSERT_ATTEMPTS = 5


def compute_dedup_key(alert_type: AlertType, code: str, context: dict[str, Any] | None) -> str:
    """SHA-256 of type|code|tenant_id; alerts about different tenants never merge."""
    tenant_id = (context or {}).get("tenant_id")
    raw = f"{alert_type.value}|{code}|{'' if tenant_id is None else tenant_id}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class Deduplicator:
    """Find-or-create the alert record for a classification.

    Within the throttle window a repeated condition increments the existing
    record's occurrence count; outside it a fresh record is created. Both
    paths are single SQLite write transactions so concurrent triggers for
    the same key (threads or processes) always end in exactly one record.
    """

    def __init__(
        self,
        store: AlertStore,
        max_attempts: int = MAX_INSERT_ATTEMPTS,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def resolve(
        self,
        classification: AlertClassification,
        throttle_minutes: int | None,
        now: datetime | None = None,
    ) -> tuple[AlertRecord, bool]:
        """Return (record, is_new) for the classification.

        Raises:
            DedupContentionError: If the insert lost to another writer on
                every attempt and no open record could be found either
        """
        now = now or self.clock()
        if not throttle_minutes or throttle_minutes <= 0:
            throttle_minutes = DEFAULT_THROTTLE_MINUTES
        cutoff = now - timedelta(minutes=throttle_minutes)

        dedup_key = compute_dedup_key(
            classification.type, classification.code, classification.context
        )

        for attempt in range(1, self.max_attempts + 1):
            existing = self.store.increment_open(dedup_key, cutoff, now)
            if existing is not None:
                logger.debug(
                    f"Alert {existing.id} repeated ({existing.occurrence_count}x) "
                    f"for {classification.type.value}/{classification.code}"
                )
                return existing, False

            record = AlertRecord(
                id=self.store.new_id(),
                dedup_key=dedup_key,
                alert_type=classification.type,
                code=classification.code,
                level=classification.level,
                title=classification.title,
                message=classification.message,
                context=dict(classification.context),
                tenant_id=classification.tenant_id,
                is_security_sensitive=classification.is_security_sensitive,
                occurrence_count=1,
                first_seen_at=now,
                last_seen_at=now,
            )
            if self.store.insert_if_absent(record, cutoff):
                return record, True

            logger.debug(f"Lost insert race for {dedup_key[:12]} (attempt {attempt})")

        existing = self.store.find_open_alert(dedup_key, cutoff)
        if existing is not None:
            logger.warning(
                f"Dedup contention for {dedup_key[:12]} after {self.max_attempts} attempts; "
                f"returning alert {existing.id} without counting this occurrence"
            )
            return existing, False

        raise DedupContentionError(dedup_key, self.max_attempts)

"""Alert storage module for owner alerts.

Provides SQLite-backed storage for:
- Deduplicating triggers into one open record per dedup key
- Tracking per-channel delivery state for retries
- Listing, acknowledging and resolving alerts
"""

from .models import (
    AlertStatus,
    AlertRecord,
    ChannelDelivery,
    parse_timestamp,
    to_db_timestamp,
)
from .store import AlertStore

__all__ = [
    "AlertStatus",
    "AlertRecord",
    "ChannelDelivery",
    "parse_timestamp",
    "to_db_timestamp",
    "AlertStore",
]

"""Owner alert engine: deduplicated alerts delivered over Telegram and email."""

from .alert_store import AlertRecord, AlertStatus, AlertStore, ChannelDelivery
from .channels import EmailChannel, NotificationChannel, TelegramChannel
from .dedup import Deduplicator, compute_dedup_key
from .digest import DigestAggregator
from .dispatch import DispatchCoordinator
from .engine import AlertEngine
from .exceptions import DedupContentionError, OwnerAlertsError, UnknownChannelError
from .models import (
    AlertClassification,
    AlertCode,
    AlertLevel,
    AlertType,
    ChannelId,
    DeliveryResult,
    DigestPayload,
)
from .router import NotificationRouter
from .settings import (
    ConfigOwnerResolver,
    OwnerResolver,
    QuietHours,
    RecipientSettings,
    SettingsResolver,
    SettingsStore,
    StaticOwnerResolver,
    StaticSettingsResolver,
)

__all__ = [
    # Engine
    "AlertEngine",
    "Deduplicator",
    "compute_dedup_key",
    "NotificationRouter",
    "DispatchCoordinator",
    "DigestAggregator",
    # Models
    "AlertClassification",
    "AlertCode",
    "AlertLevel",
    "AlertType",
    "ChannelId",
    "DeliveryResult",
    "DigestPayload",
    # Alert Store
    "AlertStore",
    "AlertRecord",
    "AlertStatus",
    "ChannelDelivery",
    # Channels
    "NotificationChannel",
    "TelegramChannel",
    "EmailChannel",
    # Settings
    "RecipientSettings",
    "QuietHours",
    "SettingsResolver",
    "SettingsStore",
    "StaticSettingsResolver",
    "OwnerResolver",
    "StaticOwnerResolver",
    "ConfigOwnerResolver",
    # Errors
    "OwnerAlertsError",
    "DedupContentionError",
    "UnknownChannelError",
]

"""Recipient settings and the collaborators that resolve them.

Settings are resolved once per engine call into an immutable
RecipientSettings and passed explicitly to the router, the dispatcher and
every channel.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, time, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .alert_store.db import connect, prepare_database
from .config import config
from .models import AlertLevel, AlertType, ChannelId

logger = logging.getLogger(__name__)

DEFAULT_THROTTLE_MINUTES = config.DEFAULT_THROTTLE_MINUTES

DEFAULT_CHANNELS_BY_LEVEL: dict[AlertLevel, frozenset[str]] = {
    AlertLevel.CRITICAL: frozenset({ChannelId.TELEGRAM, ChannelId.EMAIL}),
    AlertLevel.WARNING: frozenset({ChannelId.TELEGRAM, ChannelId.EMAIL}),
    AlertLevel.INFO: frozenset({ChannelId.EMAIL}),
}


@dataclass(frozen=True)
class QuietHours:
    """Daily window during which non-critical notifications are held back."""
    start: time
    end: time
    timezone: str = "UTC"

    def contains(self, moment: datetime) -> bool:
        """Check if moment falls inside the window (start inclusive, end exclusive).

        The window wraps across midnight when start > end.
        """
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        local = moment.astimezone(ZoneInfo(self.timezone)).time().replace(tzinfo=None)

        if self.start == self.end:
            return False
        if self.start < self.end:
            return self.start <= local < self.end
        return local >= self.start or local < self.end

    @classmethod
    def parse(cls, start: str, end: str, tz_name: str | None = None) -> "QuietHours":
        """Build from "HH:MM" strings.

        Raises:
            ValueError: If a time or the timezone name is invalid
        """
        tz_name = tz_name or config.ALERT_TIMEZONE
        try:
            ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {tz_name}") from None

        return cls(
            start=time.fromisoformat(start),
            end=time.fromisoformat(end),
            timezone=tz_name,
        )


@dataclass(frozen=True)
class RecipientSettings:
    """Read-only alert configuration of one recipient."""
    recipient_id: str
    enabled_types: frozenset[AlertType] = frozenset(AlertType)
    throttle_minutes: int = DEFAULT_THROTTLE_MINUTES
    channels_by_level: dict[AlertLevel, frozenset[str]] = field(
        default_factory=lambda: dict(DEFAULT_CHANNELS_BY_LEVEL)
    )
    quiet_hours: QuietHours | None = None

    telegram_enabled: bool = True
    telegram_chat_id: str | None = None
    telegram_bot_token: str | None = None

    email_enabled: bool = True
    email_address: str | None = None

    digest_enabled: bool = True

    @property
    def effective_throttle_minutes(self) -> int:
        return self.throttle_minutes if self.throttle_minutes and self.throttle_minutes > 0 else DEFAULT_THROTTLE_MINUTES

    def is_type_enabled(self, alert_type: AlertType) -> bool:
        return alert_type in self.enabled_types

    def channels_for_level(self, level: AlertLevel) -> frozenset[str]:
        return self.channels_by_level.get(level, frozenset())

    def is_channel_enabled(self, channel_id: str) -> bool:
        """Check the channel's own on/off switch."""
        if channel_id == ChannelId.TELEGRAM:
            return self.telegram_enabled
        if channel_id == ChannelId.EMAIL:
            return self.email_enabled
        return False

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the settings API; secrets are masked."""
        return {
            "recipient_id": self.recipient_id,
            "enabled_types": sorted(t.value for t in self.enabled_types),
            "throttle_minutes": self.throttle_minutes,
            "channels_by_level": {
                level.value: sorted(channels)
                for level, channels in sorted(self.channels_by_level.items(), key=lambda kv: kv[0].rank, reverse=True)
            },
            "quiet_hours_enabled": self.quiet_hours is not None,
            "quiet_hours_start": self.quiet_hours.start.strftime("%H:%M") if self.quiet_hours else None,
            "quiet_hours_end": self.quiet_hours.end.strftime("%H:%M") if self.quiet_hours else None,
            "quiet_hours_timezone": self.quiet_hours.timezone if self.quiet_hours else None,
            "telegram_enabled": self.telegram_enabled,
            "telegram_chat_id": self.telegram_chat_id,
            "telegram_configured": bool(self.telegram_chat_id),
            "email_enabled": self.email_enabled,
            "email_address": self.email_address,
            "digest_enabled": self.digest_enabled,
        }


def default_settings(recipient_id: str) -> RecipientSettings:
    """Settings used when the recipient never saved any."""
    return RecipientSettings(
        recipient_id=recipient_id,
        telegram_chat_id=config.TELEGRAM_CHAT_ID or None,
        email_address=config.OWNER_EMAIL or None,
    )


class SettingsResolver(ABC):
    """Resolves the settings of a recipient."""

    @abstractmethod
    def resolve(self, recipient_id: str) -> RecipientSettings | None:
        """Return the recipient's settings, or None if none exist."""
        pass


class StaticSettingsResolver(SettingsResolver):
    """Serve settings from an in-memory mapping."""

    def __init__(self, settings: dict[str, RecipientSettings] | RecipientSettings | None = None):
        if isinstance(settings, RecipientSettings):
            settings = {settings.recipient_id: settings}
        self._settings = dict(settings or {})

    def resolve(self, recipient_id: str) -> RecipientSettings | None:
        return self._settings.get(recipient_id)

    def set(self, settings: RecipientSettings) -> None:
        self._settings[settings.recipient_id] = settings


class SettingsStore(SettingsResolver):
    """SQLite-backed settings, sharing the alert database.

    With use_defaults=True a recipient who never saved settings resolves to
    default_settings() instead of None.
    """

    def __init__(self, db_path: str | None = None, use_defaults: bool = False):
        self.use_defaults = use_defaults
        self.db_path = prepare_database(db_path)

    def _connect(self):
        return connect(self.db_path)

    def _fetch(self, recipient_id: str):
        with self._connect() as conn:
            return conn.execute(
                "SELECT * FROM alert_settings WHERE recipient_id = ?",
                (recipient_id,),
            ).fetchone()

    def resolve(self, recipient_id: str) -> RecipientSettings | None:
        row = self._fetch(recipient_id)
        if row is None:
            return default_settings(recipient_id) if self.use_defaults else None
        return self._from_row(row)

    def get_or_default(self, recipient_id: str) -> RecipientSettings:
        row = self._fetch(recipient_id)
        return self._from_row(row) if row else default_settings(recipient_id)

    def save(self, settings: RecipientSettings) -> None:
        """Insert or replace the settings of a recipient."""
        quiet = settings.quiet_hours
        channels = {
            level.value: sorted(chs) for level, chs in settings.channels_by_level.items()
        }

        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO alert_settings (
                    recipient_id, enabled_types, throttle_minutes, channels_by_level,
                    quiet_hours_enabled, quiet_hours_start, quiet_hours_end,
                    quiet_hours_timezone, telegram_enabled, telegram_chat_id,
                    telegram_bot_token, email_enabled, email_address,
                    digest_enabled, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    settings.recipient_id,
                    json.dumps(sorted(t.value for t in settings.enabled_types)),
                    settings.throttle_minutes,
                    json.dumps(channels),
                    int(quiet is not None),
                    quiet.start.strftime("%H:%M") if quiet else None,
                    quiet.end.strftime("%H:%M") if quiet else None,
                    quiet.timezone if quiet else None,
                    int(settings.telegram_enabled),
                    settings.telegram_chat_id,
                    settings.telegram_bot_token,
                    int(settings.email_enabled),
                    settings.email_address,
                    int(settings.digest_enabled),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )

        logger.info(f"Saved alert settings for recipient {settings.recipient_id}")

    def update(self, recipient_id: str, changes: dict[str, Any]) -> RecipientSettings:
        """Apply API-style field changes on top of the current settings."""
        current = self.get_or_default(recipient_id)
        updated = apply_changes(current, changes)
        self.save(updated)
        return updated

    def _from_row(self, row) -> RecipientSettings:
        enabled_types = frozenset(AlertType)
        if row["enabled_types"]:
            enabled_types = frozenset(
                AlertType(v) for v in json.loads(row["enabled_types"])
                if v in {t.value for t in AlertType}
            )

        channels_by_level = dict(DEFAULT_CHANNELS_BY_LEVEL)
        if row["channels_by_level"]:
            channels_by_level = {
                AlertLevel(level): frozenset(chs)
                for level, chs in json.loads(row["channels_by_level"]).items()
            }

        quiet_hours = None
        if row["quiet_hours_enabled"] and row["quiet_hours_start"] and row["quiet_hours_end"]:
            # Not re-validated here; is_quiet_hours handles unknown zones
            quiet_hours = QuietHours(
                start=time.fromisoformat(row["quiet_hours_start"]),
                end=time.fromisoformat(row["quiet_hours_end"]),
                timezone=row["quiet_hours_timezone"] or config.ALERT_TIMEZONE,
            )

        return RecipientSettings(
            recipient_id=row["recipient_id"],
            enabled_types=enabled_types,
            throttle_minutes=row["throttle_minutes"] or DEFAULT_THROTTLE_MINUTES,
            channels_by_level=channels_by_level,
            quiet_hours=quiet_hours,
            telegram_enabled=bool(row["telegram_enabled"]),
            telegram_chat_id=row["telegram_chat_id"],
            telegram_bot_token=row["telegram_bot_token"],
            email_enabled=bool(row["email_enabled"]),
            email_address=row["email_address"],
            digest_enabled=bool(row["digest_enabled"]),
        )


def apply_changes(settings: RecipientSettings, changes: dict[str, Any]) -> RecipientSettings:
    """Return a copy of settings with API field changes applied.

    Raises:
        ValueError: If a value cannot be parsed
    """
    updates: dict[str, Any] = {}

    for key in ("telegram_enabled", "email_enabled", "digest_enabled"):
        if key in changes:
            updates[key] = bool(changes[key])
    for key in ("telegram_chat_id", "telegram_bot_token", "email_address"):
        if key in changes:
            updates[key] = changes[key] or None

    if "throttle_minutes" in changes:
        minutes = int(changes["throttle_minutes"])
        if minutes < 1:
            raise ValueError("throttle_minutes must be at least 1")
        updates["throttle_minutes"] = minutes

    if "enabled_types" in changes:
        updates["enabled_types"] = frozenset(AlertType(v) for v in changes["enabled_types"])

    if "channels_by_level" in changes:
        channels_by_level = {}
        for level, channels in changes["channels_by_level"].items():
            unknown = set(channels) - set(ChannelId.ALL)
            if unknown:
                raise ValueError(f"Unknown channels: {', '.join(sorted(unknown))}")
            channels_by_level[AlertLevel(level)] = frozenset(channels)
        updates["channels_by_level"] = channels_by_level

    if "quiet_hours_enabled" in changes and not changes["quiet_hours_enabled"]:
        updates["quiet_hours"] = None
    elif changes.get("quiet_hours_enabled") or any(
        changes.get(key) for key in ("quiet_hours_start", "quiet_hours_end", "quiet_hours_timezone")
    ):
        current = settings.quiet_hours
        start = changes.get("quiet_hours_start") or (current.start.strftime("%H:%M") if current else None)
        end = changes.get("quiet_hours_end") or (current.end.strftime("%H:%M") if current else None)
        tz_name = changes.get("quiet_hours_timezone") or (current.timezone if current else None)
        if not start or not end:
            raise ValueError("quiet hours need both start and end")
        updates["quiet_hours"] = QuietHours.parse(start, end, tz_name)

    return replace(settings, **updates)


class OwnerResolver(ABC):
    """Finds the platform owner who receives every alert."""

    @abstractmethod
    def resolve_owner(self) -> str | None:
        """Return the owner's recipient id, or None if no owner is configured."""
        pass


class StaticOwnerResolver(OwnerResolver):
    """Always resolve to a fixed owner id."""

    def __init__(self, owner_id: str | None):
        self.owner_id = owner_id

    def resolve_owner(self) -> str | None:
        return self.owner_id


class ConfigOwnerResolver(OwnerResolver):
    """Resolve the owner from the ALERT_OWNER_ID setting."""

    def resolve_owner(self) -> str | None:
        return config.ALERT_OWNER_ID or None

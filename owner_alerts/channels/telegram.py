"""Telegram bot channel.

Sends alerts to the owner's chat through the Bot API `sendMessage` method,
rendered with MarkdownV2.

Setup:
1. Create a bot with @BotFather and copy its token (TELEGRAM_BOT_TOKEN)
2. Start a chat with the bot and read the chat id from getUpdates
3. Save the chat id in the owner's alert settings
"""

import logging
import re
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import requests

from ..alert_store import AlertRecord
from ..config import config
from ..models import AlertType, ChannelId, DeliveryResult
from ..settings import RecipientSettings
from .base import NotificationChannel

logger = logging.getLogger(__name__)

TELEGRAM_MAX_MESSAGE_CHARS = 4096
MAX_BODY_CHARS = 3000

_MARKDOWN_V2_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")


def escape_markdown(text) -> str:
    """Escape every character reserved by Telegram MarkdownV2."""
    return _MARKDOWN_V2_SPECIAL.sub(r"\\\1", str(text))


def _number(value) -> str:
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, float):
        return f"{value:,.0f}" if value.is_integer() else f"{value:,.2f}"
    return str(value)


def _percent(value) -> str:
    return f"{value}%"


# (context key, icon, label, formatter) per alert type; absent keys are skipped
_CONTEXT_LINES = {
    AlertType.PROFIT: [
        ("margin_percent", "📉", "Margin", _percent),
        ("revenue", "💰", "Revenue", _number),
        ("cost", "💸", "Cost", _number),
        ("profit", "📈", "Profit", _number),
        ("loss", "🔻", "Loss", _number),
        ("threshold", "🎯", "Threshold", _number),
    ],
    AlertType.QUOTA: [
        ("remaining_percent", "📊", "Remaining", _percent),
        ("monthly_used", "📤", "Used", _number),
        ("monthly_limit", "📦", "Limit", _number),
    ],
    AlertType.CONNECTION_STATUS: [
        ("phone_number", "📱", "Number", str),
        ("old_status", "⏪", "Previous status", str),
        ("new_status", "🔌", "Status", str),
        ("status", "🔌", "Status", str),
    ],
    AlertType.SECURITY: [
        ("ip", "🌐", "IP", str),
        ("endpoint", "🔗", "Endpoint", str),
        ("user_agent", "🧭", "User agent", str),
    ],
}


class TelegramChannel(NotificationChannel):
    """Send alerts to a Telegram chat via the Bot API."""

    channel_id = ChannelId.TELEGRAM

    def __init__(
        self,
        bot_token: str | None = None,
        api_base: str | None = None,
        timeout: float | None = None,
        display_timezone: str | None = None,
    ):
        """
        Initialize Telegram channel.

        Args:
            bot_token: Default bot token, used when the recipient has none
            api_base: Bot API base URL
            timeout: Per-request timeout in seconds
            display_timezone: Timezone used for the timestamp footer
        """
        self.bot_token = bot_token or config.TELEGRAM_BOT_TOKEN or None
        self.api_base = (api_base or config.TELEGRAM_API_BASE).rstrip("/")
        self.timeout = timeout or config.NOTIFICATION_TIMEOUT
        self.display_timezone = display_timezone or config.ALERT_TIMEZONE

    def _token_for(self, settings: RecipientSettings) -> str | None:
        return settings.telegram_bot_token or self.bot_token

    def is_configured(self, settings: RecipientSettings) -> bool:
        return bool(self._token_for(settings) and settings.telegram_chat_id)

    def format_message(self, record: AlertRecord) -> str:
        """Render an alert as MarkdownV2 text."""
        lines = [
            f"{record.level.icon} *{escape_markdown(record.title)}*",
            f"_{escape_markdown(record.type_label)}_ \\| {escape_markdown(record.level.value.upper())}",
            "",
        ]

        context = record.context or {}
        tenant_name = context.get("tenant_name")
        tenant_id = context.get("tenant_id")
        if tenant_name is not None and tenant_id is not None:
            lines.append(f"🏢 Tenant: {escape_markdown(tenant_name)} \\(\\#{escape_markdown(tenant_id)}\\)")
        elif tenant_name is not None:
            lines.append(f"🏢 Tenant: {escape_markdown(tenant_name)}")
        elif tenant_id is not None:
            lines.append(f"🏢 Tenant \\#{escape_markdown(tenant_id)}")

        for key, icon, label, fmt in _CONTEXT_LINES.get(record.alert_type, []):
            if context.get(key) is None:
                continue
            lines.append(f"{icon} {escape_markdown(label)}: {escape_markdown(fmt(context[key]))}")

        if lines[-1] != "":
            lines.append("")

        seen_at = record.first_seen_at or datetime.now(timezone.utc)
        local = seen_at.astimezone(ZoneInfo(self.display_timezone))
        footer = ["", f"🕐 {escape_markdown(local.strftime('%Y-%m-%d %H:%M:%S %Z'))}"]
        if record.occurrence_count > 1:
            footer.append(f"🔁 Occurred {record.occurrence_count}x")

        body = record.message or ""
        truncated = len(body) > MAX_BODY_CHARS
        if truncated:
            body = body[:MAX_BODY_CHARS]
        body = escape_markdown(body)

        # Header and footer lines plus the newlines joining them to the body
        budget = TELEGRAM_MAX_MESSAGE_CHARS - len("\n".join(lines + footer)) - 1
        ellipsis = escape_markdown("...")
        if len(body) > budget:
            body = body[:max(budget - len(ellipsis), 0)]
            truncated = True
        if truncated:
            # Never leave a dangling escape character
            body = body.rstrip("\\") + ellipsis

        text = "\n".join(lines + [body] + footer)
        if len(text) > TELEGRAM_MAX_MESSAGE_CHARS:
            text = text[:TELEGRAM_MAX_MESSAGE_CHARS].rstrip("\\")
        return text

    def _post_message(self, token: str, chat_id: str, text: str) -> DeliveryResult:
        """Call sendMessage and translate the response."""
        url = f"{self.api_base}/bot{token}/sendMessage"
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "MarkdownV2",
            "disable_web_page_preview": True,
        }

        try:
            response = requests.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            return DeliveryResult.failed(f"Telegram request failed: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.ok and data.get("ok"):
            message_id = (data.get("result") or {}).get("message_id")
            return DeliveryResult.ok(str(message_id) if message_id is not None else None)

        error = data.get("description") or f"HTTP {response.status_code}: {response.text[:200]}"
        return DeliveryResult.failed(f"Telegram API error: {error}")

    def send(self, record: AlertRecord, settings: RecipientSettings) -> DeliveryResult:
        token = self._token_for(settings)
        if not token:
            return DeliveryResult.misconfigured("Telegram bot token not configured")
        if not settings.telegram_chat_id:
            return DeliveryResult.misconfigured("Telegram chat id not configured")

        result = self._post_message(token, settings.telegram_chat_id, self.format_message(record))

        if result.success:
            logger.info(f"Telegram notification sent for alert {record.id}")
        else:
            logger.warning(f"Telegram notification failed for alert {record.id}: {result.error}")
        return result

    def test_connection(self, settings: RecipientSettings) -> DeliveryResult:
        token = self._token_for(settings)
        if not token or not settings.telegram_chat_id:
            return DeliveryResult.misconfigured("Telegram not configured")

        now = datetime.now(ZoneInfo(self.display_timezone))
        text = "\n".join([
            f"✅ *{escape_markdown(config.ALERT_BRAND_NAME)}*",
            "",
            escape_markdown("Telegram connection test successful!"),
            escape_markdown(f"Time: {now.strftime('%Y-%m-%d %H:%M:%S %Z')}"),
        ])
        return self._post_message(token, settings.telegram_chat_id, text)

"""Email channel using SMTP."""

import html
import logging
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from zoneinfo import ZoneInfo

from ..alert_store import AlertRecord
from ..config import config
from ..models import AlertLevel, ChannelId, DeliveryResult, DigestPayload
from ..settings import RecipientSettings
from .base import NotificationChannel

logger = logging.getLogger(__name__)

LEVEL_COLORS = {
    AlertLevel.CRITICAL: "#dc3545",
    AlertLevel.WARNING: "#ffc107",
    AlertLevel.INFO: "#17a2b8",
}

LEVEL_PREFIX = {
    AlertLevel.CRITICAL: "🚨 [CRITICAL]",
    AlertLevel.WARNING: "⚠️ [WARNING]",
    AlertLevel.INFO: "ℹ️ [INFO]",
}


@dataclass
class EmailMessage:
    """Email message content."""
    subject: str
    text_body: str
    html_body: str | None = None


def _label(key: str) -> str:
    return key.replace("_", " ").capitalize()


class EmailChannel(NotificationChannel):
    """Send alert and digest emails via SMTP."""

    channel_id = ChannelId.EMAIL

    def __init__(
        self,
        smtp_server: str | None = None,
        smtp_port: int | None = None,
        smtp_username: str | None = None,
        smtp_password: str | None = None,
        from_address: str | None = None,
        default_address: str | None = None,
        use_tls: bool | None = None,
        timeout: float | None = None,
        display_timezone: str | None = None,
        brand_name: str | None = None,
    ):
        """
        Initialize SMTP email channel.

        Args:
            smtp_server: SMTP server hostname
            smtp_port: SMTP server port (587 for TLS, 465 for SSL, 25 for plain)
            smtp_username: SMTP authentication username
            smtp_password: SMTP authentication password
            from_address: Sender email address
            default_address: Recipient used when settings carry no address
            use_tls: Whether to use STARTTLS (for port 587)
            timeout: SMTP socket timeout in seconds
            display_timezone: Timezone for timestamps in the body
            brand_name: Product name shown in subjects and footers
        """
        self.smtp_server = smtp_server or config.SMTP_SERVER or None
        self.smtp_port = smtp_port or config.SMTP_PORT
        self.smtp_username = smtp_username or config.SMTP_USERNAME
        self.smtp_password = smtp_password or config.SMTP_PASSWORD
        self.from_address = (
            from_address or config.ALERT_EMAIL_FROM or f"owner-alerts@{self.smtp_server or 'localhost'}"
        )
        self.default_address = default_address or config.OWNER_EMAIL or None
        self.use_tls = config.SMTP_USE_TLS if use_tls is None else use_tls
        self.timeout = timeout or config.NOTIFICATION_TIMEOUT
        self.display_timezone = display_timezone or config.ALERT_TIMEZONE
        self.brand_name = brand_name or config.ALERT_BRAND_NAME

    def _address_for(self, settings: RecipientSettings) -> str | None:
        return settings.email_address or self.default_address

    def is_configured(self, settings: RecipientSettings) -> bool:
        return bool(self.smtp_server and self._address_for(settings))

    def _local(self, moment: datetime | None) -> str:
        moment = moment or datetime.now(timezone.utc)
        return moment.astimezone(ZoneInfo(self.display_timezone)).strftime("%Y-%m-%d %H:%M:%S %Z")

    # Alert rendering

    def build_subject(self, record: AlertRecord) -> str:
        prefix = LEVEL_PREFIX.get(record.level, "[ALERT]")
        return f"{prefix} {record.title} - {self.brand_name}"

    def build_html(self, record: AlertRecord) -> str:
        """Build the HTML body: colored header, message, context table, footer."""
        color = LEVEL_COLORS.get(record.level, "#6c757d")
        esc = html.escape

        context_html = ""
        if record.context:
            rows = []
            for key, value in record.context.items():
                if value is None:
                    continue
                rows.append(
                    "<tr>"
                    f'<td style="padding: 8px; border-bottom: 1px solid #eee; font-weight: bold; width: 150px;">{esc(_label(key))}</td>'
                    f'<td style="padding: 8px; border-bottom: 1px solid #eee;">{esc(str(value))}</td>'
                    "</tr>"
                )
            context_html = (
                '<table style="width: 100%; border-collapse: collapse; margin-top: 15px;">'
                + "".join(rows)
                + "</table>"
            )

        occurrences = ""
        if record.occurrence_count > 1:
            occurrences = f"<br>🔁 Occurred {record.occurrence_count}x"

        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{esc(record.title)}</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: {color}; color: white; padding: 20px; border-radius: 8px 8px 0 0;">
        <h1 style="margin: 0; font-size: 24px;">{record.level.icon} {esc(record.title)}</h1>
        <p style="margin: 10px 0 0 0; opacity: 0.9;">{esc(record.type_label)}</p>
    </div>
    <div style="background: #f9f9f9; padding: 20px; border: 1px solid #ddd; border-top: none;">
        <div style="background: white; padding: 15px; border-radius: 4px; margin-bottom: 15px;">
            <p style="margin: 0; white-space: pre-wrap;">{esc(record.message)}</p>
        </div>
        {context_html}
        <p style="color: #666; font-size: 12px; margin-top: 20px; padding-top: 15px; border-top: 1px solid #ddd;">
            🕐 Alert Time: {self._local(record.first_seen_at)}
            <br>
            🔖 Alert ID: #{esc(record.id)}{occurrences}
        </p>
    </div>
    <div style="background: #333; color: white; padding: 15px; border-radius: 0 0 8px 8px; text-align: center; font-size: 12px;">
        <p style="margin: 0;">{esc(self.brand_name)}</p>
        <p style="margin: 5px 0 0 0; opacity: 0.7;">This is an automated notification. Please do not reply.</p>
    </div>
</body>
</html>
"""

    def build_text(self, record: AlertRecord) -> str:
        """Build the plain text body with the same content as the HTML body."""
        lines = [
            f"{record.level.value.upper()}: {record.title}",
            "=" * 50,
            "",
            f"Type: {record.type_label}",
            "",
            record.message,
            "",
        ]

        context = {k: v for k, v in (record.context or {}).items() if v is not None}
        if context:
            lines.append("-" * 30)
            lines.append("Additional Information:")
            for key, value in context.items():
                lines.append(f"  {_label(key)}: {value}")
            lines.append("")

        lines.append("-" * 30)
        lines.append(f"Alert Time: {self._local(record.first_seen_at)}")
        lines.append(f"Alert ID: #{record.id}")
        if record.occurrence_count > 1:
            lines.append(f"Occurred {record.occurrence_count}x")
        lines.append("")
        lines.append("-- ")
        lines.append(self.brand_name)

        return "\n".join(lines)

    def build_message(self, record: AlertRecord) -> EmailMessage:
        return EmailMessage(
            subject=self.build_subject(record),
            text_body=self.build_text(record),
            html_body=self.build_html(record),
        )

    # Digest rendering

    def build_digest_message(self, payload: DigestPayload) -> EmailMessage:
        """Render the daily digest template."""
        esc = html.escape
        counts = payload.counts

        boxes = []
        for label, key, background, fg in (
            ("Critical", AlertLevel.CRITICAL.value, LEVEL_COLORS[AlertLevel.CRITICAL], "white"),
            ("Warning", AlertLevel.WARNING.value, LEVEL_COLORS[AlertLevel.WARNING], "#333"),
            ("Info", AlertLevel.INFO.value, LEVEL_COLORS[AlertLevel.INFO], "white"),
            ("Total", "total", "#6c757d", "white"),
        ):
            boxes.append(
                f'<div style="flex: 1; background: {background}; color: {fg}; padding: 15px; border-radius: 4px; text-align: center;">'
                f'<div style="font-size: 24px; font-weight: bold;">{counts.get(key, 0)}</div>'
                f'<div style="font-size: 12px;">{label}</div>'
                "</div>"
            )

        rows = []
        text_rows = []
        tz = ZoneInfo(self.display_timezone)
        for record in payload.alerts:
            color = LEVEL_COLORS.get(record.level, "#6c757d")
            seen = record.first_seen_at.astimezone(tz).strftime("%H:%M")
            occurrences = f" ({record.occurrence_count}x)" if record.occurrence_count > 1 else ""
            rows.append(
                "<tr>"
                '<td style="padding: 10px; border-bottom: 1px solid #eee;">'
                f'<span style="background: {color}; color: white; padding: 2px 8px; border-radius: 4px; font-size: 11px;">{record.level.value}</span>'
                "</td>"
                f'<td style="padding: 10px; border-bottom: 1px solid #eee;">{esc(record.type_label)}</td>'
                f'<td style="padding: 10px; border-bottom: 1px solid #eee;">{esc(record.title)}{occurrences}</td>'
                f'<td style="padding: 10px; border-bottom: 1px solid #eee;">{seen}</td>'
                "</tr>"
            )
            text_rows.append(
                f"  [{record.level.value.upper():8}] {seen}  {record.type_label}: {record.title}{occurrences}"
            )

        day = payload.date.isoformat()
        html_body = f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Daily Alert Digest</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 800px; margin: 0 auto; padding: 20px;">
    <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 30px; border-radius: 8px 8px 0 0;">
        <h1 style="margin: 0;">📊 Daily Alert Digest</h1>
        <p style="margin: 10px 0 0 0; opacity: 0.9;">{day} - {esc(self.brand_name)}</p>
    </div>
    <div style="background: #f9f9f9; padding: 20px; border: 1px solid #ddd; border-top: none;">
        <div style="display: flex; gap: 15px; margin-bottom: 20px;">
            {"".join(boxes)}
        </div>
        <table style="width: 100%; border-collapse: collapse; background: white;">
            <thead>
                <tr style="background: #eee;">
                    <th style="padding: 10px; text-align: left;">Level</th>
                    <th style="padding: 10px; text-align: left;">Type</th>
                    <th style="padding: 10px; text-align: left;">Title</th>
                    <th style="padding: 10px; text-align: left;">Time</th>
                </tr>
            </thead>
            <tbody>
                {"".join(rows)}
            </tbody>
        </table>
    </div>
    <div style="background: #333; color: white; padding: 15px; border-radius: 0 0 8px 8px; text-align: center; font-size: 12px;">
        <p style="margin: 0;">{esc(self.brand_name)} - Daily Digest</p>
    </div>
</body>
</html>
"""

        text_lines = [
            f"Daily Alert Digest - {day}",
            "=" * 50,
            "",
            f"Critical: {counts.get(AlertLevel.CRITICAL.value, 0)}",
            f"Warning:  {counts.get(AlertLevel.WARNING.value, 0)}",
            f"Info:     {counts.get(AlertLevel.INFO.value, 0)}",
            f"Total:    {counts.get('total', 0)}",
            "",
            "-" * 30,
            *text_rows,
            "",
            "-- ",
            self.brand_name,
        ]

        return EmailMessage(
            subject=payload.subject,
            text_body="\n".join(text_lines),
            html_body=html_body,
        )

    # Transport

    def _deliver(self, message: EmailMessage, recipients: list[str]) -> DeliveryResult:
        """Send a message over SMTP and report the outcome."""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self.from_address
        msg["To"] = ", ".join(recipients)
        message_id = make_msgid(domain=self.from_address.split("@")[-1])
        msg["Message-ID"] = message_id

        # Attach text version (required)
        msg.attach(MIMEText(message.text_body, "plain", "utf-8"))

        # Attach HTML version if provided
        if message.html_body:
            msg.attach(MIMEText(message.html_body, "html", "utf-8"))

        try:
            if self.smtp_port == 465:
                # SSL connection
                context = ssl.create_default_context()
                with smtplib.SMTP_SSL(
                    self.smtp_server, self.smtp_port, context=context, timeout=self.timeout
                ) as server:
                    if self.smtp_username and self.smtp_password:
                        server.login(self.smtp_username, self.smtp_password)
                    server.sendmail(self.from_address, recipients, msg.as_string())
            else:
                # Plain or STARTTLS connection
                with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
                    if self.use_tls:
                        server.starttls()
                    if self.smtp_username and self.smtp_password:
                        server.login(self.smtp_username, self.smtp_password)
                    server.sendmail(self.from_address, recipients, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            return DeliveryResult.failed(f"SMTP error: {e}")

        return DeliveryResult.ok(message_id)

    def _precheck(self, settings: RecipientSettings) -> DeliveryResult | None:
        if not self._address_for(settings):
            return DeliveryResult.misconfigured("Email address not configured")
        if not self.smtp_server:
            return DeliveryResult.misconfigured("SMTP server not configured")
        return None

    def send(self, record: AlertRecord, settings: RecipientSettings) -> DeliveryResult:
        problem = self._precheck(settings)
        if problem:
            return problem

        address = self._address_for(settings)
        result = self._deliver(self.build_message(record), [address])

        if result.success:
            logger.info(f"Email notification sent for alert {record.id} to {address}")
        else:
            logger.warning(f"Email notification failed for alert {record.id}: {result.error}")
        return result

    def send_digest(self, payload: DigestPayload, settings: RecipientSettings) -> DeliveryResult:
        """Send a daily digest email."""
        problem = self._precheck(settings)
        if problem:
            return problem

        address = self._address_for(settings)
        result = self._deliver(self.build_digest_message(payload), [address])

        if result.success:
            logger.info(f"Daily digest for {payload.date} sent to {address} ({payload.total} alerts)")
        else:
            logger.error(f"Daily digest for {payload.date} failed: {result.error}")
        return result

    def test_connection(self, settings: RecipientSettings) -> DeliveryResult:
        problem = self._precheck(settings)
        if problem:
            return problem

        message = EmailMessage(
            subject=f"✅ {self.brand_name} Email Test",
            text_body=(
                f"{self.brand_name}\n\nEmail connection test successful!\n\n"
                f"Time: {self._local(None)}"
            ),
        )
        return self._deliver(message, [self._address_for(settings)])

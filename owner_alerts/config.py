"""Configuration management for Owner Alerts."""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)
else:
    # Fall back to template for defaults
    template_path = Path(__file__).parent.parent / ".env.template"
    if template_path.exists():
        load_dotenv(template_path)


class Config:
    """Application configuration."""

    # Alert store
    ALERT_DB_PATH: str = os.getenv("ALERT_DB_PATH", "~/.owner-alerts/alerts.db")

    # Platform owner receiving every alert
    ALERT_OWNER_ID: str | None = os.getenv("ALERT_OWNER_ID")

    # Display / digest day boundaries
    ALERT_TIMEZONE: str = os.getenv("ALERT_TIMEZONE", "UTC")
    ALERT_BRAND_NAME: str = os.getenv("ALERT_BRAND_NAME", "Owner Alerts")

    # Deduplication
    DEFAULT_THROTTLE_MINUTES: int = int(os.getenv("DEFAULT_THROTTLE_MINUTES", "15"))

    # Telegram settings
    TELEGRAM_API_BASE: str = os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org")
    TELEGRAM_BOT_TOKEN: str | None = os.getenv("TELEGRAM_BOT_TOKEN")
    TELEGRAM_CHAT_ID: str | None = os.getenv("TELEGRAM_CHAT_ID")

    # Per-send timeout (seconds) for every channel
    NOTIFICATION_TIMEOUT: float = float(os.getenv("NOTIFICATION_TIMEOUT", "10"))

    # Email settings
    SMTP_SERVER: str | None = os.getenv("SMTP_SERVER")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME: str | None = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD: str | None = os.getenv("SMTP_PASSWORD")
    SMTP_USE_TLS: bool = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
    ALERT_EMAIL_FROM: str | None = os.getenv("ALERT_EMAIL_FROM")
    OWNER_EMAIL: str | None = os.getenv("OWNER_EMAIL")

    # Retry sweep / cleanup
    RETRY_LIMIT: int = int(os.getenv("RETRY_LIMIT", "50"))
    RETRY_MAX_AGE_HOURS: int = int(os.getenv("RETRY_MAX_AGE_HOURS", "24"))
    CLEANUP_DAYS: int = int(os.getenv("CLEANUP_DAYS", "30"))

    # JSON API
    DASHBOARD_API_KEY: str = os.getenv("DASHBOARD_API_KEY", "")

    @classmethod
    def is_telegram_configured(cls) -> bool:
        """Check if process-level Telegram credentials are present."""
        return bool(cls.TELEGRAM_BOT_TOKEN)

    @classmethod
    def is_email_configured(cls) -> bool:
        """Check if an SMTP server is configured."""
        return bool(cls.SMTP_SERVER)


config = Config()

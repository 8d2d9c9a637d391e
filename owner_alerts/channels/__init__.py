"""Notification channels."""

from .base import NotificationChannel
from .email import EmailChannel, EmailMessage
from .telegram import TelegramChannel, escape_markdown

__all__ = [
    "NotificationChannel",
    "EmailChannel",
    "EmailMessage",
    "TelegramChannel",
    "escape_markdown",
]

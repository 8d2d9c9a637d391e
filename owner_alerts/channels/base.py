"""Base notification channel interface."""

from abc import ABC, abstractmethod

from ..alert_store import AlertRecord
from ..models import DeliveryResult
from ..settings import RecipientSettings


class NotificationChannel(ABC):
    """A delivery medium able to send one alert to one recipient."""

    #: Identifier used in settings and delivery state
    channel_id: str = ""

    @abstractmethod
    def send(self, record: AlertRecord, settings: RecipientSettings) -> DeliveryResult:
        """
        Send an alert.

        Args:
            record: The stored alert to render and send
            settings: The recipient's resolved settings

        Returns:
            DeliveryResult describing success or the failure reason
        """
        pass

    @abstractmethod
    def is_configured(self, settings: RecipientSettings) -> bool:
        """Check if this channel has the address/credentials it needs."""
        pass

    @abstractmethod
    def test_connection(self, settings: RecipientSettings) -> DeliveryResult:
        """Send a short test notification."""
        pass

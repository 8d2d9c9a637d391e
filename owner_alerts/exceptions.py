"""Exceptions raised by the alert engine."""


class OwnerAlertsError(Exception):
    """Base class for alert engine errors."""


class DedupContentionError(OwnerAlertsError):
    """Concurrent writers kept winning the insert for one dedup key."""

    def __init__(self, dedup_key: str, attempts: int):
        super().__init__(
            f"Could not resolve alert for dedup key {dedup_key[:12]} after {attempts} attempts"
        )
        self.dedup_key = dedup_key
        self.attempts = attempts


class UnknownChannelError(OwnerAlertsError):
    """No channel is registered under the requested id."""

    def __init__(self, channel_id: str):
        super().__init__(f"Unknown notification channel: {channel_id}")
        self.channel_id = channel_id

"""Notifier protocol — delivery channel abstraction."""
from typing import Protocol

from ..models import AlertPayload, NotificationSettings


class Notifier(Protocol):
    """Abstract interface for sending notifications."""

    async def send_alert(
        self, payload: AlertPayload, settings: NotificationSettings
    ) -> bool: ...

    async def send_log(self, message: str, silent: bool = True) -> bool: ...

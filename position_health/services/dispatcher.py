"""Notification dispatch — suppression check, durable log write, then delivery."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from ..db.tables import utcnow
from ..interfaces.notifier import Notifier
from ..models import (
    AlertPayload,
    AlertType,
    Breach,
    NotificationLogEntry,
    NotificationSettings,
)
from .notification_log import NotificationLogStore
from .suppression import SuppressionPolicy

logger = logging.getLogger(__name__)


def build_payload(user_id: str, breach: Breach) -> AlertPayload:
    """Render a breach into the transport-facing alert."""
    metadata = {
        **breach.metadata,
        "observedValue": breach.observed_value,
        "threshold": breach.threshold,
        "direction": breach.direction.value,
    }

    if breach.type is AlertType.DEPEG:
        symbol = breach.subject
        title = f"{symbol} depegged!"
        message = (
            f"{symbol} is trading at ${breach.observed_value:.4f}, "
            f"{breach.direction.value} your threshold of ${breach.threshold:.4f}"
        )
        metadata["symbol"] = symbol
    else:
        name = breach.metadata.get("positionName", breach.subject)
        previous = breach.metadata.get("previousApy")
        title = f"Low APY Alert: {name}"
        message = f"APY dropped to {breach.observed_value * 100:.2f}%"
        if previous is not None:
            message += f" from {previous * 100:.2f}%"
        message += f", a drop beyond your threshold of {breach.threshold * 100:.2f} points"
        metadata["positionId"] = breach.subject

    return AlertPayload(
        user_id=user_id,
        type=breach.type,
        severity=breach.severity,
        title=title,
        message=message,
        metadata=metadata,
    )


class NotificationDispatcher:
    """Issues approved alerts at most once per incident.

    The log entry is committed before any transport is called. A crash in
    between loses the notification instead of duplicating it, and a transport
    failure never removes the entry.
    """

    def __init__(
        self,
        log_store: NotificationLogStore,
        policy: SuppressionPolicy,
        notifiers: Sequence[Notifier] = (),
    ) -> None:
        self._log_store = log_store
        self._policy = policy
        self._notifiers = list(notifiers)

    async def dispatch(
        self,
        user_id: str,
        breach: Breach,
        settings: NotificationSettings,
        now: datetime | None = None,
    ) -> NotificationLogEntry | None:
        """Log and deliver a breach; None when suppressed or already logged."""
        now = now or utcnow()
        if not await self._policy.should_alert(user_id, breach, now):
            return None

        payload = build_payload(user_id, breach)
        bucket_seconds = int(self._policy.cooldown(breach.severity).total_seconds())
        entry = await self._log_store.insert_once(
            payload, breach.subject, breach.direction, now, bucket_seconds
        )
        if entry is None:
            return None

        logger.info(
            "Logged %s alert for %s to user %s (severity %s)",
            breach.type.value,
            breach.subject,
            user_id,
            breach.severity.value,
        )
        await self._deliver(payload, settings)
        return entry

    async def _deliver(self, payload: AlertPayload, settings: NotificationSettings) -> None:
        if not self._notifiers:
            logger.debug("No notifiers configured, alert only logged")
            return

        delivered = False
        for notifier in self._notifiers:
            try:
                delivered = await notifier.send_alert(payload, settings) or delivered
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)

        if not delivered:
            logger.warning(
                "Alert '%s' for user %s was logged but not delivered by any channel",
                payload.title,
                payload.user_id,
            )

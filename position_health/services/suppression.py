"""Suppression policy — severity-scaled cooldowns derived from the notification log.

There is no mutable suppression state. A breach is approved when the log has
no entry for its dedup key, or when the newest such entry is at least one
cooldown old. A condition that recovers and re-breaches is therefore gated
only by the cooldown of the last real alert.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Mapping, NamedTuple

from ..config import DEFAULT_COOLDOWN_MINUTES
from ..db.tables import utcnow
from ..models import AlertType, Breach, Direction, Severity
from .notification_log import NotificationLogStore

logger = logging.getLogger(__name__)


class DedupKey(NamedTuple):
    user_id: str
    alert_type: AlertType
    subject: str
    direction: Direction


def dedup_key(user_id: str, breach: Breach) -> DedupKey:
    return DedupKey(user_id, breach.type, breach.subject, breach.direction)


class SuppressionPolicy:
    def __init__(
        self,
        log_store: NotificationLogStore,
        cooldown_minutes: Mapping[str, int] | None = None,
    ) -> None:
        self._log_store = log_store
        minutes = dict(DEFAULT_COOLDOWN_MINUTES)
        if cooldown_minutes:
            minutes.update(cooldown_minutes)
        self._cooldowns = {
            severity: timedelta(minutes=minutes[severity.value]) for severity in Severity
        }

    def cooldown(self, severity: Severity) -> timedelta:
        return self._cooldowns[severity]

    async def should_alert(
        self, user_id: str, breach: Breach, now: datetime | None = None
    ) -> bool:
        now = now or utcnow()
        key = dedup_key(user_id, breach)
        last = await self._log_store.latest_for_key(*key)
        if last is None:
            return True

        elapsed = now - last.sent_at
        if elapsed >= self.cooldown(breach.severity):
            return True

        logger.info(
            "Suppressed %s alert for %s (user %s, %s): last sent %s ago",
            breach.type.value,
            breach.subject,
            user_id,
            breach.direction.value,
            elapsed,
        )
        return False

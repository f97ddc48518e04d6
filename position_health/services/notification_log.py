"""Notification log — append-only history, also the source of suppression state."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import DEFAULT_COOLDOWN_MINUTES
from ..db.tables import NotificationLogRow, utcnow
from ..models import (
    AlertPayload,
    AlertType,
    Direction,
    NotificationLogEntry,
    Severity,
)

logger = logging.getLogger(__name__)


def time_bucket(ts: datetime, bucket_seconds: int) -> int:
    """Start (epoch seconds) of the ``bucket_seconds`` window containing ``ts``.

    Two writers whose clocks straddle a boundary land in different buckets and
    both insert; the unique constraint only dedups within one window.
    """
    epoch = int(ts.timestamp())
    return epoch - epoch % bucket_seconds


def _to_entry(row: NotificationLogRow) -> NotificationLogEntry:
    return NotificationLogEntry(
        id=row.id,
        user_id=row.user_id,
        alert_type=AlertType(row.notification_type),
        severity=Severity(row.severity),
        subject=row.subject,
        direction=Direction(row.direction),
        title=row.title,
        message=row.message,
        metadata=dict(row.details or {}),
        sent_at=row.sent_at,
    )


class NotificationLogStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        min_retention: timedelta | None = None,
    ) -> None:
        self._session_factory = session_factory
        # Entries younger than the longest cooldown still suppress alerts
        self._min_retention = min_retention or timedelta(
            minutes=max(DEFAULT_COOLDOWN_MINUTES.values())
        )

    async def latest_for_key(
        self,
        user_id: str,
        alert_type: AlertType,
        subject: str,
        direction: Direction,
    ) -> NotificationLogEntry | None:
        """Most recent entry sharing the dedup key."""
        async with self._session_factory() as session:
            row = await session.scalar(
                select(NotificationLogRow)
                .where(
                    NotificationLogRow.user_id == user_id,
                    NotificationLogRow.notification_type == alert_type.value,
                    NotificationLogRow.subject == subject,
                    NotificationLogRow.direction == direction.value,
                )
                .order_by(NotificationLogRow.sent_at.desc(), NotificationLogRow.id.desc())
                .limit(1)
            )
            return _to_entry(row) if row is not None else None

    async def insert_once(
        self,
        payload: AlertPayload,
        subject: str,
        direction: Direction,
        sent_at: datetime,
        bucket_seconds: int,
    ) -> NotificationLogEntry | None:
        """Insert an entry unless one already exists for the key and time bucket.

        Returns None when a concurrent writer won; that is not an error.
        """
        row = NotificationLogRow(
            user_id=payload.user_id,
            notification_type=payload.type.value,
            severity=payload.severity.value,
            subject=subject,
            direction=direction.value,
            title=payload.title,
            message=payload.message,
            details=dict(payload.metadata),
            sent_at=sent_at,
            sent_bucket=time_bucket(sent_at, bucket_seconds),
        )
        async with self._session_factory() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info(
                    "Notification %s/%s for user %s already logged in this window",
                    payload.type.value,
                    subject,
                    payload.user_id,
                )
                return None
            return _to_entry(row)

    async def list_for_user(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
        alert_type: AlertType | None = None,
    ) -> list[NotificationLogEntry]:
        """History for a user, newest first."""
        stmt = select(NotificationLogRow).where(NotificationLogRow.user_id == user_id)
        if alert_type is not None:
            stmt = stmt.where(NotificationLogRow.notification_type == alert_type.value)
        stmt = (
            stmt.order_by(NotificationLogRow.sent_at.desc(), NotificationLogRow.id.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self._session_factory() as session:
            rows = await session.scalars(stmt)
            return [_to_entry(r) for r in rows]

    async def delete_older_than(self, days: int, now: datetime | None = None) -> int:
        """Prune entries older than ``days``; returns how many were removed.

        A retention shorter than the longest cooldown is raised to it.
        """
        retention = timedelta(days=days)
        if retention < self._min_retention:
            logger.warning(
                "Retention of %d days is inside the longest cooldown, keeping %s instead",
                days,
                self._min_retention,
            )
            retention = self._min_retention
        cutoff = (now or utcnow()) - retention
        async with self._session_factory() as session:
            result = await session.execute(
                delete(NotificationLogRow).where(NotificationLogRow.sent_at < cutoff)
            )
            await session.commit()
        deleted = result.rowcount or 0
        logger.info("Deleted %d notification log entries older than %d days", deleted, days)
        return deleted

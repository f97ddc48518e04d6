"""Read-only access to per-user notification settings."""
from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db.tables import NotificationSettingsRow
from ..models import NotificationSettings, Severity

logger = logging.getLogger(__name__)


def _parse_depeg(row: NotificationSettingsRow) -> dict:
    if not row.depeg_enabled:
        return {"depeg_enabled": False}
    try:
        lower = float(row.depeg_lower_threshold)
        upper = (
            float(row.depeg_upper_threshold)
            if row.depeg_upper_threshold is not None
            else None
        )
        if upper is not None and upper <= lower:
            raise ValueError(f"upper threshold {upper} is not above lower {lower}")
        symbols = (
            frozenset(str(s).upper() for s in row.depeg_symbols)
            if row.depeg_symbols
            else None
        )
        return {
            "depeg_enabled": True,
            "depeg_severity": Severity.parse(row.depeg_severity),
            "depeg_lower_threshold": lower,
            "depeg_upper_threshold": upper,
            "depeg_symbols": symbols,
        }
    except (TypeError, ValueError) as e:
        logger.warning("Depeg alerts disabled for user %s: malformed settings (%s)", row.user_id, e)
        return {"depeg_enabled": False}


def _parse_apy(row: NotificationSettingsRow) -> dict:
    if not row.apy_enabled:
        return {"apy_enabled": False}
    try:
        threshold = float(row.apy_threshold)
        if threshold <= 0:
            raise ValueError(f"threshold {threshold} is not positive")
        return {
            "apy_enabled": True,
            "apy_severity": Severity.parse(row.apy_severity),
            "apy_threshold": threshold,
        }
    except (TypeError, ValueError) as e:
        logger.warning("APY alerts disabled for user %s: malformed settings (%s)", row.user_id, e)
        return {"apy_enabled": False}


def to_settings(row: NotificationSettingsRow) -> NotificationSettings:
    """Build the read model; a malformed half is disabled, never fatal."""
    return NotificationSettings(
        user_id=row.user_id,
        ntfy_topic=row.ntfy_topic,
        **_parse_depeg(row),
        **_parse_apy(row),
    )


class SettingsStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, user_id: str) -> NotificationSettings | None:
        """Settings for a user; None (alerting disabled) when absent."""
        async with self._session_factory() as session:
            row = await session.scalar(
                select(NotificationSettingsRow).where(
                    NotificationSettingsRow.user_id == user_id
                )
            )
            return to_settings(row) if row is not None else None

    async def all_enabled(self) -> list[NotificationSettings]:
        """Settings of every user with at least one alert type enabled."""
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(NotificationSettingsRow)
                .where(
                    or_(
                        NotificationSettingsRow.depeg_enabled.is_(True),
                        NotificationSettingsRow.apy_enabled.is_(True),
                    )
                )
                .order_by(NotificationSettingsRow.user_id)
            )
            return [to_settings(r) for r in rows]

"""Position registry — discovery, archival, wallet links and APY baselines."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db.tables import PositionRow, UserWalletRow, utcnow
from ..errors import UnknownPositionError
from ..models import Position

logger = logging.getLogger(__name__)


def _to_position(row: PositionRow) -> Position:
    return Position(
        id=row.id,
        wallet_address=row.wallet_address,
        protocol=row.protocol,
        display_name=row.display_name,
        base_asset=row.base_asset,
        is_active=row.is_active,
        last_apy=row.last_apy,
        last_apy_anchor_ts=row.last_apy_anchor_ts,
    )


class PositionStore:
    """Positions are created on first discovery and archived on full exit."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def register(
        self,
        position_id: str,
        wallet_address: str,
        protocol: str,
        display_name: str = "",
        base_asset: str = "USD",
    ) -> Position:
        """Create the position if unknown; reactivate it if it was archived."""
        async with self._session_factory() as session:
            row = await session.get(PositionRow, position_id)
            if row is None:
                row = PositionRow(
                    id=position_id,
                    wallet_address=wallet_address,
                    protocol=protocol,
                    display_name=display_name or position_id,
                    base_asset=base_asset,
                    is_active=True,
                )
                session.add(row)
                try:
                    await session.commit()
                    logger.info("Registered position %s (%s)", position_id, protocol)
                except IntegrityError:
                    # Discovered concurrently by another worker
                    await session.rollback()
                    row = await session.get(PositionRow, position_id)
                    if row is None:
                        raise
            elif not row.is_active:
                row.is_active = True
                row.archived_at = None
                await session.commit()
                logger.info("Reactivated position %s", position_id)
            return _to_position(row)

    async def archive(self, position_id: str) -> None:
        async with self._session_factory() as session:
            row = await session.get(PositionRow, position_id)
            if row is None:
                raise UnknownPositionError(position_id)
            row.is_active = False
            row.archived_at = utcnow()
            await session.commit()
        logger.info("Archived position %s", position_id)

    async def get(self, position_id: str) -> Position:
        async with self._session_factory() as session:
            row = await session.get(PositionRow, position_id)
            if row is None:
                raise UnknownPositionError(position_id)
            return _to_position(row)

    async def list_active(self) -> list[Position]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(PositionRow)
                .where(PositionRow.is_active.is_(True))
                .order_by(PositionRow.id)
            )
            return [_to_position(r) for r in rows]

    async def link_wallet(self, user_id: str, wallet_address: str) -> None:
        async with self._session_factory() as session:
            existing = await session.scalar(
                select(UserWalletRow).where(
                    UserWalletRow.user_id == user_id,
                    UserWalletRow.wallet_address == wallet_address,
                )
            )
            if existing is None:
                session.add(UserWalletRow(user_id=user_id, wallet_address=wallet_address))
                await session.commit()

    async def watchers(self, position_id: str) -> list[str]:
        """User ids whose linked wallets hold the position."""
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(UserWalletRow.user_id)
                .join(PositionRow, PositionRow.wallet_address == UserWalletRow.wallet_address)
                .where(PositionRow.id == position_id)
                .order_by(UserWalletRow.user_id)
                .distinct()
            )
            return list(rows)

    async def store_apy_baseline(
        self, position_id: str, apy: float, anchor_ts: datetime
    ) -> None:
        """Remember the APY just computed as the next cycle's "previous" value."""
        async with self._session_factory() as session:
            row = await session.get(PositionRow, position_id)
            if row is None:
                raise UnknownPositionError(position_id)
            row.last_apy = apy
            row.last_apy_anchor_ts = anchor_ts
            await session.commit()

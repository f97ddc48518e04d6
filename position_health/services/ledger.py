"""Snapshot ledger — append-only valuation history with reset markers."""
from __future__ import annotations

import asyncio
import logging
import math
from collections import defaultdict
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db.tables import PositionRow, SnapshotRow
from ..errors import OutOfOrderError, UnknownPositionError
from ..models import Snapshot

logger = logging.getLogger(__name__)


def _to_snapshot(row: SnapshotRow) -> Snapshot:
    return Snapshot(
        position_id=row.position_id,
        ts=row.ts,
        valuation=row.valuation,
        is_reset=row.is_reset,
    )


class SnapshotLedger:
    """Durable, strictly time-ordered snapshot stream per position.

    Appends for one position are serialized by an in-process lock and, across
    processes, by a no-op ``UPDATE`` of the position row issued before the
    latest timestamp is read. The UPDATE takes the row lock on PostgreSQL and
    the database write lock on SQLite, where ``FOR UPDATE`` is unavailable.
    The unique ``(position_id, ts)`` constraint is the last line.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def record(
        self,
        position_id: str,
        ts: datetime,
        valuation: float,
        is_reset: bool = False,
    ) -> Snapshot:
        """Append a snapshot.

        Raises:
            OutOfOrderError: ``ts`` is not after the latest recorded snapshot.
            UnknownPositionError: the position was never registered.
            ValueError: naive timestamp, or a non-finite or negative valuation.
        """
        if ts.tzinfo is None:
            raise ValueError("Snapshot timestamp must be timezone-aware")
        if not math.isfinite(valuation) or valuation < 0:
            raise ValueError(f"Valuation must be finite and non-negative, got {valuation}")

        async with self._locks[position_id]:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        # Write lock first, so the read below cannot go stale
                        locked = await session.execute(
                            update(PositionRow)
                            .where(PositionRow.id == position_id)
                            .values(is_active=PositionRow.is_active)
                            .execution_options(synchronize_session=False)
                        )
                        if locked.rowcount == 0:
                            raise UnknownPositionError(position_id)

                        latest_ts = await session.scalar(
                            select(SnapshotRow.ts)
                            .where(SnapshotRow.position_id == position_id)
                            .order_by(SnapshotRow.ts.desc())
                            .limit(1)
                        )
                        if latest_ts is not None and ts <= latest_ts:
                            raise OutOfOrderError(position_id, ts, latest_ts)

                        session.add(
                            SnapshotRow(
                                position_id=position_id,
                                ts=ts,
                                valuation=float(valuation),
                                is_reset=is_reset,
                            )
                        )
            except IntegrityError as e:
                # Another process appended the same timestamp first
                raise OutOfOrderError(position_id, ts, ts) from e

        if is_reset:
            logger.info("Reset point recorded for %s at %s", position_id, ts.isoformat())
        else:
            logger.debug("Snapshot recorded for %s at %s", position_id, ts.isoformat())
        return Snapshot(position_id, ts, float(valuation), is_reset)

    async def current_segment(self, position_id: str) -> list[Snapshot]:
        """Snapshots from the most recent reset (inclusive) to the latest.

        Without any reset marker the first snapshot acts as the implicit one.
        """
        async with self._session_factory() as session:
            reset_ts = await session.scalar(
                select(SnapshotRow.ts)
                .where(
                    SnapshotRow.position_id == position_id,
                    SnapshotRow.is_reset.is_(True),
                )
                .order_by(SnapshotRow.ts.desc())
                .limit(1)
            )

            stmt = (
                select(SnapshotRow)
                .where(SnapshotRow.position_id == position_id)
                .order_by(SnapshotRow.ts.asc())
            )
            if reset_ts is not None:
                stmt = stmt.where(SnapshotRow.ts >= reset_ts)

            rows = await session.scalars(stmt)
            return [_to_snapshot(r) for r in rows]

    async def latest(self, position_id: str) -> Snapshot | None:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(SnapshotRow)
                .where(SnapshotRow.position_id == position_id)
                .order_by(SnapshotRow.ts.desc())
                .limit(1)
            )
            return _to_snapshot(row) if row is not None else None

    async def history(self, position_id: str) -> list[Snapshot]:
        """Every stored snapshot, oldest first, across all segments."""
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(SnapshotRow)
                .where(SnapshotRow.position_id == position_id)
                .order_by(SnapshotRow.ts.asc())
            )
            return [_to_snapshot(r) for r in rows]

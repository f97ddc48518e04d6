"""Exceptions raised by the position health engine."""
from __future__ import annotations

from datetime import datetime


class PositionHealthError(Exception):
    """Base class for engine errors."""


class UnknownPositionError(PositionHealthError):
    def __init__(self, position_id: str) -> None:
        super().__init__(f"Unknown position '{position_id}'")
        self.position_id = position_id


class OutOfOrderError(PositionHealthError):
    """Snapshot timestamp is not newer than the latest recorded one."""

    def __init__(self, position_id: str, ts: datetime, latest_ts: datetime) -> None:
        super().__init__(
            f"Snapshot for '{position_id}' at {ts.isoformat()} is not after "
            f"latest recorded {latest_ts.isoformat()}"
        )
        self.position_id = position_id
        self.ts = ts
        self.latest_ts = latest_ts


class DegenerateBasisError(PositionHealthError):
    """Segment anchor cannot be used as a return basis."""


class PriceFeedError(PositionHealthError):
    """Stablecoin prices unavailable and nothing cached."""

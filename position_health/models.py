"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class AlertType(str, Enum):
    DEPEG = "depeg"
    APY_DROP = "apy_drop"


class Severity(str, Enum):
    """Notification severity, lowest to highest."""

    MIN = "min"
    LOW = "low"
    DEFAULT = "default"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def parse(cls, value: str) -> Severity:
        """Parse a stored severity; legacy ``medium`` maps to ``default``."""
        value = value.strip().lower()
        if value == "medium":
            return cls.DEFAULT
        return cls(value)


class Direction(str, Enum):
    BELOW = "below"
    ABOVE = "above"


@dataclass(frozen=True)
class Snapshot:
    """Single valuation of a position at a point in time."""

    position_id: str
    ts: datetime
    valuation: float
    is_reset: bool = False


@dataclass(frozen=True)
class Position:
    """A wallet's stake in a protocol."""

    id: str
    wallet_address: str
    protocol: str
    display_name: str = ""
    base_asset: str = "USD"
    is_active: bool = True
    last_apy: float | None = None
    last_apy_anchor_ts: datetime | None = None


@dataclass(frozen=True)
class NotificationSettings:
    """Per-user alert configuration (read-only to the engine)."""

    user_id: str
    depeg_enabled: bool = False
    depeg_severity: Severity = Severity.DEFAULT
    depeg_lower_threshold: float = 0.99
    depeg_upper_threshold: float | None = None
    depeg_symbols: frozenset[str] | None = None
    apy_enabled: bool = False
    apy_severity: Severity = Severity.DEFAULT
    apy_threshold: float = 0.01
    ntfy_topic: str | None = None

    def watches_symbol(self, symbol: str) -> bool:
        if not self.depeg_symbols:
            return True
        return symbol.upper() in self.depeg_symbols


@dataclass(frozen=True)
class Breach:
    """A detected threshold breach, not yet approved for notification."""

    type: AlertType
    subject: str
    severity: Severity
    direction: Direction
    observed_value: float
    threshold: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AlertPayload:
    """What the delivery transports receive."""

    user_id: str
    type: AlertType
    severity: Severity
    title: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationLogEntry:
    id: int
    user_id: str
    alert_type: AlertType
    severity: Severity
    subject: str
    direction: Direction
    title: str
    message: str
    metadata: dict[str, Any]
    sent_at: datetime

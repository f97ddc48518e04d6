"""Persistence layer."""
from .engine import create_engine, create_session_factory, init_db
from .tables import (
    Base,
    NotificationLogRow,
    NotificationSettingsRow,
    PositionRow,
    SnapshotRow,
    UserWalletRow,
)

__all__ = [
    "Base",
    "NotificationLogRow",
    "NotificationSettingsRow",
    "PositionRow",
    "SnapshotRow",
    "UserWalletRow",
    "create_engine",
    "create_session_factory",
    "init_db",
]

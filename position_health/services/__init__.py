"""Service modules"""
from .detector import detect_apy_drop, detect_depeg
from .dispatcher import NotificationDispatcher
from .ledger import SnapshotLedger
from .monitor import Monitor
from .notification_log import NotificationLogStore
from .positions import PositionStore
from .returns import ApyResult, compute_apy
from .settings_store import SettingsStore
from .suppression import SuppressionPolicy

__all__ = [
    "ApyResult",
    "Monitor",
    "NotificationDispatcher",
    "NotificationLogStore",
    "PositionStore",
    "SettingsStore",
    "SnapshotLedger",
    "SuppressionPolicy",
    "compute_apy",
    "detect_apy_drop",
    "detect_depeg",
]

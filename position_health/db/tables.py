"""
Relational schema for positions, snapshots, settings and the notification log

SQLAlchemy 2.0 declarative models. Timestamps are stored in UTC and always
come back timezone-aware, including on SQLite.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """DateTime that stores naive UTC and returns aware UTC."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            raise ValueError("Naive datetime given; timestamps must be timezone-aware")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all tables"""

    pass


class PositionRow(Base):
    """A wallet's stake in a protocol, plus the last computed APY baseline."""

    __tablename__ = "positions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    wallet_address: Mapped[str] = mapped_column(String(128), index=True)
    protocol: Mapped[str] = mapped_column(String(64))
    display_name: Mapped[str] = mapped_column(String(255), default="")
    base_asset: Mapped[str] = mapped_column(String(32), default="USD")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_apy: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    last_apy_anchor_ts: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    archived_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)


class UserWalletRow(Base):
    __tablename__ = "user_wallets"
    __table_args__ = (UniqueConstraint("user_id", "wallet_address"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    wallet_address: Mapped[str] = mapped_column(String(128), index=True)


class SnapshotRow(Base):
    """Append-only valuation record. ``is_reset`` marks a capital flow boundary."""

    __tablename__ = "position_snapshots"
    __table_args__ = (
        UniqueConstraint("position_id", "ts", name="uq_snapshot_position_ts"),
        Index("ix_snapshot_position_reset", "position_id", "is_reset"),
        Index("ix_snapshot_position_ts_reset", "position_id", "ts", "is_reset"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    position_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("positions.id", ondelete="CASCADE")
    )
    ts: Mapped[datetime] = mapped_column(UTCDateTime)
    valuation: Mapped[float] = mapped_column(Float)
    is_reset: Mapped[bool] = mapped_column(Boolean, default=False)


class NotificationSettingsRow(Base):
    """One per user. Severities are free text so legacy values stay readable."""

    __tablename__ = "notification_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True)

    depeg_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    depeg_severity: Mapped[str] = mapped_column(String(16), default="default")
    depeg_lower_threshold: Mapped[float] = mapped_column(Float, default=0.99)
    depeg_upper_threshold: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    # NULL or empty => all supported stablecoins
    depeg_symbols: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)

    apy_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    apy_severity: Mapped[str] = mapped_column(String(16), default="default")
    apy_threshold: Mapped[float] = mapped_column(Float, default=0.01)

    ntfy_topic: Mapped[Optional[str]] = mapped_column(
        String(128), unique=True, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


class NotificationLogRow(Base):
    """Immutable audit record and the only source of suppression state."""

    __tablename__ = "notification_log"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "notification_type",
            "subject",
            "direction",
            "sent_bucket",
            name="uq_notification_log_dedup_bucket",
        ),
        CheckConstraint(
            "notification_type IN ('depeg', 'apy_drop')",
            name="ck_notification_log_type",
        ),
        CheckConstraint(
            "severity IN ('min', 'low', 'default', 'high', 'urgent')",
            name="ck_notification_log_severity",
        ),
        Index(
            "ix_notification_log_dedup_key",
            "user_id",
            "notification_type",
            "subject",
            "direction",
            "sent_at",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    notification_type: Mapped[str] = mapped_column(String(16))
    severity: Mapped[str] = mapped_column(String(16))
    subject: Mapped[str] = mapped_column(String(128))
    direction: Mapped[str] = mapped_column(String(8))
    title: Mapped[str] = mapped_column(Text)
    message: Mapped[str] = mapped_column(Text)
    # "metadata" is reserved on declarative classes
    details: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata", JSON, nullable=True
    )
    sent_at: Mapped[datetime] = mapped_column(UTCDateTime, index=True)
    sent_bucket: Mapped[int] = mapped_column(BigInteger)

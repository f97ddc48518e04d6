"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from position_health.config import (
    AppConfig,
    CoinGeckoConfig,
    DatabaseConfig,
    MonitorConfig,
    NotificationsConfig,
    NtfyConfig,
    PriceOracleConfig,
    ReturnsConfig,
    SuppressionConfig,
    TelegramConfig,
)
from position_health.db import Base, NotificationSettingsRow, create_session_factory
from position_health.services import (
    NotificationDispatcher,
    NotificationLogStore,
    PositionStore,
    SettingsStore,
    SnapshotLedger,
    SuppressionPolicy,
)

# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_app_config() -> AppConfig:
    return AppConfig(
        monitor=MonitorConfig(check_interval_minutes=5, max_workers=4),
        database=DatabaseConfig(url="sqlite+aiosqlite:///:memory:"),
        returns=ReturnsConfig(min_observation_minutes=60, ema_alpha=0.2),
        suppression=SuppressionConfig(),
        price_oracle=PriceOracleConfig(
            provider="coingecko",
            coingecko=CoinGeckoConfig(
                api_url="https://api.example.com/simple/price",
                stablecoins={"USDC": "usd-coin", "USDT": "tether", "DAI": "dai"},
            ),
        ),
        notifications=NotificationsConfig(
            ntfy=NtfyConfig(enabled=True, base_url="https://ntfy.example.com"),
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory database shared through a single connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture()
async def file_db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File database with one connection per session, for concurrency tests."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'health.db'}",
        connect_args={"timeout": 30},
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture()
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@pytest.fixture()
def position_store(session_factory) -> PositionStore:
    return PositionStore(session_factory)


@pytest.fixture()
def ledger(session_factory) -> SnapshotLedger:
    return SnapshotLedger(session_factory)


@pytest.fixture()
def settings_store(session_factory) -> SettingsStore:
    return SettingsStore(session_factory)


@pytest.fixture()
def log_store(session_factory) -> NotificationLogStore:
    return NotificationLogStore(session_factory)


@pytest.fixture()
def policy(log_store: NotificationLogStore) -> SuppressionPolicy:
    return SuppressionPolicy(log_store)


@pytest.fixture()
def dispatcher(log_store, policy) -> NotificationDispatcher:
    return NotificationDispatcher(log_store, policy)


@pytest.fixture()
def insert_settings(session_factory):
    """Insert a notification_settings row the way the settings surface would."""

    async def insert(**fields) -> None:
        async with session_factory() as session:
            session.add(NotificationSettingsRow(**fields))
            await session.commit()

    return insert


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    monitor:
      check_interval_minutes: 30
      max_workers: 8
    database:
      url: "sqlite+aiosqlite:///test.db"
    returns:
      min_observation_minutes: 120
    suppression:
      cooldown_minutes:
        urgent: 5
      retention_days: 30
    price_oracle:
      provider: coingecko
      coingecko:
        api_url: "https://api.example.com/simple/price"
        cache_seconds: 60
        stablecoins: {usdc: usd-coin, DAI: dai}
    notifications:
      ntfy:
        enabled: true
        base_url: "https://ntfy.example.com/"
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: 999
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file

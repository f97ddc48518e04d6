"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import Severity

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MINUTES: dict[str, int] = {
    Severity.URGENT.value: 15,
    Severity.HIGH.value: 60,
    Severity.DEFAULT.value: 6 * 60,
    Severity.LOW.value: 24 * 60,
    Severity.MIN.value: 72 * 60,
}

DEFAULT_STABLECOINS: dict[str, str] = {
    "USDC": "usd-coin",
    "USDT": "tether",
    "DAI": "dai",
    "USDS": "usds",
    "CRVUSD": "crvusd",
}

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MonitorConfig:
    check_interval_minutes: int = 60
    max_workers: int = 4


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite+aiosqlite:///position_health.db"
    echo: bool = False


@dataclass(frozen=True)
class ReturnsConfig:
    min_observation_minutes: int = 60
    ema_alpha: float = 0.2


@dataclass(frozen=True)
class SuppressionConfig:
    cooldown_minutes: dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_COOLDOWN_MINUTES)
    )
    retention_days: int = 90


@dataclass(frozen=True)
class CoinGeckoConfig:
    api_url: str = "https://api.coingecko.com/api/v3/simple/price"
    timeout_seconds: int = 8
    cache_seconds: int = 300
    stablecoins: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_STABLECOINS)
    )


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "coingecko"
    coingecko: CoinGeckoConfig = field(default_factory=CoinGeckoConfig)


@dataclass(frozen=True)
class NtfyConfig:
    enabled: bool = False
    base_url: str = "https://ntfy.sh"
    timeout_seconds: int = 10
    dashboard_url: str = ""


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    ntfy: NtfyConfig = field(default_factory=NtfyConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)


@dataclass(frozen=True)
class AppConfig:
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    returns: ReturnsConfig = field(default_factory=ReturnsConfig)
    suppression: SuppressionConfig = field(default_factory=SuppressionConfig)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_monitor(raw: dict[str, Any]) -> MonitorConfig:
    return MonitorConfig(
        check_interval_minutes=int(raw.get("check_interval_minutes", 60)),
        max_workers=int(raw.get("max_workers", 4)),
    )


def _build_database(raw: dict[str, Any]) -> DatabaseConfig:
    return DatabaseConfig(
        url=raw.get("url", DatabaseConfig.url),
        echo=bool(raw.get("echo", False)),
    )


def _build_returns(raw: dict[str, Any]) -> ReturnsConfig:
    return ReturnsConfig(
        min_observation_minutes=int(raw.get("min_observation_minutes", 60)),
        ema_alpha=float(raw.get("ema_alpha", 0.2)),
    )


def _build_suppression(raw: dict[str, Any]) -> SuppressionConfig:
    cooldowns = dict(DEFAULT_COOLDOWN_MINUTES)
    for severity, minutes in raw.get("cooldown_minutes", {}).items():
        cooldowns[str(severity).lower()] = int(minutes)
    return SuppressionConfig(
        cooldown_minutes=cooldowns,
        retention_days=int(raw.get("retention_days", 90)),
    )


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    cg_raw = raw.get("coingecko", {})
    stablecoins = cg_raw.get("stablecoins")
    return PriceOracleConfig(
        provider=raw.get("provider", "coingecko"),
        coingecko=CoinGeckoConfig(
            api_url=cg_raw.get("api_url", CoinGeckoConfig.api_url),
            timeout_seconds=int(cg_raw.get("timeout_seconds", 8)),
            cache_seconds=int(cg_raw.get("cache_seconds", 300)),
            stablecoins=(
                {str(k).upper(): v for k, v in stablecoins.items()}
                if stablecoins is not None
                else dict(DEFAULT_STABLECOINS)
            ),
        ),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    nt = raw.get("ntfy", {})
    tg = raw.get("telegram", {})
    return NotificationsConfig(
        ntfy=NtfyConfig(
            enabled=bool(nt.get("enabled", False)),
            base_url=nt.get("base_url", NtfyConfig.base_url).rstrip("/"),
            timeout_seconds=int(nt.get("timeout_seconds", 10)),
            dashboard_url=nt.get("dashboard_url", ""),
        ),
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from the package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        monitor=_build_monitor(raw.get("monitor", {})),
        database=_build_database(raw.get("database", {})),
        returns=_build_returns(raw.get("returns", {})),
        suppression=_build_suppression(raw.get("suppression", {})),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.database.url:
        raise ValueError("Database URL must be configured")

    if cfg.monitor.max_workers < 1:
        raise ValueError("monitor.max_workers must be at least 1")

    if cfg.returns.min_observation_minutes < 0:
        raise ValueError("returns.min_observation_minutes cannot be negative")

    if not 0 < cfg.returns.ema_alpha <= 1:
        raise ValueError("returns.ema_alpha must be in (0, 1]")

    known = {s.value for s in Severity}
    for severity, minutes in cfg.suppression.cooldown_minutes.items():
        if severity not in known:
            raise ValueError(f"Cooldown configured for unknown severity '{severity}'")
        if minutes <= 0:
            raise ValueError(f"Cooldown for '{severity}' must be positive")

    longest = max(cfg.suppression.cooldown_minutes.values())
    if cfg.suppression.retention_days * 24 * 60 < longest:
        raise ValueError("suppression.retention_days is shorter than the longest cooldown")

    if cfg.price_oracle.provider != "coingecko":
        raise ValueError(f"Unknown price oracle provider '{cfg.price_oracle.provider}'")

    tg = cfg.notifications.telegram
    if tg.enabled and (not tg.alert_bot_token or not tg.chat_id):
        raise ValueError("Telegram is enabled but alert_bot_token or chat_id is missing")

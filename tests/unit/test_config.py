"""Unit tests for config loading, env interpolation, and validation."""
from __future__ import annotations

from pathlib import Path

import pytest

from position_health.config import (
    DEFAULT_COOLDOWN_MINUTES,
    AppConfig,
    MonitorConfig,
    NtfyConfig,
    _interpolate_env,
    load_config,
)


class TestInterpolateEnv:
    def test_simple_substitution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_VAR", "hello")
        assert _interpolate_env("${MY_VAR}") == "hello"

    def test_missing_var_becomes_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
        assert _interpolate_env("${NONEXISTENT_VAR_XYZ}") == ""

    def test_nested_dict(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOK", "secret")
        result = _interpolate_env({"key": "${TOK}", "plain": "text"})
        assert result == {"key": "secret", "plain": "text"}

    def test_nested_list(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("A", "x")
        assert _interpolate_env(["${A}", "y"]) == ["x", "y"]

    def test_non_string_passthrough(self) -> None:
        assert _interpolate_env(42) == 42
        assert _interpolate_env(True) is True


class TestLoadConfig:
    def test_loads_valid_yaml(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert isinstance(cfg, AppConfig)
        assert cfg.monitor.check_interval_minutes == 30
        assert cfg.monitor.max_workers == 8
        assert cfg.database.url == "sqlite+aiosqlite:///test.db"
        assert cfg.returns.min_observation_minutes == 120
        assert cfg.suppression.retention_days == 30
        assert cfg.notifications.telegram.chat_id == "999"

    def test_cooldown_overrides_merge_with_defaults(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert cfg.suppression.cooldown_minutes["urgent"] == 5
        assert cfg.suppression.cooldown_minutes["high"] == DEFAULT_COOLDOWN_MINUTES["high"]
        assert cfg.suppression.cooldown_minutes["min"] == 72 * 60

    def test_stablecoin_symbols_upper_cased(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert cfg.price_oracle.coingecko.stablecoins == {"USDC": "usd-coin", "DAI": "dai"}
        assert cfg.price_oracle.coingecko.cache_seconds == 60

    def test_ntfy_base_url_trailing_slash_stripped(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert cfg.notifications.ntfy.base_url == "https://ntfy.example.com"

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("")
        cfg = load_config(cfg_file)
        assert cfg == AppConfig()

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_env_interpolation_in_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TEST_DB_URL", "sqlite+aiosqlite:///from-env.db")
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text('database:\n  url: "${TEST_DB_URL}"\n')
        cfg = load_config(cfg_file)
        assert cfg.database.url == "sqlite+aiosqlite:///from-env.db"


class TestValidation:
    def _load(self, tmp_path: Path, content: str) -> AppConfig:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(content)
        return load_config(cfg_file)

    def test_empty_database_url_raises(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("UNSET_DB_URL", raising=False)
        with pytest.raises(ValueError, match="Database URL"):
            self._load(tmp_path, 'database:\n  url: "${UNSET_DB_URL}"\n')

    def test_zero_workers_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="max_workers"):
            self._load(tmp_path, "monitor:\n  max_workers: 0\n")

    def test_unknown_severity_cooldown_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="unknown severity"):
            self._load(tmp_path, "suppression:\n  cooldown_minutes:\n    critical: 5\n")

    def test_non_positive_cooldown_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="must be positive"):
            self._load(tmp_path, "suppression:\n  cooldown_minutes:\n    high: 0\n")

    def test_retention_shorter_than_cooldown_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="retention_days"):
            self._load(tmp_path, "suppression:\n  retention_days: 1\n")

    def test_unknown_provider_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="Unknown price oracle"):
            self._load(tmp_path, "price_oracle:\n  provider: pyth\n")

    def test_bad_ema_alpha_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="ema_alpha"):
            self._load(tmp_path, "returns:\n  ema_alpha: 1.5\n")

    def test_telegram_without_token_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="Telegram"):
            self._load(
                tmp_path,
                "notifications:\n  telegram:\n    enabled: true\n    chat_id: '1'\n",
            )


class TestFrozenConfigs:
    def test_monitor_config_immutable(self) -> None:
        m = MonitorConfig()
        with pytest.raises(AttributeError):
            m.max_workers = 99  # type: ignore[misc]

    def test_ntfy_config_immutable(self) -> None:
        n = NtfyConfig()
        with pytest.raises(AttributeError):
            n.base_url = "https://elsewhere"  # type: ignore[misc]

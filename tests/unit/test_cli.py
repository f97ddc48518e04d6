"""Unit tests for CLI argument parsing and command dispatch."""
from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from position_health.cli import _run, build_parser
from position_health.config import AppConfig


class TestBuildParser:
    def test_check_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["check"])
        assert args.command == "check"

    def test_init_db_command(self) -> None:
        args = build_parser().parse_args(["init-db"])
        assert args.command == "init-db"

    def test_monitor_command_default_interval(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["monitor"])
        assert args.command == "monitor"
        assert args.interval is None

    def test_monitor_command_custom_interval(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["monitor", "10"])
        assert args.interval == 10

    def test_register_command(self) -> None:
        args = build_parser().parse_args(
            ["register", "pos-1", "0xabc", "aave", "--name", "Aave USDC"]
        )
        assert (args.position_id, args.wallet, args.protocol) == ("pos-1", "0xabc", "aave")
        assert args.name == "Aave USDC"
        assert args.base_asset == "USD"

    def test_archive_command(self) -> None:
        args = build_parser().parse_args(["archive", "pos-1"])
        assert args.position_id == "pos-1"

    def test_link_command(self) -> None:
        args = build_parser().parse_args(["link", "user-1", "0xabc"])
        assert (args.user_id, args.wallet) == ("user-1", "0xabc")

    def test_record_command(self) -> None:
        args = build_parser().parse_args(
            ["record", "pos-1", "1010.5", "--ts", "2025-01-08T00:00:00", "--reset"]
        )
        assert args.position_id == "pos-1"
        assert args.valuation == 1010.5
        assert args.ts == datetime(2025, 1, 8, tzinfo=timezone.utc)
        assert args.reset is True

    def test_record_defaults(self) -> None:
        args = build_parser().parse_args(["record", "pos-1", "1000"])
        assert args.ts is None
        assert args.reset is False

    def test_record_keeps_explicit_offset(self) -> None:
        args = build_parser().parse_args(
            ["record", "pos-1", "1000", "--ts", "2025-01-08T02:00:00+02:00"]
        )
        assert args.ts == datetime(2025, 1, 8, tzinfo=timezone.utc)

    def test_record_invalid_timestamp(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["record", "pos-1", "1000", "--ts", "yesterday"])

    def test_history_command(self) -> None:
        args = build_parser().parse_args(["history", "user-1", "--type", "depeg"])
        assert args.user_id == "user-1"
        assert args.type == "depeg"
        assert args.limit == 20

    def test_history_rejects_unknown_type(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["history", "user-1", "--type", "ltv"])

    def test_cleanup_command(self) -> None:
        args = build_parser().parse_args(["cleanup", "--days", "30"])
        assert args.days == 30

    def test_config_flag(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["--config", "/tmp/c.yaml", "check"])
        assert args.config == "/tmp/c.yaml"

    def test_log_level_flag(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["--log-level", "DEBUG", "check"])
        assert args.log_level == "DEBUG"

    def test_no_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args([])
        assert args.command is None


class TestRunCleanup:
    @staticmethod
    def _monitor() -> MagicMock:
        monitor = MagicMock()
        monitor.log_store.delete_older_than = AsyncMock(return_value=0)
        monitor.close = AsyncMock()
        return monitor

    @pytest.mark.asyncio
    @pytest.mark.parametrize("argv,expected", [(["--days", "0"], 0), ([], 90)])
    async def test_cleanup_days(self, argv: list[str], expected: int) -> None:
        monitor = self._monitor()
        args = build_parser().parse_args(["cleanup", *argv])

        with patch("position_health.cli.configure_logging"), patch(
            "position_health.cli.load_config", return_value=AppConfig()
        ), patch("position_health.cli.Monitor", return_value=monitor):
            await _run(args)

        monitor.log_store.delete_older_than.assert_awaited_once_with(expected)
        monitor.close.assert_awaited_once()

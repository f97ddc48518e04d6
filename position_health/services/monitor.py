"""Monitoring orchestration — ingests valuations and sweeps users × positions."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..config import AppConfig
from ..db import create_engine, create_session_factory, init_db
from ..errors import PriceFeedError
from ..interfaces.notifier import Notifier
from ..interfaces.price_oracle import PriceOracle
from ..models import NotificationLogEntry, NotificationSettings, Position, Snapshot
from ..notifications import NtfyNotifier, TelegramNotifier
from ..oracles import CoinGeckoOracle
from .detector import detect_apy_drop, detect_depeg
from .dispatcher import NotificationDispatcher
from .ledger import SnapshotLedger
from .notification_log import NotificationLogStore
from .positions import PositionStore
from .returns import compute_apy, compute_ema_apy
from .settings_store import SettingsStore
from .suppression import SuppressionPolicy

logger = logging.getLogger(__name__)

Unit = Callable[[], Awaitable[list[NotificationLogEntry]]]


class Monitor:
    """Wires ledger, calculator, detector, policy and dispatcher from config."""

    def __init__(
        self,
        config: AppConfig,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._config = config
        self._engine: AsyncEngine | None = None
        if session_factory is None:
            self._engine = create_engine(config.database)
            session_factory = create_session_factory(self._engine)

        self._min_window = timedelta(minutes=config.returns.min_observation_minutes)
        self._ema_alpha = config.returns.ema_alpha

        self.positions = PositionStore(session_factory)
        self.ledger = SnapshotLedger(session_factory)
        self.settings = SettingsStore(session_factory)
        self.log_store = NotificationLogStore(
            session_factory,
            min_retention=timedelta(
                minutes=max(config.suppression.cooldown_minutes.values())
            ),
        )
        self.policy = SuppressionPolicy(
            self.log_store, config.suppression.cooldown_minutes
        )

        # Build price oracle
        self._oracle: PriceOracle = CoinGeckoOracle(config.price_oracle.coingecko)

        # Build notifiers
        self._notifiers: list[Notifier] = []
        if config.notifications.ntfy.enabled:
            self._notifiers.append(NtfyNotifier(config.notifications.ntfy))
        if config.notifications.telegram.enabled:
            self._notifiers.append(TelegramNotifier(config.notifications.telegram))

        self.dispatcher = NotificationDispatcher(
            self.log_store, self.policy, self._notifiers
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init_db(self) -> None:
        if self._engine is None:
            raise RuntimeError("Monitor was built with an external session factory")
        await init_db(self._engine)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    # ------------------------------------------------------------------
    # Units of work
    # ------------------------------------------------------------------

    async def record_valuation(
        self,
        position_id: str,
        ts: datetime,
        valuation: float,
        is_reset: bool = False,
    ) -> list[NotificationLogEntry]:
        """Append a valuation, then re-evaluate the position's APY."""
        await self.ledger.record(position_id, ts, valuation, is_reset)
        return await self.evaluate_position(position_id)

    async def evaluate_position(self, position_id: str) -> list[NotificationLogEntry]:
        """Recompute APY and dispatch APY-drop alerts to every watching user."""
        position = await self.positions.get(position_id)
        segment = await self.ledger.current_segment(position_id)
        result = compute_apy(segment, self._min_window)
        if result is None:
            logger.debug("Insufficient data for APY of %s", position_id)
            return []

        # A baseline from an earlier segment says nothing about this one
        previous = (
            position.last_apy
            if position.last_apy_anchor_ts == result.anchor_ts
            else None
        )
        logger.info(
            "APY %s · %s: %.2f%% (previous %s)",
            position.display_name,
            position.protocol,
            result.apy * 100,
            f"{previous * 100:.2f}%" if previous is not None else "n/a",
        )

        entries: list[NotificationLogEntry] = []
        if position.is_active:
            for user_id in await self.positions.watchers(position_id):
                settings = await self.settings.get(user_id)
                if settings is None:
                    continue
                for breach in detect_apy_drop(
                    position.id, previous, result.apy, settings, position.display_name
                ):
                    entry = await self.dispatcher.dispatch(user_id, breach, settings)
                    if entry is not None:
                        entries.append(entry)

        await self.positions.store_apy_baseline(position_id, result.apy, result.anchor_ts)
        return entries

    async def _evaluate_depeg_for_user(
        self, settings: NotificationSettings, prices: dict[str, float]
    ) -> list[NotificationLogEntry]:
        entries: list[NotificationLogEntry] = []
        for symbol, price in sorted(prices.items()):
            for breach in detect_depeg(symbol, price, settings):
                entry = await self.dispatcher.dispatch(settings.user_id, breach, settings)
                if entry is not None:
                    entries.append(entry)
        return entries

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def _run_units(self, units: list[tuple[str, Unit]]) -> list[NotificationLogEntry]:
        """Run units concurrently, bounded by max_workers. A failing unit is skipped."""
        semaphore = asyncio.Semaphore(self._config.monitor.max_workers)

        async def run(label: str, unit: Unit) -> list[NotificationLogEntry]:
            async with semaphore:
                try:
                    return await unit()
                except Exception as e:
                    logger.error("Evaluation of %s failed: %s", label, e)
                    return []

        results = await asyncio.gather(*(run(label, unit) for label, unit in units))
        return [entry for batch in results for entry in batch]

    async def check_depeg(self) -> list[NotificationLogEntry]:
        """Evaluate every user's depeg settings against current prices."""
        depeg_settings = [s for s in await self.settings.all_enabled() if s.depeg_enabled]
        if not depeg_settings:
            logger.debug("No users have depeg alerts enabled")
            return []

        try:
            prices = await self._oracle.fetch_prices()
        except PriceFeedError as e:
            logger.error("Skipping depeg checks: %s", e)
            return []

        units: list[tuple[str, Unit]] = [
            (
                f"depeg for user {s.user_id}",
                lambda s=s: self._evaluate_depeg_for_user(s, prices),
            )
            for s in depeg_settings
        ]
        return await self._run_units(units)

    async def check_and_alert(self) -> list[NotificationLogEntry]:
        """One full sweep: depeg per user, then APY per active position."""
        entries = await self.check_depeg()

        positions = await self.positions.list_active()
        units: list[tuple[str, Unit]] = [
            (f"position {p.id}", lambda p=p: self.evaluate_position(p.id))
            for p in positions
        ]
        entries.extend(await self._run_units(units))

        logger.info(
            "Sweep finished: %d positions checked, %d alerts issued",
            len(positions),
            len(entries),
        )
        return entries

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    def _smoothed_apy(self, segment: list[Snapshot]) -> float | None:
        ema: float | None = None
        for end in range(2, len(segment) + 1):
            result = compute_apy(segment[:end], self._min_window)
            if result is not None:
                ema = compute_ema_apy(result.apy, ema, self._ema_alpha)
        return ema

    async def _report_line(self, position: Position) -> str:
        segment = await self.ledger.current_segment(position.id)
        if not segment:
            return f"{position.display_name} · {position.protocol}\n  No snapshots yet"

        latest = segment[-1]
        result = compute_apy(segment, self._min_window)
        smoothed = self._smoothed_apy(segment)
        apy_text = f"{result.apy:.2%}" if result is not None else "insufficient data"
        smoothed_text = f"{smoothed:.2%}" if smoothed is not None else "—"
        return (
            f"{position.display_name} · {position.protocol}\n"
            f"  Value: {latest.valuation:,.2f} {position.base_asset}\n"
            f"  APY: {apy_text} · Smoothed: {smoothed_text}"
        )

    async def generate_daily_report(self) -> str:
        """Build the daily position report and send it to the log channels."""
        positions = await self.positions.list_active()
        lines = [await self._report_line(p) for p in positions]
        body = "\n\n".join(lines) if lines else "No active positions found."

        report = (
            f"📋 Daily Position Health Report\n"
            f"\n"
            f"{body}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

        for notifier in self._notifiers:
            try:
                await notifier.send_log(report, silent=False)
            except Exception as e:
                logger.error("Notifier send_log failed: %s", e)
        logger.info("Daily report sent")
        return report

    async def run_continuous(self, check_interval_minutes: int | None = None) -> None:
        """Run continuous monitoring loop."""
        interval = check_interval_minutes or self._config.monitor.check_interval_minutes
        logger.info(
            "Starting continuous monitoring (checking every %d minutes)", interval
        )

        while True:
            try:
                await self.check_and_alert()
                await asyncio.sleep(interval * 60)
            except Exception as e:
                logger.error("Error in monitoring loop: %s", e)
                await asyncio.sleep(60)

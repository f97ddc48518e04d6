"""CoinGecko stablecoin price oracle."""
import logging
import ssl
import time

import aiohttp
import certifi

from ..config import CoinGeckoConfig
from ..errors import PriceFeedError

logger = logging.getLogger(__name__)


class CoinGeckoOracle:
    """Fetch stablecoin USD prices from CoinGecko, with a short-lived cache."""

    def __init__(self, config: CoinGeckoConfig) -> None:
        self.api_url = config.api_url
        self.timeout = config.timeout_seconds
        self.cache_seconds = config.cache_seconds
        self.coin_ids = dict(config.stablecoins)
        self._cache: dict[str, float] = {}
        self._cached_at: float | None = None

    def _cache_fresh(self) -> bool:
        return (
            self._cached_at is not None
            and time.monotonic() - self._cached_at < self.cache_seconds
        )

    async def _fetch(self, coin_ids: dict[str, str]) -> dict[str, float]:
        params = {
            "ids": ",".join(sorted(set(coin_ids.values()))),
            "vs_currencies": "usd",
            "precision": "4",
        }
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        async with aiohttp.ClientSession(connector=connector, timeout=timeout) as session:
            async with session.get(self.api_url, params=params) as response:
                if response.status != 200:
                    raise PriceFeedError(f"CoinGecko returned HTTP {response.status}")
                data = await response.json()

        prices: dict[str, float] = {}
        for symbol, coin_id in coin_ids.items():
            usd = data.get(coin_id, {}).get("usd")
            if usd is not None:
                prices[symbol] = float(usd)
        return prices

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, float]:
        """Fetch current prices, keyed by upper-case symbol.

        Args:
            symbols: Optional subset of configured symbols. If None, fetches
                     every configured stablecoin.

        Raises:
            PriceFeedError: the request failed and no cached prices exist.
        """
        coin_ids = self.coin_ids
        if symbols is not None:
            wanted = {s.upper() for s in symbols}
            coin_ids = {k: v for k, v in self.coin_ids.items() if k in wanted}
        if not coin_ids:
            return {}

        if self._cache_fresh() and all(s in self._cache for s in coin_ids):
            return {s: self._cache[s] for s in coin_ids}

        try:
            prices = await self._fetch(coin_ids)
        except (aiohttp.ClientError, TimeoutError, PriceFeedError) as e:
            logger.error("Failed to fetch stablecoin prices from CoinGecko: %s", e)
            cached = {s: self._cache[s] for s in coin_ids if s in self._cache}
            if cached:
                logger.warning("Using cached stablecoin prices")
                return cached
            raise PriceFeedError("Stablecoin prices unavailable and nothing cached") from e

        self._cache.update(prices)
        self._cached_at = time.monotonic()

        logger.info("Fetched stablecoin prices from CoinGecko:")
        for symbol, price in sorted(prices.items()):
            logger.info("  %s: $%.4f", symbol, price)
        return prices

"""Price oracle protocol — stablecoin price feed abstraction."""
from typing import Protocol


class PriceOracle(Protocol):
    """Abstract interface for fetching stablecoin prices (ratio to peg)."""

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, float]: ...

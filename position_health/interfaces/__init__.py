"""Protocol interfaces for the position health monitor."""
from .notifier import Notifier
from .price_oracle import PriceOracle

__all__ = ["Notifier", "PriceOracle"]

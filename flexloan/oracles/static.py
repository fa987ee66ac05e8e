"""Fixed price table, for offline assessment and tests."""
import logging

from .pyth import to_scaled

logger = logging.getLogger(__name__)


class StaticPriceSource:
    """Quotes from a fixed ``symbol -> USD price`` table."""

    def __init__(self, prices: dict[str, float], base_unit: str = "USD") -> None:
        self.prices = dict(prices)
        self.base_unit = base_unit

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, float]:
        if symbols is None:
            return dict(self.prices)
        return {s: p for s, p in self.prices.items() if s in symbols}

    async def price(self, base: str, quote: str) -> int | None:
        table = {**self.prices, self.base_unit: 1.0}
        if base not in table or quote not in table:
            logger.debug("No static price for %s/%s", base, quote)
            return None
        return to_scaled(table[base], table[quote])

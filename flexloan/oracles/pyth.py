"""Pyth Network price oracle."""
import logging
import ssl
import time

import aiohttp
import certifi

from ..config import PythConfig
from ..constants import SCALE

logger = logging.getLogger(__name__)


def to_scaled(base_usd: float, quote_usd: float) -> int | None:
    """``base/quote`` as an integer scaled by ``SCALE``; None if unpriceable."""
    if base_usd < 0 or quote_usd <= 0:
        return None
    return int(round(base_usd / quote_usd * SCALE))


class PythOracle:
    """Fetch prices from Pyth Network oracle."""

    def __init__(self, config: PythConfig, base_unit: str = "USD") -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = dict(config.feeds)
        self.timeout = config.timeout
        self.cache_seconds = config.cache_seconds
        self.base_unit = base_unit
        self._cache: dict[str, float] = {}
        self._cached_at: float | None = None

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, float]:
        """Fetch current USD prices from Pyth Network.

        Args:
            symbols: Optional list of symbols to fetch. If None, fetches all
                     configured feeds.
        """
        prices: dict[str, float] = {}

        feeds = self.price_feeds
        if symbols is not None:
            feeds = {k: v for k, v in self.price_feeds.items() if k in symbols}

        feed_ids = sorted(set(feeds.values()))
        if not feed_ids:
            return prices

        query_params = "&".join([f"ids[]={fid}" for fid in feed_ids])
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(
                connector=connector, timeout=timeout
            ) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching prices from Pyth: HTTP %s", response.status
                        )
                        return prices

                    data = await response.json()
        except Exception as e:
            logger.error("Error fetching prices from Pyth: %s", e)
            return prices

        id_to_assets: dict[str, list[str]] = {}
        for asset, feed_id in feeds.items():
            id_to_assets.setdefault(_normalize_id(feed_id), []).append(asset)

        for item in data.get("parsed", []):
            feed_id = _normalize_id(item.get("id", ""))
            price_data = item.get("price", {})
            price_raw = int(price_data.get("price", 0))
            expo = int(price_data.get("expo", 0))

            for asset in id_to_assets.get(feed_id, []):
                prices[asset] = price_raw * (10**expo)

        for asset, price in sorted(prices.items()):
            logger.debug("Pyth %s: $%.4f", asset, price)
        return prices

    async def _latest_prices(self) -> dict[str, float]:
        """All configured feeds, fetched at most once per ``cache_seconds``."""
        now = time.monotonic()
        if self._cached_at is not None and now - self._cached_at < self.cache_seconds:
            return self._cache
        prices = await self.fetch_prices()
        # An empty result is a failed fetch; retry on the next quote.
        if prices:
            self._cache = prices
            self._cached_at = now
        return prices

    async def price(self, base: str, quote: str) -> int | None:
        """Quote ``base/quote`` scaled by ``SCALE``, or None if either leg is missing."""
        wanted = [s for s in (base, quote) if s != self.base_unit]
        prices = dict(await self._latest_prices()) if wanted else {}
        prices[self.base_unit] = 1.0

        if base not in prices or quote not in prices:
            logger.warning("Pyth has no %s/%s price", base, quote)
            return None
        return to_scaled(prices[base], prices[quote])


def _normalize_id(feed_id: str) -> str:
    # Hermes returns ids without the 0x prefix.
    return feed_id.lower().removeprefix("0x")

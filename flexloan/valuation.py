"""Asset valuation with an ordered fallback chain.

registry -> oracle (scaled by decimals) -> 1:1 identity fallback.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable

from .constants import DEFAULT_DECIMALS
from .interfaces.price_source import DecimalsProvider, PriceRegistry, PriceSource
from .models import ValueQuote, ValueSource

logger = logging.getLogger(__name__)


async def _optional(call: Awaitable[int | None], what: str) -> int | None:
    """Await a capability call, treating a raised error as "unavailable"."""
    try:
        return await call
    except Exception as e:
        logger.warning("%s unavailable: %s", what, e)
        return None


class AssetValuation:
    """Converts asset amounts into the common value unit.

    Never raises: each source that fails or reports ``None`` is skipped, and
    total failure degrades to ``value = amount``.
    """

    def __init__(
        self,
        base_unit: str = "USD",
        registry: PriceRegistry | None = None,
        oracle: PriceSource | None = None,
        decimals: DecimalsProvider | None = None,
        known_decimals: dict[str, int] | None = None,
    ) -> None:
        self.base_unit = base_unit
        self._registry = registry
        self._oracle = oracle
        self._decimals = decimals
        self._known_decimals = dict(known_decimals or {})

    async def decimals_of(self, asset: str) -> int:
        """Declared decimals for an asset, defaulting to 18."""
        if asset in self._known_decimals:
            return self._known_decimals[asset]
        if self._decimals is not None:
            value = await _optional(
                self._decimals.decimals(asset), f"Decimals for {asset}"
            )
            if value is not None and value >= 0:
                return value
        return DEFAULT_DECIMALS

    async def quote(self, asset: str, amount: int) -> ValueQuote:
        """Value ``amount`` of ``asset``, reporting which source priced it."""
        # Zero is zero under any price.
        if amount == 0:
            return ValueQuote(0, ValueSource.REGISTRY)

        if self._registry is not None:
            value = await _optional(
                self._registry.value_in_base(asset, amount),
                f"Registry price for {asset}",
            )
            if value is not None and value >= 0:
                return ValueQuote(value, ValueSource.REGISTRY)

        if self._oracle is not None:
            price = await _optional(
                self._oracle.price(asset, self.base_unit),
                f"Oracle price for {asset}/{self.base_unit}",
            )
            if price is not None and price >= 0:
                decimals = await self.decimals_of(asset)
                return ValueQuote(amount * price // 10**decimals, ValueSource.ORACLE)

        logger.warning(
            "No price source for %s, valuing %d at 1:1", asset, amount
        )
        return ValueQuote(amount, ValueSource.FALLBACK)

    async def value_of(self, asset: str, amount: int) -> int:
        return (await self.quote(asset, amount)).value

    async def unit_price(self, asset: str) -> ValueQuote:
        """Value of one whole unit of ``asset``."""
        decimals = await self.decimals_of(asset)
        return await self.quote(asset, 10**decimals)

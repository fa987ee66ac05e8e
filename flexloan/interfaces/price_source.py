"""Price capability protocols — registry, oracle and decimals lookup.

Each capability reports "unavailable" by returning ``None`` instead of
raising, so callers can compose them as an ordered fallback chain.
"""
from typing import Protocol


class PriceRegistry(Protocol):
    """Prices an asset amount directly in the common value unit."""

    async def value_in_base(self, asset: str, amount: int) -> int | None: ...


class PriceSource(Protocol):
    """Quotes ``base/quote`` scaled by ``SCALE``."""

    async def price(self, base: str, quote: str) -> int | None: ...


class DecimalsProvider(Protocol):
    async def decimals(self, asset: str) -> int | None: ...

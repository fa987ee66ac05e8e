"""Capability interfaces consumed by the loan engine."""
from .asset_handler import AssetHandler
from .notifier import Notifier
from .price_source import DecimalsProvider, PriceRegistry, PriceSource
from .treasury import Treasury

__all__ = [
    "AssetHandler",
    "DecimalsProvider",
    "Notifier",
    "PriceRegistry",
    "PriceSource",
    "Treasury",
]

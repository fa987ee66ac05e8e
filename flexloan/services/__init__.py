"""Service layer."""
from .keeper import LiquidationKeeper, build_notifiers

__all__ = ["LiquidationKeeper", "build_notifiers"]

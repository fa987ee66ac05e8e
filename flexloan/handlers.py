"""Asset → handler lookup table."""
from __future__ import annotations

import logging

from .errors import UnsupportedAsset
from .interfaces.asset_handler import AssetHandler

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Maps each asset to the handler that provides its liquidity."""

    def __init__(self, handlers: dict[str, AssetHandler] | None = None) -> None:
        self._handlers: dict[str, AssetHandler] = dict(handlers or {})

    def set(self, asset: str, handler: AssetHandler | None) -> None:
        if handler is None:
            self._handlers.pop(asset, None)
            logger.info("Handler for %s removed", asset)
            return
        self._handlers[asset] = handler
        logger.info("Handler for %s set (%s)", asset, handler.handler_type.value)

    def get(self, asset: str) -> AssetHandler | None:
        return self._handlers.get(asset)

    def require(self, asset: str) -> AssetHandler:
        handler = self._handlers.get(asset)
        if handler is None:
            raise UnsupportedAsset(f"No handler for asset {asset}")
        return handler

    def assets(self) -> list[str]:
        return sorted(self._handlers)

"""Liquidation eligibility under normal and emergency regimes.

The two regimes default in opposite directions when the ratio cannot be
computed: an asset in emergency fails open (liquidatable) to protect
solvency, normal operation fails closed (not liquidatable) so a transient
data failure never destroys a position.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping

from .config import AssetConfig
from .emergency import EmergencyRegistry
from .models import Position
from .risk import RiskClassifier

logger = logging.getLogger(__name__)


class LiquidationEligibility:
    """Decides per position whether liquidation is permitted."""

    def __init__(
        self,
        classifier: RiskClassifier,
        assets: Mapping[str, AssetConfig],
        emergency: EmergencyRegistry | None = None,
    ) -> None:
        self._classifier = classifier
        self._assets = assets
        self._emergency = emergency

    def configured_ratio(self, asset: str) -> int:
        return self._assets.get(asset, AssetConfig()).liquidation_ratio

    def effective_ratio(self, asset: str) -> int:
        """Liquidation ratio in force for ``asset`` outside full emergency."""
        configured = self.configured_ratio(asset)
        if self._emergency is None:
            return configured
        return self._emergency.effective_liquidation_ratio(asset, configured)

    def threshold(self, asset: str) -> int:
        """The ratio below which positions on ``asset`` are liquidatable."""
        if self._emergency is not None:
            in_emergency, override = self._emergency.is_in_emergency(asset)
            if in_emergency:
                return override
        return self.effective_ratio(asset)

    async def can_liquidate(self, position: Position, now: int) -> bool:
        if not position.is_active:
            return False

        ratio = await self._classifier.strict_collateralization_ratio(position, now)

        if self._emergency is not None:
            in_emergency, override = self._emergency.is_in_emergency(
                position.collateral_asset
            )
            if in_emergency:
                if ratio is None:
                    logger.warning(
                        "Position %d: ratio unavailable during %s emergency, "
                        "treating as liquidatable",
                        position.position_id, position.collateral_asset,
                    )
                    return True
                return ratio < override

        if ratio is None:
            logger.warning(
                "Position %d: ratio unavailable, treating as not liquidatable",
                position.position_id,
            )
            return False
        return ratio < self.effective_ratio(position.collateral_asset)

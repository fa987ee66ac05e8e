"""Per-asset emergency state that can tighten liquidation thresholds."""
from __future__ import annotations

import logging

from .errors import InvalidConfiguration
from .models import EmergencyLevel, EmergencyStatus

logger = logging.getLogger(__name__)

_NO_EMERGENCY = EmergencyStatus(
    level=EmergencyLevel.NONE, liquidation_ratio=0, reason="", updated_at=0
)


class EmergencyRegistry:
    """Asset-keyed emergency levels with an override liquidation ratio.

    One administrative writer, many readers; concurrent writes resolve
    last-write-wins.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, EmergencyStatus] = {}

    def set_level(
        self,
        asset: str,
        level: EmergencyLevel,
        liquidation_ratio: int,
        reason: str,
        now: int,
    ) -> EmergencyStatus:
        if level is EmergencyLevel.NONE:
            self.clear(asset)
            return _NO_EMERGENCY
        if liquidation_ratio <= 0:
            raise InvalidConfiguration(
                f"Emergency level {level.value} for {asset} needs a liquidation ratio"
            )
        status = EmergencyStatus(
            level=level,
            liquidation_ratio=liquidation_ratio,
            reason=reason,
            updated_at=now,
        )
        self._statuses[asset] = status
        logger.warning(
            "Emergency level for %s set to %s (ratio %d): %s",
            asset, level.value, liquidation_ratio, reason,
        )
        return status

    def clear(self, asset: str) -> None:
        if self._statuses.pop(asset, None) is not None:
            logger.info("Emergency level for %s cleared", asset)

    def status(self, asset: str) -> EmergencyStatus:
        return self._statuses.get(asset, _NO_EMERGENCY)

    def flagged_assets(self) -> list[str]:
        return sorted(self._statuses)

    def is_in_emergency(self, asset: str) -> tuple[bool, int]:
        """Whether ``asset`` is in full emergency, with its override ratio."""
        status = self.status(asset)
        if status.level is EmergencyLevel.EMERGENCY:
            return True, status.liquidation_ratio
        return False, 0

    def effective_liquidation_ratio(self, asset: str, configured: int) -> int:
        """The configured ratio, raised (never lowered) by any active override."""
        status = self.status(asset)
        if status.level is EmergencyLevel.NONE:
            return configured
        return max(configured, status.liquidation_ratio)

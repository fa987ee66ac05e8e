"""Risk classification — ratio, health factor, tier and advisory figures.

Pure calculation functions take every input explicitly; ``RiskClassifier``
combines them with live valuations into a ``RiskSnapshot``.
"""
from __future__ import annotations

import logging

from .config import RiskBandsConfig
from .constants import HOURS_PER_YEAR, MAX_RATIO, SCALE
from .interest import total_debt
from .models import Position, RiskSnapshot, RiskTier
from .valuation import AssetValuation

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure calculations
# ---------------------------------------------------------------------------


def calc_collateralization_ratio(collateral_value: int, debt_value: int) -> int:
    """collateral / debt scaled by SCALE; MAX_RATIO when there is no debt."""
    if debt_value <= 0:
        return MAX_RATIO
    return collateral_value * SCALE // debt_value


def calc_health_factor(ratio: int, liquidation_ratio: int) -> int:
    """ratio / liquidation_ratio scaled by SCALE (1.0 == SCALE)."""
    if ratio == MAX_RATIO or liquidation_ratio <= 0:
        return MAX_RATIO
    return ratio * SCALE // liquidation_ratio


def classify_tier(ratio: int, bands: RiskBandsConfig) -> RiskTier:
    if ratio >= bands.ultra_safe:
        return RiskTier.ULTRA_SAFE
    if ratio >= bands.healthy:
        return RiskTier.HEALTHY
    if ratio >= bands.moderate:
        return RiskTier.MODERATE
    if ratio >= bands.aggressive:
        return RiskTier.AGGRESSIVE
    if ratio >= bands.extreme:
        return RiskTier.EXTREME
    return RiskTier.DANGER_ZONE


def calc_liquidation_price(
    debt_value: int,
    liquidation_ratio: int,
    collateral_amount: int,
    collateral_decimals: int,
) -> int:
    """Value of one whole collateral unit at which ratio == liquidation_ratio.

    liquidation_price = debt_value * liquidation_ratio / collateral_units
    """
    if collateral_amount <= 0 or debt_value <= 0:
        return 0
    return (
        debt_value * liquidation_ratio * 10**collateral_decimals
        // (collateral_amount * SCALE)
    )


def calc_price_drop(current_price: int, liquidation_price: int) -> float:
    """Percentage drop from the current price to the liquidation price."""
    if current_price <= 0 or liquidation_price >= current_price:
        return 0.0
    return (current_price - liquidation_price) / current_price * 100


def price_drop_for_risk(
    current_price: int, liquidation_price: int, risk_percentage: float
) -> float:
    """Share (in percent) of the distance to liquidation given as a price drop."""
    return calc_price_drop(current_price, liquidation_price) * risk_percentage / 100


def estimate_hours_to_liquidation(
    ratio: int, liquidation_ratio: int, interest_rate: int
) -> float | None:
    """Hours until interest alone drags ``ratio`` down to ``liquidation_ratio``.

    Price and collateral are held constant and debt grows by simple interest:
        years = (ratio / liquidation_ratio - 1) / (rate / SCALE)
    Returns ``None`` when that never happens (no debt or no interest).
    """
    if ratio == MAX_RATIO or liquidation_ratio <= 0:
        return None
    if ratio <= liquidation_ratio:
        return 0.0
    if interest_rate <= 0:
        return None
    years = (ratio / liquidation_ratio - 1) / (interest_rate / SCALE)
    return years * HOURS_PER_YEAR


def assess_risk(
    position_id: int,
    collateral_value: int,
    debt_value: int,
    collateral_amount: int,
    collateral_decimals: int,
    unit_price: int,
    interest_rate: int,
    liquidation_ratio: int,
    bands: RiskBandsConfig,
) -> RiskSnapshot:
    """Build a snapshot from already-valued inputs."""
    ratio = calc_collateralization_ratio(collateral_value, debt_value)
    liquidation_price = calc_liquidation_price(
        debt_value, liquidation_ratio, collateral_amount, collateral_decimals
    )
    return RiskSnapshot(
        position_id=position_id,
        collateral_value=collateral_value,
        debt_value=debt_value,
        collateralization_ratio=ratio,
        health_factor=calc_health_factor(ratio, liquidation_ratio),
        liquidation_ratio=liquidation_ratio,
        risk_tier=classify_tier(ratio, bands),
        collateral_price=unit_price,
        liquidation_price=liquidation_price,
        price_drop_to_liquidation=calc_price_drop(unit_price, liquidation_price),
        hours_to_liquidation=estimate_hours_to_liquidation(
            ratio, liquidation_ratio, interest_rate
        ),
        is_liquidatable=ratio < liquidation_ratio,
    )


PRICE_IMPACT_STEPS = (10, 50, 90)


def price_impact(
    snapshot: RiskSnapshot, steps: tuple[int, ...] = PRICE_IMPACT_STEPS
) -> dict[int, float]:
    """Collateral price drop (percent) covering each step of the way to liquidation."""
    return {
        step: price_drop_for_risk(
            snapshot.collateral_price, snapshot.liquidation_price, step
        )
        for step in steps
    }


def format_ratio(ratio: int) -> str:
    """Render a scaled ratio as a percentage, e.g. ``166.67%``."""
    if ratio == MAX_RATIO:
        return "∞"
    return f"{ratio / SCALE * 100:.2f}%"


def format_health_factor(health_factor: int) -> str:
    if health_factor == MAX_RATIO:
        return "∞"
    return f"{health_factor / SCALE:.2f}"


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


class RiskClassifier:
    """Derives risk metrics for positions from current valuations."""

    def __init__(self, valuation: AssetValuation, bands: RiskBandsConfig) -> None:
        self._valuation = valuation
        self._bands = bands

    @property
    def bands(self) -> RiskBandsConfig:
        return self._bands

    async def collateralization_ratio(self, position: Position, now: int) -> int:
        """Current ratio, degrading through the valuation fallback chain."""
        collateral_value = await self._valuation.value_of(
            position.collateral_asset, position.collateral_amount
        )
        debt_value = await self._valuation.value_of(
            position.debt_asset, total_debt(position, now)
        )
        return calc_collateralization_ratio(collateral_value, debt_value)

    async def strict_collateralization_ratio(
        self, position: Position, now: int
    ) -> int | None:
        """Current ratio, or ``None`` when either leg lacks a real price.

        Used where a decision must not rest on the 1:1 identity fallback.
        """
        try:
            collateral = await self._valuation.quote(
                position.collateral_asset, position.collateral_amount
            )
            debt = await self._valuation.quote(
                position.debt_asset, total_debt(position, now)
            )
        except Exception as e:
            logger.warning(
                "Ratio for position %d unavailable: %s", position.position_id, e
            )
            return None
        if collateral.is_fallback or debt.is_fallback:
            return None
        return calc_collateralization_ratio(collateral.value, debt.value)

    async def classify(
        self, position: Position, liquidation_ratio: int, now: int
    ) -> RiskSnapshot:
        debt_value = await self._valuation.value_of(
            position.debt_asset, total_debt(position, now)
        )
        collateral_value = await self._valuation.value_of(
            position.collateral_asset, position.collateral_amount
        )
        decimals = await self._valuation.decimals_of(position.collateral_asset)
        unit_price = (await self._valuation.unit_price(position.collateral_asset)).value
        return assess_risk(
            position_id=position.position_id,
            collateral_value=collateral_value,
            debt_value=debt_value,
            collateral_amount=position.collateral_amount,
            collateral_decimals=decimals,
            unit_price=unit_price,
            interest_rate=position.interest_rate,
            liquidation_ratio=liquidation_ratio,
            bands=self._bands,
        )

"""Unit tests for risk calculations and classification."""
from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from conftest import ETH, USDC, YEAR

from flexloan.config import RiskBandsConfig
from flexloan.constants import MAX_RATIO
from flexloan.models import Position, RiskTier
from flexloan.oracles import StaticPriceSource
from flexloan.risk import (
    RiskClassifier,
    assess_risk,
    calc_collateralization_ratio,
    calc_health_factor,
    calc_liquidation_price,
    calc_price_drop,
    classify_tier,
    estimate_hours_to_liquidation,
    format_health_factor,
    format_ratio,
    price_drop_for_risk,
    price_impact,
)
from flexloan.valuation import AssetValuation

BANDS = RiskBandsConfig()


class TestRatio:
    def test_basic_ratio(self) -> None:
        assert calc_collateralization_ratio(5000 * USDC, 3000 * USDC) == 1_666_666

    def test_no_debt_is_infinite(self) -> None:
        assert calc_collateralization_ratio(5000 * USDC, 0) == MAX_RATIO

    def test_health_factor(self) -> None:
        assert calc_health_factor(1_650_000, 1_100_000) == 1_500_000

    def test_infinite_health_factor_passes_through(self) -> None:
        assert calc_health_factor(MAX_RATIO, 1_100_000) == MAX_RATIO


class TestClassifyTier:
    @pytest.mark.parametrize(
        ("ratio", "tier"),
        [
            (MAX_RATIO, RiskTier.ULTRA_SAFE),
            (3_000_000, RiskTier.ULTRA_SAFE),
            (2_999_999, RiskTier.HEALTHY),
            (2_000_000, RiskTier.HEALTHY),
            (1_666_666, RiskTier.MODERATE),
            (1_500_000, RiskTier.MODERATE),
            (1_200_000, RiskTier.AGGRESSIVE),
            (1_100_000, RiskTier.AGGRESSIVE),
            (1_050_000, RiskTier.EXTREME),
            (1_010_000, RiskTier.EXTREME),
            (1_009_999, RiskTier.DANGER_ZONE),
            (952_380, RiskTier.DANGER_ZONE),
        ],
    )
    def test_bands(self, ratio: int, tier: RiskTier) -> None:
        assert classify_tier(ratio, BANDS) is tier

    def test_lower_ratio_never_safer(self) -> None:
        order = list(RiskTier)
        ratios = range(900_000, 3_200_000, 7_919)
        tiers = [order.index(classify_tier(r, BANDS)) for r in ratios]
        assert tiers == sorted(tiers, reverse=True)


class TestAdvisoryFigures:
    def test_liquidation_price(self) -> None:
        price = calc_liquidation_price(3000 * USDC, 1_100_000, 2 * ETH, 18)
        assert price == 1650 * USDC

    def test_liquidation_price_without_collateral(self) -> None:
        assert calc_liquidation_price(3000 * USDC, 1_100_000, 0, 18) == 0

    def test_price_drop(self) -> None:
        assert calc_price_drop(2500 * USDC, 1650 * USDC) == pytest.approx(34.0)

    def test_no_drop_when_already_below(self) -> None:
        assert calc_price_drop(1500 * USDC, 1650 * USDC) == 0.0

    def test_price_drop_for_risk(self) -> None:
        assert price_drop_for_risk(2500 * USDC, 1650 * USDC, 50) == pytest.approx(17.0)

    def test_hours_to_liquidation(self) -> None:
        hours = estimate_hours_to_liquidation(1_666_666, 1_100_000, 60_000)
        expected = (1_666_666 / 1_100_000 - 1) / 0.06 * 8760
        assert hours == pytest.approx(expected)

    def test_hours_zero_when_liquidatable(self) -> None:
        assert estimate_hours_to_liquidation(1_000_000, 1_100_000, 60_000) == 0.0

    def test_hours_none_without_interest(self) -> None:
        assert estimate_hours_to_liquidation(1_666_666, 1_100_000, 0) is None

    def test_hours_none_without_debt(self) -> None:
        assert estimate_hours_to_liquidation(MAX_RATIO, 1_100_000, 60_000) is None

    def test_assess_risk_snapshot(self) -> None:
        snapshot = assess_risk(
            position_id=7,
            collateral_value=5000 * USDC,
            debt_value=3000 * USDC,
            collateral_amount=2 * ETH,
            collateral_decimals=18,
            unit_price=2500 * USDC,
            interest_rate=60_000,
            liquidation_ratio=1_100_000,
            bands=BANDS,
        )
        assert snapshot.position_id == 7
        assert snapshot.collateralization_ratio == 1_666_666
        assert snapshot.risk_tier is RiskTier.MODERATE
        assert snapshot.collateral_price == 2500 * USDC
        assert snapshot.liquidation_price == 1650 * USDC
        assert not snapshot.is_liquidatable

        impact = price_impact(snapshot)
        assert list(impact) == [10, 50, 90]
        assert impact[50] == pytest.approx(17.0)
        assert impact[90] == pytest.approx(30.6)


class TestFormatting:
    def test_format_ratio(self) -> None:
        assert format_ratio(1_666_666) == "166.67%"

    def test_format_infinite(self) -> None:
        assert format_ratio(MAX_RATIO) == "∞"
        assert format_health_factor(MAX_RATIO) == "∞"


class TestRiskClassifier:
    @pytest.fixture()
    def classifier(self, valuation: AssetValuation) -> RiskClassifier:
        return RiskClassifier(valuation, BANDS)

    @pytest.mark.asyncio
    async def test_classify_includes_interest(
        self, classifier: RiskClassifier, sample_position: Position
    ) -> None:
        now = sample_position.last_interest_update + YEAR
        snapshot = await classifier.classify(sample_position, 1_100_000, now)
        assert snapshot.debt_value == 3180 * USDC
        assert snapshot.collateral_value == 5000 * USDC
        assert snapshot.collateralization_ratio == 5000 * 1_000_000 // 3180

    @pytest.mark.asyncio
    async def test_closed_position_is_infinite(
        self, classifier: RiskClassifier, sample_position: Position
    ) -> None:
        closed = replace(
            sample_position, principal=0, collateral_amount=0, is_active=False
        )
        ratio = await classifier.collateralization_ratio(closed, closed.created_at)
        assert ratio == MAX_RATIO

    @pytest.mark.asyncio
    async def test_strict_ratio_rejects_fallback(self, sample_position: Position) -> None:
        # USDC priced, ETH not: the collateral leg would be valued 1:1.
        valuation = AssetValuation(
            oracle=StaticPriceSource({"USDC": 1.0}), known_decimals={"USDC": 6}
        )
        classifier = RiskClassifier(valuation, BANDS)
        now = sample_position.created_at

        assert await classifier.strict_collateralization_ratio(sample_position, now) is None
        assert await classifier.collateralization_ratio(sample_position, now) > 0

    @pytest.mark.asyncio
    async def test_strict_ratio_when_priced(
        self, classifier: RiskClassifier, sample_position: Position
    ) -> None:
        ratio = await classifier.strict_collateralization_ratio(
            sample_position, sample_position.created_at
        )
        assert ratio == 1_666_666

    @pytest.mark.asyncio
    async def test_strict_ratio_absorbs_valuation_errors(
        self, sample_position: Position
    ) -> None:
        valuation = AsyncMock(spec=AssetValuation)
        valuation.quote.side_effect = RuntimeError("boom")
        classifier = RiskClassifier(valuation, BANDS)
        ratio = await classifier.strict_collateralization_ratio(
            sample_position, sample_position.created_at
        )
        assert ratio is None

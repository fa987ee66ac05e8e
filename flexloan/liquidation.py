"""Liquidation execution — caller-funded and vault-funded paths.

Both paths share one settlement: the liquidator (or vault) is entitled to
the debt value plus a bonus, capped at the collateral value, paid out as a
share of the collateral; whatever is left goes back to the borrower.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from .compensation import Compensation
from .constants import DEFAULT_LIQUIDATION_BONUS, ENGINE_ACCOUNT, SCALE
from .eligibility import LiquidationEligibility
from .errors import NotLiquidatable, PositionInactive, UnsupportedAsset
from .handlers import HandlerRegistry
from .interest import total_debt
from .interfaces.asset_handler import AssetHandler
from .interfaces.treasury import Treasury
from .ledger import PositionLedger
from .models import HandlerType, LiquidationResult, Position
from .valuation import AssetValuation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiquidationSplit:
    debt_value: int
    collateral_value: int
    bonus: int
    entitlement: int
    liquidator_share: int
    borrower_remainder: int


def calc_liquidation_split(
    collateral_amount: int,
    collateral_value: int,
    debt_value: int,
    bonus_rate: int,
) -> LiquidationSplit:
    """Split collateral between the liquidator and the borrower.

    bonus       = collateral_value * bonus_rate / SCALE
    entitlement = min(collateral_value, debt_value + bonus)
    share       = entitlement * collateral_amount / collateral_value

    Worthless collateral goes entirely to whoever clears the debt.
    ``share + remainder == collateral_amount`` always holds.
    """
    bonus = collateral_value * bonus_rate // SCALE
    entitlement = min(collateral_value, debt_value + bonus)
    if collateral_value <= 0:
        share = collateral_amount
    else:
        share = min(
            entitlement * collateral_amount // collateral_value, collateral_amount
        )
    return LiquidationSplit(
        debt_value=debt_value,
        collateral_value=collateral_value,
        bonus=bonus,
        entitlement=entitlement,
        liquidator_share=share,
        borrower_remainder=collateral_amount - share,
    )


class LiquidationExecutor:
    """Performs liquidations against the ledger's positions."""

    def __init__(
        self,
        ledger: PositionLedger,
        handlers: HandlerRegistry,
        treasury: Treasury,
        valuation: AssetValuation,
        eligibility: LiquidationEligibility,
        liquidation_bonus: int = DEFAULT_LIQUIDATION_BONUS,
    ) -> None:
        self._ledger = ledger
        self._handlers = handlers
        self._treasury = treasury
        self._valuation = valuation
        self._eligibility = eligibility
        self.liquidation_bonus = liquidation_bonus

    async def _split(self, position: Position, debt: int) -> LiquidationSplit:
        debt_value = await self._valuation.value_of(position.debt_asset, debt)
        collateral_value = await self._valuation.value_of(
            position.collateral_asset, position.collateral_amount
        )
        return calc_liquidation_split(
            position.collateral_amount,
            collateral_value,
            debt_value,
            self.liquidation_bonus,
        )

    async def _distribute(
        self,
        position: Position,
        split: LiquidationSplit,
        recipient: str,
        comp: Compensation,
    ) -> None:
        asset = position.collateral_asset
        if split.liquidator_share > 0:
            await self._treasury.transfer(
                asset, split.liquidator_share, ENGINE_ACCOUNT, recipient
            )
            comp.push(
                "reclaim liquidator share",
                lambda: self._treasury.transfer(
                    asset, split.liquidator_share, recipient, ENGINE_ACCOUNT
                ),
            )
        if split.borrower_remainder > 0:
            await self._treasury.transfer(
                asset, split.borrower_remainder, ENGINE_ACCOUNT, position.borrower
            )
            comp.push(
                "reclaim borrower remainder",
                lambda: self._treasury.transfer(
                    asset, split.borrower_remainder, position.borrower, ENGINE_ACCOUNT
                ),
            )

    @staticmethod
    def _result(
        position: Position, debt: int, split: LiquidationSplit, recipient: str
    ) -> LiquidationResult:
        return LiquidationResult(
            success=True,
            position_id=position.position_id,
            liquidated_amount=debt,
            collateral_to_liquidator=split.liquidator_share,
            collateral_to_borrower=split.borrower_remainder,
            recipient=recipient,
        )

    # ------------------------------------------------------------------
    # Caller-funded
    # ------------------------------------------------------------------

    async def liquidate(
        self, position_id: int, liquidator: str, strict: bool = True
    ) -> LiquidationResult:
        """Liquidate with the liquidator repaying the debt.

        With ``strict=False`` an inactive or healthy position yields a
        non-success result instead of raising.
        """
        async with self._ledger.position_guard(position_id) as position:
            now = self._ledger.now()
            if not position.is_active:
                if strict:
                    raise PositionInactive(f"Position {position_id} is closed")
                return LiquidationResult(False, position_id, reason="PositionInactive")
            if not await self._eligibility.can_liquidate(position, now):
                if strict:
                    raise NotLiquidatable(f"Position {position_id} is not liquidatable")
                return LiquidationResult(False, position_id, reason="NotLiquidatable")

            debt = total_debt(position, now)
            split = await self._split(position, debt)
            handler = self._handlers.require(position.debt_asset)

            # Debt is covered before any collateral leaves custody.
            async with Compensation("liquidate") as comp:
                await handler.repay(position.debt_asset, debt, liquidator)
                await self._distribute(position, split, liquidator, comp)
                self._ledger.settle_liquidation(position)

        logger.info(
            "Position %d liquidated by %s: debt %d, %d collateral to liquidator, "
            "%d back to borrower",
            position_id, liquidator, debt,
            split.liquidator_share, split.borrower_remainder,
        )
        return self._result(position, debt, split, liquidator)

    # ------------------------------------------------------------------
    # Vault-funded
    # ------------------------------------------------------------------

    async def _fund(self, handler: AssetHandler, asset: str, amount: int) -> bool:
        try:
            return bool(await handler.fund_liquidation(asset, amount))
        except Exception as e:
            logger.warning("Vault could not fund %d %s: %s", amount, asset, e)
            return False

    async def vault_funded_liquidate(self, position_id: int) -> LiquidationResult:
        """Liquidate with the debt asset's vault advancing the repayment.

        The collateral share goes to the vault. If the vault cannot fund the
        advance the result is ``success=False`` and nothing changes.
        """
        async with self._ledger.position_guard(position_id) as position:
            now = self._ledger.now()
            if not position.is_active:
                return LiquidationResult(False, position_id, reason="PositionInactive")

            handler = self._handlers.require(position.debt_asset)
            if handler.handler_type is not HandlerType.VAULT_BASED:
                raise UnsupportedAsset(
                    f"Debt asset {position.debt_asset} is not vault-backed"
                )

            if not await self._eligibility.can_liquidate(position, now):
                return LiquidationResult(False, position_id, reason="NotLiquidatable")

            debt = total_debt(position, now)
            split = await self._split(position, debt)
            vault = handler.vault_address

            if not await self._fund(handler, position.debt_asset, debt):
                logger.warning(
                    "Position %d: vault funding unavailable, retry later",
                    position_id,
                )
                return LiquidationResult(
                    False, position_id, reason="VaultFundingUnavailable"
                )

            async with Compensation("vault_funded_liquidate") as comp:
                await self._distribute(position, split, vault, comp)
                self._ledger.settle_liquidation(position)

        logger.info(
            "Position %d liquidated by vault %s: debt %d, %d collateral to vault, "
            "%d back to borrower",
            position_id, vault, debt,
            split.liquidator_share, split.borrower_remainder,
        )
        return self._result(position, debt, split, vault)

"""Lending engine facade — command, query and administrative surfaces."""
from __future__ import annotations

import logging

from .config import AppConfig, AssetConfig, RiskBandsConfig
from .constants import (
    DEFAULT_LIQUIDATION_BONUS,
    DEFAULT_PROTOCOL_FEE,
    ENGINE_ACCOUNT,
    MAX_INTEREST_RATE,
    MAX_LIQUIDATION_BONUS,
    MAX_PROTOCOL_FEE,
)
from .eligibility import LiquidationEligibility
from .emergency import EmergencyRegistry
from .errors import EnginePaused, InvalidAmount, InvalidConfiguration, Unauthorized
from .handlers import HandlerRegistry
from .interfaces.asset_handler import AssetHandler
from .interfaces.treasury import Treasury
from .ledger import Clock, PositionLedger, system_clock
from .liquidation import LiquidationExecutor
from .models import (
    EmergencyLevel,
    EmergencyStatus,
    LiquidationResult,
    Position,
    RepaymentResult,
    RiskSnapshot,
    RiskTier,
)
from .risk import RiskClassifier
from .valuation import AssetValuation

logger = logging.getLogger(__name__)

_AT_RISK_TIERS = (RiskTier.EXTREME, RiskTier.DANGER_ZONE)


class LendingEngine:
    """Wires ledger, risk, eligibility and liquidation behind one surface.

    Mutating commands are rejected while paused. Administrative calls
    require the owner.
    """

    def __init__(
        self,
        treasury: Treasury,
        valuation: AssetValuation,
        owner: str,
        assets: dict[str, AssetConfig] | None = None,
        risk_bands: RiskBandsConfig | None = None,
        emergency: EmergencyRegistry | None = None,
        clock: Clock = system_clock,
        protocol_fee: int = DEFAULT_PROTOCOL_FEE,
        liquidation_bonus: int = DEFAULT_LIQUIDATION_BONUS,
        fee_collector: str = "",
        max_interest_rate: int = MAX_INTEREST_RATE,
    ) -> None:
        _check_cap("protocol_fee", protocol_fee, MAX_PROTOCOL_FEE)
        _check_cap("liquidation_bonus", liquidation_bonus, MAX_LIQUIDATION_BONUS)

        self.owner = owner
        self.paused = False
        self._treasury = treasury
        self._valuation = valuation
        self._assets: dict[str, AssetConfig] = dict(assets or {})
        self.emergency = emergency if emergency is not None else EmergencyRegistry()

        self.handlers = HandlerRegistry()
        self.ledger = PositionLedger(
            treasury,
            self.handlers,
            clock=clock,
            protocol_fee=protocol_fee,
            fee_collector=fee_collector,
            max_interest_rate=max_interest_rate,
        )
        self.classifier = RiskClassifier(valuation, risk_bands or RiskBandsConfig())
        self.eligibility = LiquidationEligibility(
            self.classifier, self._assets, self.emergency
        )
        self.executor = LiquidationExecutor(
            self.ledger,
            self.handlers,
            treasury,
            valuation,
            self.eligibility,
            liquidation_bonus=liquidation_bonus,
        )

        self.automation_enabled = False
        self._automation_callers: set[str] = set()

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        treasury: Treasury,
        valuation: AssetValuation,
        clock: Clock = system_clock,
    ) -> LendingEngine:
        engine_cfg = config.engine
        engine = cls(
            treasury,
            valuation,
            owner=engine_cfg.owner,
            assets=config.assets,
            risk_bands=config.risk_bands,
            clock=clock,
            protocol_fee=engine_cfg.protocol_fee,
            liquidation_bonus=engine_cfg.liquidation_bonus,
            fee_collector=engine_cfg.fee_collector,
            max_interest_rate=engine_cfg.max_interest_rate,
        )
        engine.automation_enabled = config.automation.enabled
        engine._automation_callers.update(config.automation.callers)
        return engine

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _require_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise Unauthorized(f"{caller} is not the engine owner")

    def _require_not_paused(self) -> None:
        if self.paused:
            raise EnginePaused("Engine is paused")

    def _require_automation(self, caller: str) -> None:
        if not self.automation_enabled:
            raise Unauthorized("Automated liquidation is disabled")
        if caller not in self._automation_callers:
            raise Unauthorized(f"{caller} is not an authorized automation caller")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def open_position(
        self,
        borrower: str,
        collateral_asset: str,
        debt_asset: str,
        collateral_amount: int,
        debt_amount: int,
        interest_rate: int,
    ) -> int:
        self._require_not_paused()
        return await self.ledger.open(
            borrower,
            collateral_asset,
            debt_asset,
            collateral_amount,
            debt_amount,
            interest_rate,
        )

    async def add_collateral(self, position_id: int, caller: str, amount: int) -> Position:
        self._require_not_paused()
        return await self.ledger.add_collateral(position_id, caller, amount)

    async def withdraw_collateral(
        self, position_id: int, caller: str, amount: int
    ) -> Position:
        self._require_not_paused()
        return await self.ledger.withdraw_collateral(position_id, caller, amount)

    async def increase_debt(self, position_id: int, caller: str, amount: int) -> Position:
        self._require_not_paused()
        return await self.ledger.increase_debt(position_id, caller, amount)

    async def repay(
        self, position_id: int, caller: str, amount: int | None = None
    ) -> RepaymentResult:
        self._require_not_paused()
        return await self.ledger.repay(position_id, caller, amount)

    async def update_interest(self, position_id: int) -> Position:
        self._require_not_paused()
        return await self.ledger.update_interest(position_id)

    async def liquidate(self, position_id: int, liquidator: str) -> LiquidationResult:
        self._require_not_paused()
        return await self.executor.liquidate(position_id, liquidator)

    async def automated_liquidate(
        self, position_id: int, caller: str
    ) -> LiquidationResult:
        """Liquidation by an authorized automation caller using its own funds."""
        self._require_not_paused()
        self._require_automation(caller)
        return await self.executor.liquidate(position_id, caller, strict=False)

    async def vault_funded_automated_liquidate(
        self, position_id: int, caller: str
    ) -> LiquidationResult:
        """Liquidation by an authorized automation caller with vault funding."""
        self._require_not_paused()
        self._require_automation(caller)
        return await self.executor.vault_funded_liquidate(position_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_position(self, position_id: int) -> Position:
        return self.ledger.get_position(position_id)

    def get_total_debt(self, position_id: int) -> int:
        return self.ledger.get_total_debt(position_id)

    def get_accrued_interest(self, position_id: int) -> int:
        return self.ledger.get_accrued_interest(position_id)

    async def get_collateralization_ratio(self, position_id: int) -> int:
        position = self.ledger.get_position(position_id)
        return await self.classifier.collateralization_ratio(
            position, self.ledger.now()
        )

    async def get_risk_snapshot(self, position_id: int) -> RiskSnapshot:
        position = self.ledger.get_position(position_id)
        return await self.classifier.classify(
            position,
            self.eligibility.threshold(position.collateral_asset),
            self.ledger.now(),
        )

    async def is_position_at_risk(self, position_id: int) -> tuple[bool, RiskTier]:
        snapshot = await self.get_risk_snapshot(position_id)
        return is_at_risk(snapshot), snapshot.risk_tier

    async def can_liquidate(self, position_id: int) -> bool:
        position = self.ledger.get_position(position_id)
        return await self.eligibility.can_liquidate(position, self.ledger.now())

    async def get_max_borrowable(self, asset: str) -> int:
        """Most that can be borrowed in ``asset`` right now; only liquidity limits it."""
        handler = self.handlers.require(asset)
        return await handler.available_liquidity(asset)

    def get_positions_in_range(self, start: int, end: int) -> list[Position]:
        return self.ledger.get_positions_in_range(start, end)

    def get_total_active_positions(self) -> int:
        return self.ledger.get_total_active_positions()

    def get_user_positions(self, borrower: str) -> list[Position]:
        return self.ledger.get_user_positions(borrower)

    @property
    def protocol_fee(self) -> int:
        return self.ledger.protocol_fee

    @property
    def liquidation_bonus(self) -> int:
        return self.executor.liquidation_bonus

    @property
    def fee_collector(self) -> str:
        return self.ledger.fee_collector

    def is_automation_caller(self, caller: str) -> bool:
        return caller in self._automation_callers

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def set_asset_handler(
        self, caller: str, asset: str, handler: AssetHandler | None
    ) -> None:
        self._require_owner(caller)
        self.handlers.set(asset, handler)

    def set_asset_config(self, caller: str, asset: str, config: AssetConfig) -> None:
        self._require_owner(caller)
        if config.liquidation_ratio <= 0:
            raise InvalidConfiguration(f"Asset {asset} needs a liquidation ratio")
        self._assets[asset] = config
        logger.info(
            "Asset %s configured: liquidation ratio %d", asset, config.liquidation_ratio
        )

    def set_protocol_fee(self, caller: str, fee: int) -> None:
        self._require_owner(caller)
        _check_cap("protocol_fee", fee, MAX_PROTOCOL_FEE)
        self.ledger.protocol_fee = fee
        logger.info("Protocol fee set to %d", fee)

    def set_liquidation_bonus(self, caller: str, bonus: int) -> None:
        self._require_owner(caller)
        _check_cap("liquidation_bonus", bonus, MAX_LIQUIDATION_BONUS)
        self.executor.liquidation_bonus = bonus
        logger.info("Liquidation bonus set to %d", bonus)

    def set_fee_collector(self, caller: str, fee_collector: str) -> None:
        self._require_owner(caller)
        if not fee_collector:
            raise InvalidConfiguration("Fee collector must not be empty")
        self.ledger.fee_collector = fee_collector
        logger.info("Fee collector set to %s", fee_collector)

    def pause(self, caller: str) -> None:
        self._require_owner(caller)
        self.paused = True
        logger.warning("Engine paused by %s", caller)

    def unpause(self, caller: str) -> None:
        self._require_owner(caller)
        self.paused = False
        logger.info("Engine unpaused by %s", caller)

    def set_emergency_level(
        self,
        caller: str,
        asset: str,
        level: EmergencyLevel,
        liquidation_ratio: int = 0,
        reason: str = "",
    ) -> EmergencyStatus:
        self._require_owner(caller)
        return self.emergency.set_level(
            asset, level, liquidation_ratio, reason, self.ledger.now()
        )

    def clear_emergency(self, caller: str, asset: str) -> None:
        self._require_owner(caller)
        self.emergency.clear(asset)

    def set_automation_enabled(self, caller: str, enabled: bool) -> None:
        self._require_owner(caller)
        self.automation_enabled = enabled
        logger.info("Automated liquidation %s", "enabled" if enabled else "disabled")

    def authorize_automation(self, caller: str, automation: str) -> None:
        self._require_owner(caller)
        self._automation_callers.add(automation)
        logger.info("Automation caller %s authorized", automation)

    def revoke_automation(self, caller: str, automation: str) -> None:
        self._require_owner(caller)
        self._automation_callers.discard(automation)
        logger.info("Automation caller %s revoked", automation)

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._require_owner(caller)
        if not new_owner:
            raise InvalidConfiguration("New owner must not be empty")
        self.owner = new_owner
        logger.warning("Ownership transferred from %s to %s", caller, new_owner)

    async def emergency_withdraw(
        self, caller: str, asset: str, amount: int, recipient: str
    ) -> None:
        """Move assets out of engine custody; allowed even while paused."""
        self._require_owner(caller)
        if amount <= 0:
            raise InvalidAmount(f"Amount must be positive, got {amount}")
        await self._treasury.transfer(asset, amount, ENGINE_ACCOUNT, recipient)
        logger.warning(
            "Emergency withdrawal of %d %s to %s by %s", amount, asset, recipient, caller
        )


def is_at_risk(snapshot: RiskSnapshot) -> bool:
    """EXTREME or worse, or already under the liquidation threshold."""
    return snapshot.risk_tier in _AT_RISK_TIERS or snapshot.is_liquidatable


def _check_cap(name: str, value: int, cap: int) -> None:
    if not 0 <= value <= cap:
        raise InvalidConfiguration(f"{name} {value} outside [0, {cap}]")

"""Liquidation keeper — scans positions, liquidates, reports."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from ..config import KeeperConfig, NotificationsConfig
from ..engine import LendingEngine, is_at_risk
from ..errors import EngineError
from ..interfaces.notifier import Notifier
from ..models import HandlerType, LiquidationResult, Position, RiskSnapshot, RiskTier
from ..notifications import TelegramNotifier
from ..risk import format_health_factor, format_ratio

logger = logging.getLogger(__name__)

_TIER_ICONS = {
    RiskTier.ULTRA_SAFE: "🟢",
    RiskTier.HEALTHY: "🟢",
    RiskTier.MODERATE: "🟡",
    RiskTier.AGGRESSIVE: "🟠",
    RiskTier.EXTREME: "🔴",
    RiskTier.DANGER_ZONE: "🚨",
}


def build_notifiers(config: NotificationsConfig) -> list[Notifier]:
    notifiers: list[Notifier] = []
    if config.telegram.enabled:
        notifiers.append(TelegramNotifier(config.telegram))
    return notifiers


class LiquidationKeeper:
    """Automation caller that sweeps the ledger for liquidatable positions."""

    def __init__(
        self,
        engine: LendingEngine,
        config: KeeperConfig,
        notifiers: list[Notifier] | None = None,
    ) -> None:
        self._engine = engine
        self._config = config
        self._notifiers: list[Notifier] = list(notifiers or [])

    # ------------------------------------------------------------------
    # Formatting helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    @staticmethod
    def _format_account(address: str) -> str:
        if len(address) > 16:
            return f"{address[:10]}...{address[-6:]}"
        return address

    def _build_risk_alert(self, position: Position, snapshot: RiskSnapshot) -> str:
        icon = _TIER_ICONS[snapshot.risk_tier]
        hours = (
            "n/a"
            if snapshot.hours_to_liquidation is None
            else f"{snapshot.hours_to_liquidation:.1f}h"
        )
        return (
            f"{icon} {snapshot.risk_tier.value} · position #{position.position_id}\n"
            f"\n"
            f"{position.collateral_asset} → {position.debt_asset}\n"
            f"Ratio: {format_ratio(snapshot.collateralization_ratio)}"
            f" (liquidates below {format_ratio(snapshot.liquidation_ratio)})\n"
            f"Health factor: {format_health_factor(snapshot.health_factor)}\n"
            f"Price drop to liquidation: {snapshot.price_drop_to_liquidation:.2f}%\n"
            f"Time to liquidation: {hours}\n"
            f"\n"
            f"Borrower: {self._format_account(position.borrower)}\n"
            f"{self._now_str()} UTC"
        )

    def _build_liquidation_alert(
        self, position: Position, result: LiquidationResult
    ) -> str:
        return (
            f"⚡ Liquidated position #{result.position_id}\n"
            f"\n"
            f"Debt repaid: {result.liquidated_amount} {position.debt_asset}\n"
            f"Collateral to {self._format_account(result.recipient)}: "
            f"{result.collateral_to_liquidator} {position.collateral_asset}\n"
            f"Collateral to borrower: "
            f"{result.collateral_to_borrower} {position.collateral_asset}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    # ------------------------------------------------------------------
    # Notification dispatch
    # ------------------------------------------------------------------

    async def _send_log(self, message: str, silent: bool = True) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_log(message, silent=silent)
            except Exception as e:
                logger.error("Notifier send_log failed: %s", e)

    async def _send_alert(self, message: str, subject: str = "") -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(message, subject=subject)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)

    # ------------------------------------------------------------------
    # Core workflows
    # ------------------------------------------------------------------

    def active_positions(self) -> list[Position]:
        """All active positions, read in ``batch_size`` id ranges."""
        last_id = self._engine.ledger.next_position_id - 1
        batch = max(1, self._config.batch_size)
        active: list[Position] = []
        for start in range(1, last_id + 1, batch):
            for position in self._engine.get_positions_in_range(start, start + batch - 1):
                if position.is_active:
                    active.append(position)
        return active

    async def scan(self) -> list[tuple[Position, RiskSnapshot]]:
        snapshots = []
        for position in self.active_positions():
            snapshot = await self._engine.get_risk_snapshot(position.position_id)
            snapshots.append((position, snapshot))
        return snapshots

    def _uses_vault(self, position: Position) -> bool:
        if not self._config.use_vault_funding:
            return False
        handler = self._engine.handlers.get(position.debt_asset)
        return handler is not None and handler.handler_type is HandlerType.VAULT_BASED

    async def _liquidate(self, position: Position) -> LiquidationResult:
        caller = self._config.caller
        if self._uses_vault(position):
            return await self._engine.vault_funded_automated_liquidate(
                position.position_id, caller
            )
        return await self._engine.automated_liquidate(position.position_id, caller)

    async def check_and_liquidate(self) -> list[LiquidationResult]:
        """One sweep: alert on at-risk positions, liquidate eligible ones."""
        results: list[LiquidationResult] = []

        for position, snapshot in await self.scan():
            tier = snapshot.risk_tier
            logger.info(
                "Position %d · %s · ratio %s · HF %s",
                position.position_id,
                tier.value,
                format_ratio(snapshot.collateralization_ratio),
                format_health_factor(snapshot.health_factor),
            )
            if is_at_risk(snapshot):
                await self._send_alert(
                    self._build_risk_alert(position, snapshot),
                    subject=f"{_TIER_ICONS[tier]} Position #{position.position_id} at risk",
                )

            if not await self._engine.can_liquidate(position.position_id):
                continue

            try:
                result = await self._liquidate(position)
            except EngineError as e:
                logger.error(
                    "Liquidation of position %d failed: %s (%s)",
                    position.position_id, e, e.reason,
                )
                await self._send_alert(
                    f"Liquidation of position #{position.position_id} failed: {e.reason}",
                    subject="❌ Liquidation failed",
                )
                continue

            results.append(result)
            if result.success:
                await self._send_alert(
                    self._build_liquidation_alert(position, result),
                    subject="⚡ Liquidation executed",
                )
            else:
                logger.warning(
                    "Position %d not liquidated: %s", position.position_id, result.reason
                )
                await self._send_log(
                    f"Position #{position.position_id} skipped: {result.reason}"
                )

        return results

    async def _liquidity_section(self) -> str:
        lines = ["💧 Max borrowable (base units)"]
        for asset in self._engine.handlers.assets():
            try:
                available = await self._engine.get_max_borrowable(asset)
            except Exception as e:
                logger.error("Liquidity for %s unavailable: %s", asset, e)
                lines.append(f"  {asset}: unavailable")
                continue
            lines.append(f"  {asset}: {available:,}")
        return "\n".join(lines)

    async def generate_report(self) -> str:
        """Send a summary of all active positions grouped by risk tier."""
        by_tier: dict[RiskTier, list[str]] = {}
        for position, snapshot in await self.scan():
            by_tier.setdefault(snapshot.risk_tier, []).append(
                f"  #{position.position_id} {position.collateral_asset}→"
                f"{position.debt_asset} · {format_ratio(snapshot.collateralization_ratio)}"
            )

        sections = [
            f"{_TIER_ICONS[tier]} {tier.value} ({len(by_tier[tier])})\n"
            + "\n".join(by_tier[tier])
            for tier in RiskTier
            if tier in by_tier
        ]
        body = "\n\n".join(sections) if sections else "No active positions."
        report = (
            f"📋 Loan Book Report\n"
            f"\n"
            f"{body}\n"
            f"\n"
            f"{await self._liquidity_section()}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

        await self._send_alert(report)
        logger.info("Report sent")
        return report

    async def run_continuous(self, check_interval_minutes: int | None = None) -> None:
        """Run the keeper loop until cancelled."""
        interval = check_interval_minutes or self._config.check_interval_minutes
        logger.info("Starting keeper (sweeping every %d minutes)", interval)

        while True:
            try:
                await self.check_and_liquidate()
                await asyncio.sleep(interval * 60)
            except Exception as e:
                logger.error("Error in keeper loop: %s", e)
                await asyncio.sleep(60)

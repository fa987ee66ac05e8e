"""Position ledger — owns position records and their mutations.

Every mutation follows the same shape: take the position's lock, accrue
interest on a copy, validate, run external effects under a
``Compensation`` and only then replace the stored record. A failure at any
step leaves the table exactly as it was.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import replace

from .compensation import Compensation
from .constants import ENGINE_ACCOUNT, MAX_INTEREST_RATE, SCALE
from .errors import (
    InsufficientCollateral,
    InsufficientLiquidity,
    InvalidAmount,
    InvariantViolation,
    NotOwner,
    PositionInactive,
    PositionNotFound,
    RateOverflow,
    SameAsset,
    UnsupportedAsset,
)
from .handlers import HandlerRegistry
from .interest import accrue, accrued_interest, total_debt
from .interfaces.treasury import Treasury
from .models import Position, RepaymentResult

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
    return int(time.time())


def check_invariants(position: Position) -> None:
    """Raise ``InvariantViolation`` if a record must not be persisted."""
    if position.collateral_amount < 0 or position.principal < 0:
        raise InvariantViolation(
            f"Position {position.position_id} has a negative balance"
        )
    if position.accrued_interest < 0:
        raise InvariantViolation(
            f"Position {position.position_id} has negative accrued interest"
        )
    if position.collateral_asset == position.debt_asset:
        raise InvariantViolation(
            f"Position {position.position_id} uses one asset for both legs"
        )
    if not position.is_active and (position.principal or position.accrued_interest):
        raise InvariantViolation(
            f"Inactive position {position.position_id} still carries debt"
        )


class PositionLedger:
    """Arena of positions keyed by identifier, with per-position locking."""

    def __init__(
        self,
        treasury: Treasury,
        handlers: HandlerRegistry,
        clock: Clock = system_clock,
        protocol_fee: int = 0,
        fee_collector: str = "",
        max_interest_rate: int = MAX_INTEREST_RATE,
    ) -> None:
        self._treasury = treasury
        self._handlers = handlers
        self._clock = clock
        self.protocol_fee = protocol_fee
        self.fee_collector = fee_collector
        self.max_interest_rate = max_interest_rate

        self._positions: dict[int, Position] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        self._next_id = 1

    def now(self) -> int:
        return self._clock()

    # ------------------------------------------------------------------
    # Locking and internal access
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def position_guard(self, position_id: int) -> AsyncIterator[Position]:
        """Serialize with every other mutation of ``position_id``.

        Yields the record as of lock acquisition.
        """
        lock = self._locks.get(position_id)
        if lock is None:
            raise PositionNotFound(f"Position {position_id} does not exist")
        async with lock:
            yield self._positions[position_id]

    def _commit(self, position: Position) -> None:
        check_invariants(position)
        self._positions[position.position_id] = position

    def _require_owner(self, position: Position, caller: str) -> None:
        if position.borrower != caller:
            raise NotOwner(
                f"{caller} does not own position {position.position_id}"
            )

    @staticmethod
    def _require_active(position: Position) -> None:
        if not position.is_active:
            raise PositionInactive(f"Position {position.position_id} is closed")

    @staticmethod
    def _require_positive(amount: int) -> None:
        if amount <= 0:
            raise InvalidAmount(f"Amount must be positive, got {amount}")

    async def _require_supported(self, asset: str) -> None:
        handler = self._handlers.require(asset)
        if not await handler.is_supported(asset):
            raise UnsupportedAsset(f"Asset {asset} is not supported by its handler")

    async def _require_liquidity(self, asset: str, amount: int) -> None:
        available = await self._handlers.require(asset).available_liquidity(asset)
        if available < amount:
            raise InsufficientLiquidity(
                f"Requested {amount} {asset}, only {available} available"
            )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def open(
        self,
        borrower: str,
        collateral_asset: str,
        debt_asset: str,
        collateral_amount: int,
        debt_amount: int,
        interest_rate: int,
    ) -> int:
        """Open a position at any ratio and return its identifier."""
        if collateral_amount <= 0 or debt_amount <= 0:
            raise InvalidAmount("Collateral and debt amounts must be positive")
        if collateral_asset == debt_asset:
            raise SameAsset(f"Collateral and debt asset are both {debt_asset}")
        if interest_rate < 0 or interest_rate > self.max_interest_rate:
            raise RateOverflow(
                f"Interest rate {interest_rate} outside [0, {self.max_interest_rate}]"
            )

        async with Compensation("open") as comp:
            await self._require_supported(collateral_asset)
            await self._require_supported(debt_asset)
            await self._require_liquidity(debt_asset, debt_amount)

            await self._treasury.transfer(
                collateral_asset, collateral_amount, borrower, ENGINE_ACCOUNT
            )
            comp.push(
                "return collateral",
                lambda: self._treasury.transfer(
                    collateral_asset, collateral_amount, ENGINE_ACCOUNT, borrower
                ),
            )
            await self._handlers.require(debt_asset).lend(
                debt_asset, debt_amount, borrower
            )

            now = self.now()
            position = Position(
                position_id=self._next_id,
                borrower=borrower,
                collateral_asset=collateral_asset,
                debt_asset=debt_asset,
                collateral_amount=collateral_amount,
                principal=debt_amount,
                interest_rate=interest_rate,
                created_at=now,
                last_interest_update=now,
            )
            self._commit(position)
            self._next_id += 1
            self._locks[position.position_id] = asyncio.Lock()

        logger.info(
            "Opened position %d: %s posts %d %s, borrows %d %s at %d ppm",
            position.position_id, borrower, collateral_amount, collateral_asset,
            debt_amount, debt_asset, interest_rate,
        )
        return position.position_id

    async def add_collateral(self, position_id: int, caller: str, amount: int) -> Position:
        async with self.position_guard(position_id) as position:
            self._require_active(position)
            self._require_owner(position, caller)
            self._require_positive(amount)

            updated = replace(
                position, collateral_amount=position.collateral_amount + amount
            )
            async with Compensation("add_collateral"):
                await self._treasury.transfer(
                    position.collateral_asset, amount, caller, ENGINE_ACCOUNT
                )
                self._commit(updated)

        logger.info("Position %d: added %d collateral", position_id, amount)
        return updated

    async def withdraw_collateral(
        self, position_id: int, caller: str, amount: int
    ) -> Position:
        """Withdraw collateral without any post-withdrawal ratio check."""
        async with self.position_guard(position_id) as position:
            self._require_active(position)
            self._require_owner(position, caller)
            self._require_positive(amount)
            if amount > position.collateral_amount:
                raise InsufficientCollateral(
                    f"Withdraw {amount} exceeds collateral {position.collateral_amount}"
                )

            updated = replace(
                position, collateral_amount=position.collateral_amount - amount
            )
            async with Compensation("withdraw_collateral"):
                await self._treasury.transfer(
                    position.collateral_asset, amount, ENGINE_ACCOUNT, caller
                )
                self._commit(updated)

        logger.info("Position %d: withdrew %d collateral", position_id, amount)
        return updated

    async def increase_debt(self, position_id: int, caller: str, amount: int) -> Position:
        """Borrow more against a position without any ratio check."""
        async with self.position_guard(position_id) as position:
            accrued = accrue(position, self.now())
            self._require_active(accrued)
            self._require_owner(accrued, caller)
            self._require_positive(amount)

            updated = replace(accrued, principal=accrued.principal + amount)
            async with Compensation("increase_debt"):
                await self._require_liquidity(position.debt_asset, amount)
                await self._handlers.require(position.debt_asset).lend(
                    position.debt_asset, amount, position.borrower
                )
                self._commit(updated)

        logger.info("Position %d: debt increased by %d", position_id, amount)
        return updated

    async def repay(
        self, position_id: int, caller: str, amount: int | None = None
    ) -> RepaymentResult:
        """Repay interest first, then principal; ``None`` repays everything.

        Reaching zero debt closes the position and returns its collateral in
        the same operation.
        """
        async with self.position_guard(position_id) as position:
            accrued = accrue(position, self.now())
            self._require_active(accrued)
            self._require_owner(accrued, caller)

            debt = accrued.principal + accrued.accrued_interest
            if amount is None:
                amount = debt
            self._require_positive(amount)

            repay_amount = min(amount, debt)
            interest_paid = min(repay_amount, accrued.accrued_interest)
            principal_paid = repay_amount - interest_paid
            fee = (
                interest_paid * self.protocol_fee // SCALE
                if self.fee_collector
                else 0
            )

            principal = accrued.principal - principal_paid
            interest_left = accrued.accrued_interest - interest_paid
            closing = principal == 0 and interest_left == 0
            collateral_returned = accrued.collateral_amount if closing else 0

            updated = replace(
                accrued,
                principal=principal,
                accrued_interest=interest_left,
                collateral_amount=accrued.collateral_amount - collateral_returned,
                is_active=not closing,
            )

            async with Compensation("repay") as comp:
                if fee > 0:
                    await self._treasury.transfer(
                        accrued.debt_asset, fee, caller, self.fee_collector
                    )
                    comp.push(
                        "refund protocol fee",
                        lambda: self._treasury.transfer(
                            accrued.debt_asset, fee, self.fee_collector, caller
                        ),
                    )
                if repay_amount - fee > 0:
                    await self._handlers.require(accrued.debt_asset).repay(
                        accrued.debt_asset, repay_amount - fee, caller
                    )
                if collateral_returned > 0:
                    await self._treasury.transfer(
                        accrued.collateral_asset,
                        collateral_returned,
                        ENGINE_ACCOUNT,
                        accrued.borrower,
                    )
                    comp.push(
                        "reclaim returned collateral",
                        lambda: self._treasury.transfer(
                            accrued.collateral_asset,
                            collateral_returned,
                            accrued.borrower,
                            ENGINE_ACCOUNT,
                        ),
                    )
                self._commit(updated)

        logger.info(
            "Position %d: repaid %d (interest %d, principal %d, fee %d)%s",
            position_id, repay_amount, interest_paid, principal_paid, fee,
            " (closed)" if closing else "",
        )
        return RepaymentResult(
            position_id=position_id,
            interest_paid=interest_paid,
            principal_paid=principal_paid,
            protocol_fee=fee,
            collateral_returned=collateral_returned,
            closed=closing,
        )

    async def update_interest(self, position_id: int) -> Position:
        """Fold pending interest into the stored record."""
        async with self.position_guard(position_id) as position:
            updated = accrue(position, self.now())
            if updated is not position:
                self._commit(updated)
        return updated

    def settle_liquidation(self, expected: Position) -> Position:
        """Close a liquidated position. Caller must hold its guard.

        ``expected`` is the record the settlement was computed from; any
        other stored record means the guard was bypassed.
        """
        current = self._positions.get(expected.position_id)
        if current is not expected:
            raise InvariantViolation(
                f"Position {expected.position_id} changed during liquidation"
            )
        closed = replace(
            current,
            collateral_amount=0,
            principal=0,
            accrued_interest=0,
            last_interest_update=max(current.last_interest_update, self.now()),
            is_active=False,
        )
        self._commit(closed)
        return closed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_position(self, position_id: int) -> Position:
        position = self._positions.get(position_id)
        if position is None:
            raise PositionNotFound(f"Position {position_id} does not exist")
        return position

    def get_total_debt(self, position_id: int) -> int:
        return total_debt(self.get_position(position_id), self.now())

    def get_accrued_interest(self, position_id: int) -> int:
        return accrued_interest(self.get_position(position_id), self.now())

    def get_positions_in_range(self, start: int, end: int) -> list[Position]:
        """Positions with ``start <= id <= end``, clipped to issued ids."""
        first = max(start, 1)
        last = min(end, self._next_id - 1)
        return [
            self._positions[pid]
            for pid in range(first, last + 1)
            if pid in self._positions
        ]

    def get_total_active_positions(self) -> int:
        return sum(1 for p in self._positions.values() if p.is_active)

    def get_user_positions(self, borrower: str) -> list[Position]:
        return [p for p in self._positions.values() if p.borrower == borrower]

    @property
    def next_position_id(self) -> int:
        return self._next_id

"""Data models — frozen (immutable) records and result types."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RiskTier(str, Enum):
    """Six-tier classification by collateralization ratio."""

    ULTRA_SAFE = "ULTRA_SAFE"
    HEALTHY = "HEALTHY"
    MODERATE = "MODERATE"
    AGGRESSIVE = "AGGRESSIVE"
    EXTREME = "EXTREME"
    DANGER_ZONE = "DANGER_ZONE"


class EmergencyLevel(str, Enum):
    NONE = "NONE"
    WARNING = "WARNING"
    EMERGENCY = "EMERGENCY"


class HandlerType(str, Enum):
    """How an asset handler sources the liquidity it lends."""

    MINTABLE_BURNABLE = "MINTABLE_BURNABLE"
    VAULT_BASED = "VAULT_BASED"


class ValueSource(str, Enum):
    """Which link of the valuation chain produced a value."""

    REGISTRY = "REGISTRY"
    ORACLE = "ORACLE"
    FALLBACK = "FALLBACK"


@dataclass(frozen=True)
class Position:
    """A single borrower's collateral + debt pair.

    Records are never mutated in place: the ledger replaces a whole record on
    every change, so a reader holding one always sees a consistent state.
    """

    position_id: int
    borrower: str
    collateral_asset: str
    debt_asset: str
    collateral_amount: int
    principal: int
    interest_rate: int
    created_at: int
    last_interest_update: int
    accrued_interest: int = 0
    is_active: bool = True


@dataclass(frozen=True)
class ValueQuote:
    """An asset amount expressed in the common value unit."""

    value: int
    source: ValueSource

    @property
    def is_fallback(self) -> bool:
        return self.source is ValueSource.FALLBACK


@dataclass(frozen=True)
class RiskSnapshot:
    """Derived, read-only risk view of a position at one instant."""

    position_id: int
    collateral_value: int
    debt_value: int
    collateralization_ratio: int
    health_factor: int
    liquidation_ratio: int
    risk_tier: RiskTier
    collateral_price: int
    liquidation_price: int
    price_drop_to_liquidation: float
    hours_to_liquidation: float | None
    is_liquidatable: bool


@dataclass(frozen=True)
class EmergencyStatus:
    level: EmergencyLevel
    liquidation_ratio: int
    reason: str
    updated_at: int


@dataclass(frozen=True)
class RepaymentResult:
    position_id: int
    interest_paid: int
    principal_paid: int
    protocol_fee: int
    collateral_returned: int
    closed: bool

    @property
    def total_paid(self) -> int:
        return self.interest_paid + self.principal_paid


@dataclass(frozen=True)
class LiquidationResult:
    """Outcome of a liquidation attempt.

    ``success=False`` is an expected, retryable outcome (e.g. the vault could
    not fund the advance); the position is left untouched in that case.
    """

    success: bool
    position_id: int
    liquidated_amount: int = 0
    collateral_to_liquidator: int = 0
    collateral_to_borrower: int = 0
    recipient: str = ""
    reason: str = ""

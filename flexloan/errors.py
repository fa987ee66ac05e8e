"""Exception hierarchy for the loan engine."""
from __future__ import annotations


class EngineError(Exception):
    """Base exception for all engine errors.

    ``reason`` is a stable, machine-readable identifier for the failure.
    """

    reason = "EngineError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.reason)


# ---------------------------------------------------------------------------
# Validation: rejected before any state or external effect
# ---------------------------------------------------------------------------


class ValidationError(EngineError):
    reason = "ValidationError"


class InvalidAmount(ValidationError):
    reason = "InvalidAmount"


class SameAsset(ValidationError):
    reason = "SameAsset"


class RateOverflow(ValidationError):
    reason = "RateOverflow"


class InvalidConfiguration(ValidationError):
    reason = "InvalidConfiguration"


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


class ResourceError(EngineError):
    reason = "ResourceError"


class InsufficientLiquidity(ResourceError):
    reason = "InsufficientLiquidity"


class InsufficientCollateral(ResourceError):
    reason = "InsufficientCollateral"


class UnsupportedAsset(ResourceError):
    reason = "UnsupportedAsset"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class AuthorizationError(EngineError):
    reason = "AuthorizationError"


class NotOwner(AuthorizationError):
    reason = "NotOwner"


class Unauthorized(AuthorizationError):
    reason = "Unauthorized"


class EnginePaused(AuthorizationError):
    reason = "EnginePaused"


# ---------------------------------------------------------------------------
# Position state
# ---------------------------------------------------------------------------


class PositionError(EngineError):
    reason = "PositionError"


class PositionNotFound(PositionError):
    reason = "PositionNotFound"


class PositionInactive(PositionError):
    reason = "PositionInactive"


class NotLiquidatable(PositionError):
    reason = "NotLiquidatable"


# ---------------------------------------------------------------------------
# External capabilities and internal defects
# ---------------------------------------------------------------------------


class ExternalFailure(EngineError):
    """A capability failed and no fallback exists for the operation."""

    reason = "ExternalFailure"


class InvariantViolation(EngineError):
    """A computed state would break a ledger invariant; nothing is committed."""

    reason = "InvariantViolation"

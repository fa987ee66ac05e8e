"""Flexible collateralized loan engine."""
from .engine import LendingEngine
from .errors import EngineError
from .models import LiquidationResult, Position, RepaymentResult, RiskSnapshot, RiskTier

__version__ = "0.1.0"

__all__ = [
    "EngineError",
    "LendingEngine",
    "LiquidationResult",
    "Position",
    "RepaymentResult",
    "RiskSnapshot",
    "RiskTier",
]

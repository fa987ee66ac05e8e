"""Fixed-point constants shared across the engine."""

# Ratios, rates, fees and bonuses are expressed in parts-per-million.
SCALE = 1_000_000

SECONDS_PER_YEAR = 365 * 24 * 3600
HOURS_PER_YEAR = 365 * 24

# Sentinel for an "infinite" collateralization ratio (no debt).
MAX_RATIO = 2**256 - 1

DEFAULT_DECIMALS = 18

MAX_INTEREST_RATE = 1_000_000  # 100% APR
MAX_PROTOCOL_FEE = 100_000  # 10%
MAX_LIQUIDATION_BONUS = 200_000  # 20%

DEFAULT_PROTOCOL_FEE = 5_000  # 0.5% of interest paid
DEFAULT_LIQUIDATION_BONUS = 50_000  # 5%

# Custody account holding pledged collateral.
ENGINE_ACCOUNT = "flexloan:engine"

"""Price oracle implementations."""
from ..config import PriceOracleConfig
from .pyth import PythOracle
from .static import StaticPriceSource


def create_price_source(
    config: PriceOracleConfig, base_unit: str = "USD"
) -> PythOracle | StaticPriceSource:
    """Build the price source selected by ``price_oracle.provider``."""
    if config.provider == "static":
        return StaticPriceSource(config.static_prices, base_unit)
    return PythOracle(config.pyth, base_unit)


__all__ = ["PythOracle", "StaticPriceSource", "create_price_source"]

"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .constants import (
    DEFAULT_DECIMALS,
    DEFAULT_LIQUIDATION_BONUS,
    DEFAULT_PROTOCOL_FEE,
    MAX_INTEREST_RATE,
    MAX_LIQUIDATION_BONUS,
    MAX_PROTOCOL_FEE,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskBandsConfig:
    """Lower bounds (ppm) of each risk tier, highest first."""

    ultra_safe: int = 3_000_000
    healthy: int = 2_000_000
    moderate: int = 1_500_000
    aggressive: int = 1_100_000
    extreme: int = 1_010_000


@dataclass(frozen=True)
class AssetConfig:
    decimals: int = DEFAULT_DECIMALS
    collateral_ratio: int = 1_500_000
    liquidation_ratio: int = 1_100_000


@dataclass(frozen=True)
class EngineConfig:
    owner: str = ""
    fee_collector: str = ""
    protocol_fee: int = DEFAULT_PROTOCOL_FEE
    liquidation_bonus: int = DEFAULT_LIQUIDATION_BONUS
    max_interest_rate: int = MAX_INTEREST_RATE
    base_unit: str = "USD"


@dataclass(frozen=True)
class AutomationConfig:
    enabled: bool = False
    callers: tuple[str, ...] = ()


@dataclass(frozen=True)
class KeeperConfig:
    check_interval_minutes: int = 5
    batch_size: int = 50
    use_vault_funding: bool = True
    caller: str = ""


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)
    timeout: int = 30
    cache_seconds: int = 15


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "pyth"
    pyth: PythConfig = field(default_factory=PythConfig)
    static_prices: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)


@dataclass(frozen=True)
class AppConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    assets: dict[str, AssetConfig] = field(default_factory=dict)
    risk_bands: RiskBandsConfig = field(default_factory=RiskBandsConfig)
    automation: AutomationConfig = field(default_factory=AutomationConfig)
    keeper: KeeperConfig = field(default_factory=KeeperConfig)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_engine(raw: dict[str, Any]) -> EngineConfig:
    return EngineConfig(
        owner=str(raw.get("owner", "")),
        fee_collector=str(raw.get("fee_collector", "")),
        protocol_fee=int(raw.get("protocol_fee", DEFAULT_PROTOCOL_FEE)),
        liquidation_bonus=int(raw.get("liquidation_bonus", DEFAULT_LIQUIDATION_BONUS)),
        max_interest_rate=int(raw.get("max_interest_rate", MAX_INTEREST_RATE)),
        base_unit=str(raw.get("base_unit", "USD")),
    )


def _build_assets(raw: dict[str, Any]) -> dict[str, AssetConfig]:
    assets: dict[str, AssetConfig] = {}
    for symbol, cfg in raw.items():
        assets[symbol] = AssetConfig(
            decimals=int(cfg.get("decimals", DEFAULT_DECIMALS)),
            collateral_ratio=int(cfg.get("collateral_ratio", 1_500_000)),
            liquidation_ratio=int(cfg.get("liquidation_ratio", 1_100_000)),
        )
    return assets


def _build_risk_bands(raw: dict[str, Any]) -> RiskBandsConfig:
    defaults = RiskBandsConfig()
    return RiskBandsConfig(
        ultra_safe=int(raw.get("ultra_safe", defaults.ultra_safe)),
        healthy=int(raw.get("healthy", defaults.healthy)),
        moderate=int(raw.get("moderate", defaults.moderate)),
        aggressive=int(raw.get("aggressive", defaults.aggressive)),
        extreme=int(raw.get("extreme", defaults.extreme)),
    )


def _build_automation(raw: dict[str, Any]) -> AutomationConfig:
    return AutomationConfig(
        enabled=bool(raw.get("enabled", False)),
        callers=tuple(raw.get("callers", [])),
    )


def _build_keeper(raw: dict[str, Any]) -> KeeperConfig:
    return KeeperConfig(
        check_interval_minutes=int(raw.get("check_interval_minutes", 5)),
        batch_size=int(raw.get("batch_size", 50)),
        use_vault_funding=bool(raw.get("use_vault_funding", True)),
        caller=str(raw.get("caller", "")),
    )


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "pyth"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=dict(pyth_raw.get("feeds", {})),
            timeout=int(pyth_raw.get("timeout", 30)),
            cache_seconds=int(pyth_raw.get("cache_seconds", 15)),
        ),
        static_prices={
            k: float(v) for k, v in raw.get("static_prices", {}).items()
        },
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate engine configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        engine=_build_engine(raw.get("engine", {})),
        assets=_build_assets(raw.get("assets", {})),
        risk_bands=_build_risk_bands(raw.get("risk_bands", {})),
        automation=_build_automation(raw.get("automation", {})),
        keeper=_build_keeper(raw.get("keeper", {})),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    validate_config(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def validate_config(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    engine = cfg.engine
    if not 0 <= engine.protocol_fee <= MAX_PROTOCOL_FEE:
        raise ValueError(
            f"protocol_fee {engine.protocol_fee} exceeds cap {MAX_PROTOCOL_FEE}"
        )
    if not 0 <= engine.liquidation_bonus <= MAX_LIQUIDATION_BONUS:
        raise ValueError(
            f"liquidation_bonus {engine.liquidation_bonus} exceeds cap "
            f"{MAX_LIQUIDATION_BONUS}"
        )
    if engine.max_interest_rate <= 0:
        raise ValueError("max_interest_rate must be positive")

    for symbol, asset in cfg.assets.items():
        if asset.decimals < 0:
            raise ValueError(f"Asset '{symbol}' has negative decimals")
        if asset.liquidation_ratio <= 0:
            raise ValueError(f"Asset '{symbol}' has no liquidation ratio")
        if asset.liquidation_ratio > asset.collateral_ratio:
            raise ValueError(
                f"Asset '{symbol}' liquidation ratio is above its collateral ratio"
            )

    bands = cfg.risk_bands
    ordered = [
        bands.ultra_safe,
        bands.healthy,
        bands.moderate,
        bands.aggressive,
        bands.extreme,
    ]
    if ordered != sorted(ordered, reverse=True):
        raise ValueError("Risk bands must be in descending order")

    oracle = cfg.price_oracle
    if oracle.provider not in ("pyth", "static"):
        raise ValueError(f"Unknown price oracle provider '{oracle.provider}'")
    if oracle.provider == "pyth" and not oracle.pyth.feeds:
        raise ValueError("Pyth provider requires at least one price feed")
    if oracle.pyth.cache_seconds < 0:
        raise ValueError("Pyth cache_seconds must not be negative")

    if cfg.automation.enabled and not cfg.automation.callers:
        raise ValueError("Automation is enabled but no caller is authorized")

"""Unit tests for config loading, env interpolation, and validation."""
from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from flexloan.config import (
    AppConfig,
    AssetConfig,
    AutomationConfig,
    EngineConfig,
    PriceOracleConfig,
    PythConfig,
    RiskBandsConfig,
    _interpolate_env,
    load_config,
    validate_config,
)


class TestInterpolateEnv:
    def test_simple_substitution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_VAR", "hello")
        assert _interpolate_env("${MY_VAR}") == "hello"

    def test_missing_var_becomes_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
        assert _interpolate_env("${NONEXISTENT_VAR_XYZ}") == ""

    def test_nested_structures(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOK", "secret")
        result = _interpolate_env({"key": "${TOK}", "list": ["${TOK}", 3]})
        assert result == {"key": "secret", "list": ["secret", 3]}

    def test_non_string_passthrough(self) -> None:
        assert _interpolate_env(42) == 42
        assert _interpolate_env(True) is True


class TestLoadConfig:
    def test_loads_valid_yaml(
        self, sample_yaml_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TEST_OWNER", "admin")
        cfg = load_config(sample_yaml_path)

        assert isinstance(cfg, AppConfig)
        assert cfg.engine.owner == "admin"
        assert cfg.engine.protocol_fee == 5000
        assert cfg.assets["USDC"].decimals == 6
        assert cfg.assets["ETH"].liquidation_ratio == 1_100_000
        assert cfg.automation.callers == ("keeper",)
        assert cfg.keeper.batch_size == 25
        assert cfg.price_oracle.pyth.feeds == {"ETH": "aaa", "USDC": "bbb"}
        assert cfg.price_oracle.static_prices == {"ETH": 2500.0}
        assert cfg.notifications.telegram.chat_id == "999"

    def test_defaults_for_omitted_sections(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("price_oracle:\n  provider: static\n")
        cfg = load_config(cfg_file)

        assert cfg.engine.liquidation_bonus == 50_000
        assert cfg.risk_bands == RiskBandsConfig()
        assert cfg.keeper.check_interval_minutes == 5
        assert not cfg.automation.enabled

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")


class TestValidation:
    @pytest.fixture()
    def valid(self) -> AppConfig:
        return AppConfig(
            assets={"ETH": AssetConfig()},
            price_oracle=PriceOracleConfig(
                provider="pyth", pyth=PythConfig(feeds={"ETH": "aaa"})
            ),
        )

    def test_valid_config_passes(self, valid: AppConfig) -> None:
        validate_config(valid)

    def test_fee_above_cap(self, valid: AppConfig) -> None:
        cfg = replace(valid, engine=EngineConfig(protocol_fee=100_001))
        with pytest.raises(ValueError, match="protocol_fee"):
            validate_config(cfg)

    def test_bonus_above_cap(self, valid: AppConfig) -> None:
        cfg = replace(valid, engine=EngineConfig(liquidation_bonus=200_001))
        with pytest.raises(ValueError, match="liquidation_bonus"):
            validate_config(cfg)

    def test_liquidation_above_collateral_ratio(self, valid: AppConfig) -> None:
        cfg = replace(
            valid,
            assets={"ETH": AssetConfig(collateral_ratio=1_100_000, liquidation_ratio=1_200_000)},
        )
        with pytest.raises(ValueError, match="above its collateral ratio"):
            validate_config(cfg)

    def test_missing_liquidation_ratio(self, valid: AppConfig) -> None:
        cfg = replace(valid, assets={"ETH": AssetConfig(liquidation_ratio=0)})
        with pytest.raises(ValueError, match="no liquidation ratio"):
            validate_config(cfg)

    def test_bands_out_of_order(self, valid: AppConfig) -> None:
        cfg = replace(valid, risk_bands=RiskBandsConfig(healthy=3_500_000))
        with pytest.raises(ValueError, match="descending"):
            validate_config(cfg)

    def test_unknown_provider(self, valid: AppConfig) -> None:
        cfg = replace(valid, price_oracle=PriceOracleConfig(provider="chainlink"))
        with pytest.raises(ValueError, match="Unknown price oracle"):
            validate_config(cfg)

    def test_pyth_without_feeds(self, valid: AppConfig) -> None:
        cfg = replace(valid, price_oracle=PriceOracleConfig(provider="pyth"))
        with pytest.raises(ValueError, match="at least one price feed"):
            validate_config(cfg)

    def test_negative_price_cache(self, valid: AppConfig) -> None:
        pyth = PythConfig(feeds={"ETH": "aaa"}, cache_seconds=-1)
        cfg = replace(valid, price_oracle=PriceOracleConfig(provider="pyth", pyth=pyth))
        with pytest.raises(ValueError, match="cache_seconds"):
            validate_config(cfg)

    def test_automation_without_callers(self, valid: AppConfig) -> None:
        cfg = replace(valid, automation=AutomationConfig(enabled=True))
        with pytest.raises(ValueError, match="no caller"):
            validate_config(cfg)

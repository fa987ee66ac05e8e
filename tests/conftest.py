"""Shared test fixtures and in-memory capability fakes."""
from __future__ import annotations

import textwrap
from collections import defaultdict
from collections.abc import Callable
from pathlib import Path

import pytest

from flexloan.config import (
    AppConfig,
    AssetConfig,
    AutomationConfig,
    EngineConfig,
    KeeperConfig,
    NotificationsConfig,
    PriceOracleConfig,
    PythConfig,
    RiskBandsConfig,
    TelegramConfig,
)
from flexloan.engine import LendingEngine
from flexloan.models import HandlerType, Position
from flexloan.oracles import StaticPriceSource
from flexloan.valuation import AssetValuation

OWNER = "owner"
ALICE = "alice"
BOB = "bob"
KEEPER = "keeper"
FEES = "fees"

ETH = 10**18
USDC = 10**6
DAY = 24 * 3600
YEAR = 365 * DAY


# ---------------------------------------------------------------------------
# Capability fakes
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self, start: int = 1_700_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class FakeTreasury:
    """Account balances keyed by ``(account, asset)``."""

    def __init__(self) -> None:
        self.balances: dict[tuple[str, str], int] = defaultdict(int)
        self.transfers: list[tuple[str, int, str, str]] = []
        self.fail_when: Callable[[str, int, str, str], bool] | None = None

    def credit(self, account: str, asset: str, amount: int) -> None:
        self.balances[(account, asset)] += amount

    def balance(self, account: str, asset: str) -> int:
        return self.balances[(account, asset)]

    async def transfer(self, asset: str, amount: int, sender: str, recipient: str) -> None:
        if self.fail_when is not None and self.fail_when(asset, amount, sender, recipient):
            raise ConnectionError("transfer rejected")
        if self.balances[(sender, asset)] < amount:
            raise ValueError(f"{sender} holds less than {amount} {asset}")
        self.balances[(sender, asset)] -= amount
        self.balances[(recipient, asset)] += amount
        self.transfers.append((asset, amount, sender, recipient))


class FakeHandler:
    """Liquidity source that mints into and burns from the treasury."""

    def __init__(
        self,
        treasury: FakeTreasury,
        handler_type: HandlerType = HandlerType.MINTABLE_BURNABLE,
        liquidity: int = 10**15,
        vault_address: str = "",
        vault_funds: int = 0,
        supported: bool = True,
    ) -> None:
        self._treasury = treasury
        self.handler_type = handler_type
        self.vault_address = vault_address
        self.liquidity = liquidity
        self.vault_funds = vault_funds
        self.supported = supported
        self.repaid: list[tuple[str, int, str]] = []
        self.funded: list[tuple[str, int]] = []

    async def is_supported(self, asset: str) -> bool:
        return self.supported

    async def available_liquidity(self, asset: str) -> int:
        return self.liquidity

    async def lend(self, asset: str, amount: int, to: str) -> None:
        self.liquidity -= amount
        self._treasury.credit(to, asset, amount)

    async def repay(self, asset: str, amount: int, payer: str) -> None:
        await self._treasury.transfer(asset, amount, payer, f"reserve:{asset}")
        self.liquidity += amount
        self.repaid.append((asset, amount, payer))

    async def fund_liquidation(self, asset: str, amount: int) -> bool:
        if self.vault_funds < amount:
            return False
        self.vault_funds -= amount
        self.liquidity += amount
        self.funded.append((asset, amount))
        return True


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


ASSETS = {
    "ETH": AssetConfig(decimals=18, collateral_ratio=1_500_000, liquidation_ratio=1_100_000),
    "WBTC": AssetConfig(decimals=8, collateral_ratio=1_500_000, liquidation_ratio=1_100_000),
    "USDC": AssetConfig(decimals=6, collateral_ratio=1_200_000, liquidation_ratio=1_050_000),
}


@pytest.fixture()
def sample_pyth_config() -> PythConfig:
    return PythConfig(
        hermes_url="https://hermes.example.com/v2/updates/price/latest",
        feeds={"ETH": "aaa111", "WBTC": "bbb222", "USDC": "ccc333"},
    )


@pytest.fixture()
def sample_app_config(sample_pyth_config: PythConfig) -> AppConfig:
    return AppConfig(
        engine=EngineConfig(owner=OWNER, fee_collector=FEES),
        assets=dict(ASSETS),
        risk_bands=RiskBandsConfig(),
        automation=AutomationConfig(enabled=True, callers=(KEEPER,)),
        keeper=KeeperConfig(batch_size=2, use_vault_funding=True, caller=KEEPER),
        price_oracle=PriceOracleConfig(
            provider="static",
            pyth=sample_pyth_config,
            static_prices={"ETH": 2500.0, "WBTC": 60000.0, "USDC": 1.0},
        ),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def treasury() -> FakeTreasury:
    t = FakeTreasury()
    for account in (ALICE, BOB):
        t.credit(account, "ETH", 100 * ETH)
        t.credit(account, "WBTC", 10 * 10**8)
        t.credit(account, "USDC", 100_000 * USDC)
    t.credit(KEEPER, "USDC", 1_000_000 * USDC)
    return t


@pytest.fixture()
def prices() -> StaticPriceSource:
    return StaticPriceSource({"ETH": 2500.0, "WBTC": 60000.0, "USDC": 1.0})


@pytest.fixture()
def valuation(prices: StaticPriceSource) -> AssetValuation:
    return AssetValuation(
        oracle=prices,
        known_decimals={name: cfg.decimals for name, cfg in ASSETS.items()},
    )


@pytest.fixture()
def usdc_handler(treasury: FakeTreasury) -> FakeHandler:
    return FakeHandler(
        treasury,
        handler_type=HandlerType.VAULT_BASED,
        vault_address="vault:USDC",
        vault_funds=1_000_000 * USDC,
    )


@pytest.fixture()
def engine(
    sample_app_config: AppConfig,
    treasury: FakeTreasury,
    valuation: AssetValuation,
    clock: FakeClock,
    usdc_handler: FakeHandler,
) -> LendingEngine:
    e = LendingEngine.from_config(sample_app_config, treasury, valuation, clock=clock)
    e.set_asset_handler(OWNER, "USDC", usdc_handler)
    e.set_asset_handler(OWNER, "ETH", FakeHandler(treasury))
    e.set_asset_handler(OWNER, "WBTC", FakeHandler(treasury))
    return e


@pytest.fixture()
def sample_position(clock: FakeClock) -> Position:
    return Position(
        position_id=1,
        borrower=ALICE,
        collateral_asset="ETH",
        debt_asset="USDC",
        collateral_amount=2 * ETH,
        principal=3000 * USDC,
        interest_rate=60_000,
        created_at=clock.now,
        last_interest_update=clock.now,
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    engine:
      owner: "${TEST_OWNER}"
      fee_collector: fees
      protocol_fee: 5000
      liquidation_bonus: 50000
    assets:
      ETH: {decimals: 18, collateral_ratio: 1500000, liquidation_ratio: 1100000}
      USDC: {decimals: 6, collateral_ratio: 1200000, liquidation_ratio: 1050000}
    automation:
      enabled: true
      callers: [keeper]
    keeper:
      check_interval_minutes: 10
      batch_size: 25
      caller: keeper
    price_oracle:
      provider: pyth
      pyth:
        hermes_url: "https://hermes.example.com"
        feeds: {ETH: "aaa", USDC: "bbb"}
      static_prices: {ETH: 2500}
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: "999"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file

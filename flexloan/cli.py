"""Command-line interface for the loan engine."""
from __future__ import annotations

import argparse
import asyncio
import sys
from decimal import Decimal, InvalidOperation

from .config import AppConfig, AssetConfig, load_config
from .constants import SCALE
from .logging_setup import configure_logging
from .models import Position, RiskSnapshot
from .oracles import create_price_source
from .risk import RiskClassifier, format_health_factor, format_ratio, price_impact
from .valuation import AssetValuation


def amount_arg(value: str) -> Decimal:
    """argparse type for non-negative decimal amounts."""
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Invalid amount: {value}") from None
    if not amount.is_finite() or amount < 0:
        raise argparse.ArgumentTypeError(f"Amount must be a non-negative number: {value}")
    return amount


def to_base_units(amount: Decimal, decimals: int) -> int:
    """``1.5`` with 18 decimals -> ``1500000000000000000``."""
    return int(amount * (10**decimals))


def percent_to_rate(percent: Decimal) -> int:
    """Annual rate in percent -> scaled rate (``6`` -> ``60000``)."""
    return int(percent * SCALE / 100)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="flexloan",
        description="Collateralized loan engine tools",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    assess = sub.add_parser("assess", help="Risk of a hypothetical position")
    assess.add_argument("collateral_asset")
    assess.add_argument("collateral_amount", type=amount_arg, help="Whole units, e.g. 2.5")
    assess.add_argument("debt_asset")
    assess.add_argument("debt_amount", type=amount_arg, help="Whole units, e.g. 3000")
    assess.add_argument(
        "--rate",
        type=amount_arg,
        default=Decimal(0),
        help="Annual interest rate in percent (default: 0)",
    )

    prices = sub.add_parser("prices", help="Show current oracle prices")
    prices.add_argument("symbols", nargs="*", help="Symbols (default: all feeds)")

    return parser


def _render_snapshot(
    snapshot: RiskSnapshot, collateral_asset: str, suggested_ratio: int
) -> str:
    hours = (
        "never"
        if snapshot.hours_to_liquidation is None
        else f"{snapshot.hours_to_liquidation:,.1f} hours"
    )
    liquidation_price = Decimal(snapshot.liquidation_price) / SCALE
    suggestion = "met" if snapshot.collateralization_ratio >= suggested_ratio else "below"
    lines = [
        f"Collateral value:     ${Decimal(snapshot.collateral_value) / SCALE:,.2f}",
        f"Debt value:           ${Decimal(snapshot.debt_value) / SCALE:,.2f}",
        f"Collateralization:    {format_ratio(snapshot.collateralization_ratio)}",
        f"Suggested ratio:      {format_ratio(suggested_ratio)} ({suggestion})",
        f"Liquidation ratio:    {format_ratio(snapshot.liquidation_ratio)}",
        f"Health factor:        {format_health_factor(snapshot.health_factor)}",
        f"Risk tier:            {snapshot.risk_tier.value}",
        f"Liquidation price:    ${liquidation_price:,.2f} per {collateral_asset}",
        f"Price drop to liq.:   {snapshot.price_drop_to_liquidation:.2f}%",
    ]
    for step, drop in price_impact(snapshot).items():
        lines.append(f"Drop for {step}% risk:    {drop:.2f}%")
    lines += [
        f"Time to liquidation:  {hours}",
        f"Liquidatable now:     {'yes' if snapshot.is_liquidatable else 'no'}",
    ]
    return "\n".join(lines)


async def _assess(config: AppConfig, args: argparse.Namespace) -> str:
    base_unit = config.engine.base_unit
    valuation = AssetValuation(
        base_unit=base_unit,
        oracle=create_price_source(config.price_oracle, base_unit),
        known_decimals={name: a.decimals for name, a in config.assets.items()},
    )
    collateral_decimals = await valuation.decimals_of(args.collateral_asset)
    debt_decimals = await valuation.decimals_of(args.debt_asset)

    position = Position(
        position_id=0,
        borrower="",
        collateral_asset=args.collateral_asset,
        debt_asset=args.debt_asset,
        collateral_amount=to_base_units(args.collateral_amount, collateral_decimals),
        principal=to_base_units(args.debt_amount, debt_decimals),
        interest_rate=percent_to_rate(args.rate),
        created_at=0,
        last_interest_update=0,
    )
    asset_cfg = config.assets.get(args.collateral_asset, AssetConfig())
    snapshot = await RiskClassifier(valuation, config.risk_bands).classify(
        position, asset_cfg.liquidation_ratio, now=0
    )
    return _render_snapshot(snapshot, args.collateral_asset, asset_cfg.collateral_ratio)


async def _prices(config: AppConfig, symbols: list[str]) -> str:
    source = create_price_source(config.price_oracle, config.engine.base_unit)
    prices = await source.fetch_prices(symbols or None)
    if not prices:
        return "No prices available."
    return "\n".join(f"{symbol:<8} ${price:,.4f}" for symbol, price in sorted(prices.items()))


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)

    if args.command == "assess":
        print(await _assess(config, args))
    elif args.command == "prices":
        print(await _prices(config, args.symbols))
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    asyncio.run(_run(args))

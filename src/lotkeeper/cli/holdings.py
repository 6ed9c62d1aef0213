#!/usr/bin/env python3
"""Holdings subcommand - Display current holdings replayed from a ledger."""

import warnings
from datetime import date
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

from ..config import Settings
from ..portfolio import Portfolio, recompute_portfolio_holdings
from ..pricingdata import CsvPriceSeriesStore, SeriesPricingDataManager
from ..tax.holding_period import HoldingPeriod
from ..tax.lots import LotMatchingMethod
from ..transactions import load_transactions
from rich.console import Console
from rich.table import Table
from rich.panel import Panel


def add_common_arguments(parser):
    """Arguments shared by every ledger-reading subcommand."""
    parser.add_argument("filename", help="Path to the ledger (.xlsx or .json)")
    parser.add_argument(
        "--price-dir",
        default=None,
        help="Directory of <ASSET>.csv price files (default: LOTKEEPER_PRICE_DIR or .cache/prices)",
    )
    parser.add_argument(
        "--method",
        choices=[m.value for m in LotMatchingMethod],
        default=None,
        help="Lot matching method for sells (default: LOTKEEPER_LOT_METHOD or fifo)",
    )
    parser.add_argument(
        "--quiet-warnings",
        action="store_true",
        help="Hide replay and price data warnings",
    )


def build_portfolio(args, settings: Settings) -> Portfolio:
    """Load the ledger named on the command line into an in-memory portfolio."""
    if args.quiet_warnings:
        warnings.filterwarnings("ignore", category=UserWarning)

    price_dir = args.price_dir or settings.price_dir
    lot_method = LotMatchingMethod(args.method) if args.method else settings.lot_method

    portfolio = Portfolio(
        portfolio_id=args.filename,
        pricing_manager=SeriesPricingDataManager(CsvPriceSeriesStore(price_dir)),
        lot_method=lot_method,
    )
    portfolio.add_transactions(load_transactions(args.filename))
    return portfolio


def format_gain(percent) -> str:
    if percent >= 0:
        return f"[green]+{percent:.2f}%[/green]"
    return f"[red]{percent:.2f}%[/red]"


def register_subcommand(subparsers):
    """Register the holdings subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "holdings",
        help="Display current holdings",
        description="Replay a transaction ledger and display quantity, cost basis and value per asset.",
    )
    add_common_arguments(parser)
    parser.set_defaults(func=run)


def run(args):
    """Display one row per held asset plus realized gains and totals.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    console = Console()
    try:
        settings = Settings.from_env()
        portfolio = build_portfolio(args, settings)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    results = recompute_portfolio_holdings(portfolio)
    held = [calc for calc in results.values() if calc.quantity > 0]

    table = Table(title=f"Holdings on {date.today().isoformat()} ({portfolio.lot_method.value.upper()})")
    table.add_column("Asset", style="cyan", justify="left")
    table.add_column("Quantity", style="magenta", justify="right")
    table.add_column("Avg Cost → Price", justify="right")
    table.add_column("Cost Basis", style="yellow", justify="right")
    table.add_column("Market Value", style="green", justify="right")
    table.add_column("Gain/Loss %", justify="right")
    table.add_column("Open Lots", justify="right")

    total_cost = sum((c.cost_basis for c in held), Decimal("0"))
    total_value = sum((c.current_value for c in held), Decimal("0"))
    for calc in held:
        table.add_row(
            calc.asset_id,
            f"{calc.quantity:,f}",
            f"[yellow]${calc.average_cost:,.2f}[/yellow] → [green]${calc.current_price:,.2f}[/green]",
            f"${calc.cost_basis:,.2f}",
            f"${calc.current_value:,.2f}",
            format_gain(calc.unrealized_gain_percent),
            str(len(calc.open_lots)),
        )
    console.print(table)

    realized = [calc for calc in results.values() if calc.sales]
    if realized:
        realized_table = Table(title="Realized Gains")
        realized_table.add_column("Asset", style="cyan")
        realized_table.add_column("Short-Term", justify="right")
        realized_table.add_column("Long-Term", justify="right")
        for calc in realized:
            realized_table.add_row(
                calc.asset_id,
                f"${calc.realized_gain_for(HoldingPeriod.SHORT):,.2f}",
                f"${calc.realized_gain_for(HoldingPeriod.LONG):,.2f}",
            )
        console.print(realized_table)

    replay_warnings = [w for calc in results.values() for w in calc.warnings]
    if replay_warnings and not args.quiet_warnings:
        console.print(f"[yellow]{len(replay_warnings)} replay warning(s); see above for details.[/yellow]")

    console.print(
        Panel(
            f"[bold]Cost Basis: ${total_cost:,.2f}[/bold]\n"
            f"[bold green]Market Value: ${total_value:,.2f}[/bold green]",
            title="Summary",
        )
    )
    return 0

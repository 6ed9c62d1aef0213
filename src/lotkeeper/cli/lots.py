#!/usr/bin/env python3
"""Lots subcommand - Display tax lots for one asset."""

from datetime import date

from dotenv import load_dotenv

load_dotenv()

from ..config import Settings
from ..portfolio import recompute_holding
from ..tax.holding_period import HoldingPeriod, long_term_threshold_date
from ..tax.lots import detect_aging_lots, unrealized_gains_by_lot
from .holdings import add_common_arguments, build_portfolio
from rich.console import Console
from rich.table import Table


def register_subcommand(subparsers):
    """Register the lots subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "lots",
        help="Display tax lots for an asset",
        description="Show every tax lot of an asset with its holding period and long-term date.",
    )
    add_common_arguments(parser)
    parser.add_argument("asset", help="Asset identifier, e.g. AAPL")
    parser.set_defaults(func=run)


def run(args):
    """Print the lot table, then any lots about to turn long-term.

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

    today = date.today()
    calc = recompute_holding(portfolio, args.asset, today)
    if not calc.lots:
        console.print(f"[yellow]No lots for {args.asset}.[/yellow]")
        return 0

    price = calc.current_price
    gains = {g.lot_id: g for g in unrealized_gains_by_lot(calc.lots, price, today)}

    table = Table(title=f"Tax Lots for {args.asset} ({portfolio.lot_method.value.upper()})")
    table.add_column("Lot", style="cyan")
    table.add_column("Type")
    table.add_column("Acquired")
    table.add_column("Quantity", justify="right")
    table.add_column("Remaining", style="magenta", justify="right")
    table.add_column("Price", style="yellow", justify="right")
    table.add_column("Term")
    table.add_column("Long-Term On")
    table.add_column("Unrealized", justify="right")

    for lot in calc.lots:
        gain = gains.get(lot.id)
        if gain is None:
            term = "closed" if not lot.is_open else "pending"
            unrealized = ""
        else:
            term = "long" if gain.holding_period == HoldingPeriod.LONG else f"short ({gain.days_held}d)"
            color = "green" if gain.unrealized_gain >= 0 else "red"
            unrealized = f"[{color}]${gain.unrealized_gain:,.2f}[/{color}]"
        table.add_row(
            lot.id,
            lot.lot_type.value,
            lot.purchase_date.isoformat(),
            f"{lot.quantity:,f}",
            f"{lot.remaining_quantity:,f}",
            f"${lot.purchase_price:,.2f}",
            term,
            long_term_threshold_date(lot.purchase_date).isoformat(),
            unrealized,
        )
    console.print(table)

    aging = detect_aging_lots(calc.lots, price, today, settings.aging_lookback_days)
    for lot in aging:
        console.print(
            f"[yellow]{lot.lot_id} turns long-term in {lot.days_until_long_term} day(s) "
            f"(unrealized ${lot.unrealized_gain:,.2f})[/yellow]"
        )
    return 0

#!/usr/bin/env python3
"""History subcommand - Display reconstructed portfolio value over time."""

from dotenv import load_dotenv

load_dotenv()

from ..config import Settings
from ..history import Resolution, TimePeriod
from ..portfolio import get_historical_values
from .holdings import add_common_arguments, build_portfolio
from rich.console import Console
from rich.table import Table


def register_subcommand(subparsers):
    """Register the history subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "history",
        help="Display portfolio value over a period",
        description="Replay a transaction ledger day by day and value it with stored prices.",
    )
    add_common_arguments(parser)
    parser.add_argument(
        "--period",
        "-p",
        choices=[p.value for p in TimePeriod],
        default=TimePeriod.MONTH.value,
        help="Window ending today (default: month)",
    )
    parser.add_argument(
        "--resolution",
        "-r",
        choices=[r.value for r in Resolution],
        default=None,
        help="Sampling cadence (default: daily up to a quarter, weekly for a year, monthly for all)",
    )
    parser.set_defaults(func=run)


def run(args):
    """Print one row per sampled date; approximate values are marked with ``~``.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    console = Console()
    try:
        portfolio = build_portfolio(args, Settings.from_env())
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    period = TimePeriod(args.period)
    resolution = Resolution(args.resolution) if args.resolution else None
    points = get_historical_values(portfolio, period, resolution)

    if not points:
        console.print("[yellow]No transactions in this period.[/yellow]")
        return 0

    table = Table(title=f"Portfolio Value ({period.value})")
    table.add_column("Date", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("Notes")

    for point in points:
        marker = "~" if point.has_interpolated_prices else ""
        if point.change > 0:
            change = f"[green]+{point.change:,.2f}[/green]"
        elif point.change < 0:
            change = f"[red]{point.change:,.2f}[/red]"
        else:
            change = "0.00"
        notes = f"missing prices: {', '.join(point.degraded_assets)}" if point.is_degraded else ""
        table.add_row(point.date.isoformat(), f"{marker}${point.total_value:,.2f}", change, notes)

    console.print(table)
    if any(p.has_interpolated_prices for p in points):
        console.print("[dim]~ value uses prices from a nearby date or skips assets without prices[/dim]")
    return 0

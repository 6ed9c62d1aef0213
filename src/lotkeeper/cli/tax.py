#!/usr/bin/env python3
"""Tax subcommand - Estimate tax on unrealized gains and list harvestable losses."""

from datetime import date

from dotenv import load_dotenv

load_dotenv()

from ..config import Settings
from ..portfolio import current_price, recompute_portfolio_holdings
from ..tax.lots import estimate_tax_liability, find_tax_loss_harvesting
from ..transactions import to_decimal
from .holdings import add_common_arguments, build_portfolio
from rich.console import Console
from rich.table import Table
from rich.panel import Panel


def register_subcommand(subparsers):
    """Register the tax subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "tax",
        help="Estimate tax on unrealized gains",
        description=(
            "Split unrealized gains by holding period, apply the LOTKEEPER_*_RATE tax rates "
            "and list assets with losses worth harvesting."
        ),
    )
    add_common_arguments(parser)
    parser.add_argument(
        "--minimum-loss",
        default="100",
        help="Smallest unrealized loss worth harvesting (default: 100)",
    )
    parser.set_defaults(func=run)


def run(args):
    """Print the gain buckets, the tax estimate and any harvesting opportunities.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    console = Console()
    try:
        settings = Settings.from_env()
        minimum_loss = to_decimal(args.minimum_loss, "minimum loss")
        portfolio = build_portfolio(args, settings)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    today = date.today()
    holdings = [calc for calc in recompute_portfolio_holdings(portfolio, today).values() if calc.quantity > 0]
    prices = {}
    for calc in holdings:
        price = current_price(portfolio, calc.asset_id, today)
        if price is not None:
            prices[calc.asset_id] = price

    rates = settings.tax_rates
    analysis = estimate_tax_liability(holdings, prices, rates, today)

    table = Table(title=f"Unrealized Gains on {today.isoformat()}")
    table.add_column("Term", style="cyan")
    table.add_column("Gains", style="green", justify="right")
    table.add_column("Losses", style="red", justify="right")
    table.add_column("Rate", justify="right")
    table.add_column("Estimated Tax", style="yellow", justify="right")
    table.add_row(
        "Short-term",
        f"${analysis.short_term_gains:,.2f}",
        f"${analysis.short_term_losses:,.2f}",
        f"{rates.effective_short_term_rate * 100:.1f}%",
        f"${analysis.estimated_short_term_tax:,.2f}",
    )
    table.add_row(
        "Long-term",
        f"${analysis.long_term_gains:,.2f}",
        f"${analysis.long_term_losses:,.2f}",
        f"{rates.effective_long_term_rate * 100:.1f}%",
        f"${analysis.estimated_long_term_tax:,.2f}",
    )
    console.print(table)

    espp = [lot for lot in analysis.lots if lot.adjusted_cost_basis is not None]
    for lot in espp:
        console.print(
            f"[cyan]{lot.lot_id}[/cyan] ESPP adjusted cost basis ${lot.adjusted_cost_basis:,.2f} "
            f"(paid ${lot.cost_basis:,.2f})"
        )

    opportunities = find_tax_loss_harvesting(holdings, prices, minimum_loss, today)
    if opportunities:
        harvest = Table(title="Tax-Loss Harvesting")
        harvest.add_column("Asset", style="cyan")
        harvest.add_column("Short-Term Loss", justify="right")
        harvest.add_column("Long-Term Loss", justify="right")
        harvest.add_column("Lots")
        for opportunity in opportunities:
            harvest.add_row(
                opportunity.asset_id,
                f"[red]${opportunity.short_term_loss:,.2f}[/red]",
                f"[red]${opportunity.long_term_loss:,.2f}[/red]",
                ", ".join(opportunity.lot_ids),
            )
        console.print(harvest)

    if analysis.skipped_assets:
        console.print(f"[yellow]No price for {', '.join(analysis.skipped_assets)}; left out of the estimate.[/yellow]")

    console.print(
        Panel(
            f"[bold]Net Unrealized: ${analysis.net_unrealized_gain:,.2f}[/bold]\n"
            f"[bold yellow]Estimated Tax: ${analysis.total_estimated_tax:,.2f}[/bold yellow]",
            title="Summary",
        )
    )
    return 0

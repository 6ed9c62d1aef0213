#!/usr/bin/env python3
"""ESPP subcommand - Check whether an ESPP sale is a qualifying disposition."""

from ..tax.espp import check_disposition_status, tax_implication_message
from ..transactions import to_decimal
from rich.console import Console
from rich.panel import Panel


def register_subcommand(subparsers):
    """Register the espp subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "espp",
        help="Check an ESPP sale for disqualifying disposition",
        description="Compare a sell date against the 2-year-from-grant and 1-year-from-purchase rules.",
    )
    parser.add_argument("grant_date", help="Offering (grant) date, YYYY-MM-DD")
    parser.add_argument("purchase_date", help="Purchase date, YYYY-MM-DD")
    parser.add_argument("sell_date", help="Sell date, YYYY-MM-DD")
    parser.add_argument(
        "--bargain",
        default="0",
        help="Total bargain element in dollars, used in the tax message (default: 0)",
    )
    parser.set_defaults(func=run)


def run(args):
    """Print both thresholds and the tax implication message.

    Returns:
        int: Exit code (0 for success, 1 for invalid dates).
    """
    console = Console()
    try:
        check = check_disposition_status(args.grant_date, args.purchase_date, args.sell_date)
        bargain = to_decimal(args.bargain, "bargain element")
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    def mark(ok: bool) -> str:
        return "[green]met[/green]" if ok else "[red]not met[/red]"

    console.print(f"2 years from grant:    {check.two_years_from_grant.isoformat()}  {mark(check.meets_grant_requirement)}")
    console.print(f"1 year from purchase:  {check.one_year_from_purchase.isoformat()}  {mark(check.meets_purchase_requirement)}")

    style = "green" if check.is_qualifying else "red"
    console.print(Panel(tax_implication_message(check, bargain), title=check.reason.value, border_style=style))
    return 0

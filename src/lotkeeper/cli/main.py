#!/usr/bin/env python3
"""Main entry point for the lotkeeper CLI."""

import argparse
import sys


def main():
    """Parse CLI arguments and dispatch to the appropriate subcommand.

    Returns:
        int: Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="lotkeeper",
        description="lotkeeper - replay a transaction ledger into holdings, tax lots and value history",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  lotkeeper holdings ledger.xlsx                       Current holdings per asset
  lotkeeper history ledger.xlsx --period year          Weekly value over the last year
  lotkeeper lots ledger.json AAPL --method hifo        Tax lots for one asset
  lotkeeper tax ledger.xlsx --minimum-loss 250         Tax estimate and harvestable losses
  lotkeeper espp 2023-01-01 2023-07-01 2025-01-02      ESPP disposition check
        """,
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        help="Available commands",
    )

    # Import subcommand modules and register them
    from .holdings import register_subcommand as register_holdings
    from .history import register_subcommand as register_history
    from .lots import register_subcommand as register_lots
    from .tax import register_subcommand as register_tax
    from .espp import register_subcommand as register_espp
    from .version import register_subcommand as register_version

    register_holdings(subparsers)
    register_history(subparsers)
    register_lots(subparsers)
    register_tax(subparsers)
    register_espp(subparsers)
    register_version(subparsers)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

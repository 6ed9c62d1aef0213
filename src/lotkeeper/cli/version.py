"""Version subcommand for the lotkeeper CLI."""

from importlib.metadata import PackageNotFoundError, version


def register_subcommand(subparsers):
    """Register the version subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers object to register with.
    """
    parser = subparsers.add_parser(
        "version",
        help="Display lotkeeper version information",
        description="Display the installed lotkeeper version.",
    )
    parser.set_defaults(func=run)


def run(args):
    try:
        ver = version("lotkeeper")
    except PackageNotFoundError:
        ver = "unknown"

    print(f" Version: {ver}")
    return 0

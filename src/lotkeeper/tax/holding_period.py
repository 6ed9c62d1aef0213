"""
Holding period classification for tax lots.

IRS Publication 550: long-term treatment requires holding for MORE than one
year. Days are counted on the calendar, so a lot bought 2024-01-01 is still
short-term on 2024-12-31 (365 days) and long-term on 2025-01-01 (366 days).
"""

from datetime import date, timedelta
from enum import Enum
from typing import Any

from ..errors import InvalidDateRangeError
from ..transactions import parse_date

LONG_TERM_THRESHOLD_DAYS = 365


class HoldingPeriod(Enum):
    SHORT = "short"
    LONG = "long"


def _parse_pair(purchase_date: Any, reference_date: Any) -> tuple[date, date]:
    purchase = parse_date(purchase_date, "purchase date")
    reference = parse_date(reference_date, "reference date")
    return purchase, reference


def holding_days(purchase_date: Any, reference_date: Any) -> int:
    """Return the number of calendar days between purchase and reference date.

    Same-day returns 0. The result is negative when the reference date is
    before the purchase date; use ``classify_holding_period`` when that
    should be an error.

    Raises:
        InvalidDateError: If either date cannot be parsed.
    """
    purchase, reference = _parse_pair(purchase_date, reference_date)
    return (reference - purchase).days


def classify_holding_period(purchase_date: Any, reference_date: Any) -> HoldingPeriod:
    """Classify a lot as short-term or long-term on a reference date.

    Args:
        purchase_date: Date the lot was acquired.
        reference_date: Sell date for realized gains, or the valuation date
            for unrealized gains.

    Returns:
        ``HoldingPeriod.SHORT`` if held 365 days or fewer, else ``HoldingPeriod.LONG``.

    Raises:
        InvalidDateError: If either date cannot be parsed.
        InvalidDateRangeError: If the reference date is before the purchase date.
    """
    purchase, reference = _parse_pair(purchase_date, reference_date)
    if reference < purchase:
        raise InvalidDateRangeError(
            f"Reference date {reference} cannot be before purchase date {purchase}"
        )

    days = (reference - purchase).days
    return HoldingPeriod.LONG if days > LONG_TERM_THRESHOLD_DAYS else HoldingPeriod.SHORT


def long_term_threshold_date(purchase_date: Any) -> date:
    """Return the first date on which a lot bought on ``purchase_date`` is long-term.

    This is always ``purchase_date + 366 days``; a leap day inside the window
    moves the calendar date, not the day count.
    """
    purchase = parse_date(purchase_date, "purchase date")
    return purchase + timedelta(days=LONG_TERM_THRESHOLD_DAYS + 1)


def days_until_long_term(purchase_date: Any, reference_date: Any) -> int:
    """Days remaining until the lot turns long-term, or 0 if it already has."""
    threshold = long_term_threshold_date(purchase_date)
    reference = parse_date(reference_date, "reference date")
    return max((threshold - reference).days, 0)

"""
ESPP qualifying / disqualifying disposition checks.

IRS Section 423: a disposition is qualifying only when the shares were held
more than 2 years from the grant (offering) date AND more than 1 year from
the purchase date. Both thresholds use calendar-year addition, so a leap day
can move the threshold date itself.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from ..errors import InvalidGrantDateError, InvalidSellDateError
from ..transactions import parse_date


class DispositionReason(Enum):
    QUALIFYING = "qualifying"
    BOTH_REQUIREMENTS_NOT_MET = "both_requirements_not_met"
    SOLD_BEFORE_2YR_FROM_GRANT = "sold_before_2yr_from_grant"
    SOLD_BEFORE_1YR_FROM_PURCHASE = "sold_before_1yr_from_purchase"


def add_years(anchor: date, years: int) -> date:
    """Add calendar years, rolling February 29 back to February 28 when needed."""
    try:
        return anchor.replace(year=anchor.year + years)
    except ValueError:
        return anchor.replace(year=anchor.year + years, day=28)


@dataclass(frozen=True)
class DispositionCheck:
    """Full breakdown of an ESPP sale against both holding requirements."""

    grant_date: date
    purchase_date: date
    sell_date: date
    two_years_from_grant: date
    one_year_from_purchase: date
    meets_grant_requirement: bool
    meets_purchase_requirement: bool

    @property
    def is_qualifying(self) -> bool:
        return self.meets_grant_requirement and self.meets_purchase_requirement

    @property
    def reason(self) -> DispositionReason:
        if self.is_qualifying:
            return DispositionReason.QUALIFYING
        if not self.meets_grant_requirement and not self.meets_purchase_requirement:
            return DispositionReason.BOTH_REQUIREMENTS_NOT_MET
        if not self.meets_grant_requirement:
            return DispositionReason.SOLD_BEFORE_2YR_FROM_GRANT
        return DispositionReason.SOLD_BEFORE_1YR_FROM_PURCHASE


def check_disposition_status(grant_date: Any, purchase_date: Any, sell_date: Any) -> DispositionCheck:
    """
    Evaluate an ESPP sale against the grant and purchase holding requirements.

    Args:
        grant_date: ESPP offering date.
        purchase_date: ESPP exercise / purchase date.
        sell_date: Date the shares were sold.

    Returns:
        A DispositionCheck with both threshold dates and requirement flags.

    Raises:
        InvalidDateError: If any date cannot be parsed.
        InvalidGrantDateError: If the grant date is not before the purchase date.
        InvalidSellDateError: If the sell date is before the purchase date.

    Example:
        grant 2023-06-01, purchase 2023-12-01, sell 2024-12-15 gives
        two_years_from_grant=2025-06-01, one_year_from_purchase=2024-12-01,
        meets_grant_requirement=False, meets_purchase_requirement=True.
    """
    grant = parse_date(grant_date, "grant date")
    purchase = parse_date(purchase_date, "purchase date")
    sell = parse_date(sell_date, "sell date")

    if grant >= purchase:
        raise InvalidGrantDateError(
            f"Grant date {grant} must be before purchase date {purchase}"
        )
    if sell < purchase:
        raise InvalidSellDateError(
            f"Sell date {sell} cannot be before purchase date {purchase}"
        )

    two_years_from_grant = add_years(grant, 2)
    one_year_from_purchase = add_years(purchase, 1)

    return DispositionCheck(
        grant_date=grant,
        purchase_date=purchase,
        sell_date=sell,
        two_years_from_grant=two_years_from_grant,
        one_year_from_purchase=one_year_from_purchase,
        meets_grant_requirement=sell > two_years_from_grant,
        meets_purchase_requirement=sell > one_year_from_purchase,
    )


def is_disqualifying_disposition(grant_date: Any, purchase_date: Any, sell_date: Any) -> bool:
    """Return True when selling on ``sell_date`` is a disqualifying disposition.

    A same-day sale (sell date == purchase date) is always disqualifying.
    """
    return not check_disposition_status(grant_date, purchase_date, sell_date).is_qualifying


def bargain_element(purchase_price: Decimal, discount_percent: Decimal | None) -> Decimal | None:
    """Per-share bargain element of an ESPP purchase.

    The purchase price is the discounted market price, so the market value is
    ``price / (1 - discount)`` and the bargain element is the difference.

    Args:
        purchase_price: Discounted price actually paid per share.
        discount_percent: Discount as a fraction (0.15 for 15%).

    Returns:
        The bargain element per share, or None when no discount is recorded.
    """
    if discount_percent is None:
        return None
    if discount_percent < 0 or discount_percent >= 1:
        raise ValueError(f"ESPP discount must be in [0, 1): {discount_percent}")
    return purchase_price * discount_percent / (1 - discount_percent)


def tax_implication_message(check: DispositionCheck, bargain_element: Decimal) -> str:
    """Explain the tax treatment of an ESPP sale in plain language."""
    reason = check.reason

    if reason == DispositionReason.QUALIFYING:
        return (
            "Qualifying Disposition: Favorable tax treatment applies. The bargain element "
            "is taxed as long-term capital gains, not ordinary income."
        )

    bargain_amount = f"${bargain_element:,.2f}"
    sell = check.sell_date.isoformat()
    grant_threshold = check.two_years_from_grant.isoformat()
    purchase_threshold = check.one_year_from_purchase.isoformat()

    if reason == DispositionReason.BOTH_REQUIREMENTS_NOT_MET:
        specific = (
            f"This sale occurred on {sell}, which is before both the 2-year grant "
            f"requirement ({grant_threshold}) and the 1-year purchase requirement ({purchase_threshold})."
        )
    elif reason == DispositionReason.SOLD_BEFORE_2YR_FROM_GRANT:
        specific = f"This sale occurred on {sell}, which is before the 2-year grant requirement ({grant_threshold})."
    else:
        specific = f"This sale occurred on {sell}, which is before the 1-year purchase requirement ({purchase_threshold})."

    return (
        f"Disqualifying Disposition: The {bargain_amount} bargain element will be taxed as ordinary income. "
        f"You must hold shares for at least 2 years from grant date ({check.grant_date.isoformat()}) "
        f"and 1 year from purchase date ({check.purchase_date.isoformat()}). {specific}"
    )

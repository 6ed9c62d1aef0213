"""Tests for ESPP qualifying / disqualifying disposition checks."""

from datetime import date
from decimal import Decimal

import pytest

from lotkeeper.errors import (
    InvalidDateError,
    InvalidDateRangeError,
    InvalidGrantDateError,
    InvalidSellDateError,
)
from lotkeeper.tax import (
    DispositionReason,
    add_years,
    bargain_element,
    check_disposition_status,
    is_disqualifying_disposition,
    tax_implication_message,
)


@pytest.mark.parametrize("sell_date, expected", [
    ("2023-07-01", True),   # same-day sale
    ("2024-07-01", True),   # exactly 1 year from purchase
    ("2024-07-02", True),   # purchase rule met, grant rule not
    ("2024-12-31", True),
    ("2025-01-01", True),   # exactly 2 years from grant
    ("2025-01-02", False),
    ("2026-06-01", False),
])
def test_disqualifying_boundary(sell_date, expected):
    """Verify both anniversaries are still disqualifying and the day after qualifies."""
    assert is_disqualifying_disposition("2023-01-01", "2023-07-01", sell_date) is expected


def test_check_reports_thresholds_and_failed_requirement():
    """Verify the detailed check for a sale that fails only the grant rule."""
    check = check_disposition_status("2023-06-01", "2023-12-01", "2024-12-15")

    assert check.two_years_from_grant == date(2025, 6, 1)
    assert check.one_year_from_purchase == date(2024, 12, 1)
    assert check.meets_grant_requirement is False
    assert check.meets_purchase_requirement is True
    assert check.is_qualifying is False
    assert check.reason == DispositionReason.SOLD_BEFORE_2YR_FROM_GRANT


def test_reasons():
    """Verify each reason code is reachable."""
    assert check_disposition_status("2023-01-01", "2023-07-01", "2023-08-01").reason == DispositionReason.BOTH_REQUIREMENTS_NOT_MET
    assert check_disposition_status("2022-01-01", "2024-01-01", "2024-06-01").reason == DispositionReason.SOLD_BEFORE_1YR_FROM_PURCHASE
    assert check_disposition_status("2022-01-01", "2022-06-01", "2024-06-01").reason == DispositionReason.QUALIFYING


def test_leap_day_anchors_roll_back_to_february_28():
    """Verify calendar-year addition from February 29."""
    assert add_years(date(2024, 2, 29), 1) == date(2025, 2, 28)
    assert add_years(date(2024, 2, 29), 4) == date(2028, 2, 29)

    check = check_disposition_status("2023-06-01", "2024-02-29", "2025-03-01")
    assert check.one_year_from_purchase == date(2025, 2, 28)
    assert check.meets_purchase_requirement is True


def test_grant_must_precede_purchase():
    """Verify grant on or after purchase raises InvalidGrantDateError."""
    with pytest.raises(InvalidGrantDateError):
        check_disposition_status("2023-07-01", "2023-07-01", "2025-01-01")
    with pytest.raises(InvalidGrantDateError):
        check_disposition_status("2023-08-01", "2023-07-01", "2025-01-01")


def test_sell_before_purchase_is_rejected():
    """Verify selling before purchase raises InvalidSellDateError, a date range error."""
    with pytest.raises(InvalidSellDateError):
        is_disqualifying_disposition("2023-01-01", "2023-07-01", "2023-06-30")
    with pytest.raises(InvalidDateRangeError):
        is_disqualifying_disposition("2023-01-01", "2023-07-01", "2023-06-30")


def test_invalid_dates_are_rejected():
    """Verify unparseable dates raise InvalidDateError."""
    with pytest.raises(InvalidDateError):
        check_disposition_status("2023-01-01", "bad", "2025-01-01")


def test_bargain_element():
    """Verify bargain element is market value minus the discounted price."""
    assert bargain_element(Decimal("85"), Decimal("0.15")) == Decimal("15")
    assert bargain_element(Decimal("85"), None) is None
    with pytest.raises(ValueError):
        bargain_element(Decimal("85"), Decimal("1"))


def test_disqualifying_message_mentions_amount_and_thresholds():
    """Verify the disqualifying message formats dollars and both threshold dates."""
    check = check_disposition_status("2023-01-01", "2023-07-01", "2023-08-01")
    message = tax_implication_message(check, Decimal("1234.5"))

    assert message.startswith("Disqualifying Disposition: The $1,234.50 bargain element")
    assert "before both the 2-year grant requirement (2025-01-01)" in message
    assert "1-year purchase requirement (2024-07-01)" in message


def test_grant_only_message():
    """Verify the message for a sale that only misses the grant rule."""
    check = check_disposition_status("2023-06-01", "2023-12-01", "2024-12-15")
    message = tax_implication_message(check, Decimal("10"))

    assert "$10.00" in message
    assert "before the 2-year grant requirement (2025-06-01)" in message


def test_qualifying_message():
    """Verify qualifying sales mention long-term capital gains."""
    check = check_disposition_status("2022-01-01", "2022-06-01", "2024-06-01")
    message = tax_implication_message(check, Decimal("10"))

    assert message.startswith("Qualifying Disposition")
    assert "long-term capital gains" in message

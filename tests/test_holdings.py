"""Tests for replaying a ledger into a holding."""

from decimal import Decimal

import pytest

from lotkeeper.errors import ReplayWarning
from lotkeeper.holdings import compute_holding, compute_holdings
from lotkeeper.tax import HoldingPeriod, LotMatchingMethod
from lotkeeper.transactions import Transaction


def txn(id, type, on, quantity, price="0", asset="AAPL", **kwargs):
    return Transaction.create(id, asset, type, on, quantity, price, **kwargs)


def test_buys_only_conserve_quantity_and_cost():
    """Verify quantity and cost basis are exact sums of the buys."""
    ledger = [
        txn("b1", "buy", "2024-01-02", "10", "100.10"),
        txn("b2", "buy", "2024-02-02", "0.5", "120.333"),
        txn("b3", "transfer_in", "2024-03-02", "3", "99", total_amount="297.01"),
    ]
    calc = compute_holding(ledger)

    assert calc.quantity == Decimal("13.5")
    assert calc.cost_basis == Decimal("1001.00") + Decimal("60.1665") + Decimal("297.01")
    assert calc.average_cost == calc.cost_basis / calc.quantity


def test_full_sell_drives_everything_to_zero():
    """Verify selling the whole position leaves exactly zero quantity and cost."""
    ledger = [
        txn("b1", "buy", "2024-01-02", "3", "33.33"),
        txn("b2", "buy", "2024-01-03", "7", "10.01"),
        txn("s1", "sell", "2024-02-01", "10", "50"),
    ]
    calc = compute_holding(ledger)

    assert calc.quantity == Decimal("0")
    assert calc.cost_basis == Decimal("0")
    assert calc.average_cost == Decimal("0")
    assert calc.open_lots == []


def test_partial_sell_reduces_cost_proportionally():
    """Verify a 40% sale removes 40% of the cost basis."""
    ledger = [
        txn("b1", "buy", "2024-01-02", "10", "100"),
        txn("s1", "sell", "2024-02-01", "4", "150"),
    ]
    calc = compute_holding(ledger)

    assert calc.quantity == Decimal("6")
    assert calc.cost_basis == Decimal("600")
    assert calc.average_cost == Decimal("100")


def test_oversell_is_clamped_and_warned():
    """Verify selling more than held clamps to the held quantity with a warning."""
    ledger = [
        txn("b1", "buy", "2024-01-02", "10", "100"),
        txn("s1", "sell", "2024-02-01", "15", "150"),
    ]
    with pytest.warns(ReplayWarning, match="clamping"):
        calc = compute_holding(ledger)

    assert calc.quantity == Decimal("0")
    assert calc.cost_basis == Decimal("0")
    assert len(calc.warnings) == 1
    assert sum(s.quantity for s in calc.sales) == Decimal("10")


def test_sell_with_nothing_held_is_ignored():
    """Verify a sell before any buy never goes negative."""
    ledger = [
        txn("s1", "transfer_out", "2024-01-01", "5", "10"),
        txn("b1", "buy", "2024-01-02", "10", "100"),
    ]
    with pytest.warns(ReplayWarning, match="nothing is held"):
        calc = compute_holding(ledger)

    assert calc.quantity == Decimal("10")
    assert calc.cost_basis == Decimal("1000")


def test_same_day_order_follows_sequence():
    """Verify same-day transactions replay by sequence, not by list position."""
    buy = txn("b1", "buy", "2024-01-02", "10", "100", sequence=2)
    sell = txn("s1", "sell", "2024-01-02", "10", "100", sequence=1)

    with pytest.warns(ReplayWarning):
        calc = compute_holding([buy, sell])

    assert calc.quantity == Decimal("10")


def test_fee_and_tax_reduce_cost_basis_with_floor():
    """Verify fees lower cost basis but never below zero, and leave quantity alone."""
    ledger = [
        txn("b1", "buy", "2024-01-02", "1", "10"),
        txn("f1", "fee", "2024-01-03", "0", total_amount="4"),
    ]
    assert compute_holding(ledger).cost_basis == Decimal("6")

    ledger.append(txn("x1", "tax", "2024-01-04", "0", total_amount="50"))
    calc = compute_holding(ledger)
    assert calc.cost_basis == Decimal("0")
    assert calc.quantity == Decimal("1")


def test_split_multiplies_quantity_and_keeps_cost():
    """Verify a 2-for-1 split doubles quantity, halves average cost and rescales lots."""
    ledger = [
        txn("b1", "buy", "2024-01-02", "10", "100"),
        txn("sp", "split", "2024-06-01", "2"),
    ]
    calc = compute_holding(ledger)

    assert calc.quantity == Decimal("20")
    assert calc.cost_basis == Decimal("1000")
    assert calc.average_cost == Decimal("50")
    assert calc.lots[0].quantity == Decimal("20")
    assert calc.lots[0].purchase_price == Decimal("50")


def test_non_positive_split_is_ignored():
    """Verify a zero split ratio warns instead of wiping the position."""
    ledger = [
        txn("b1", "buy", "2024-01-02", "10", "100"),
        txn("sp", "split", "2024-06-01", "0"),
    ]
    with pytest.warns(ReplayWarning, match="split"):
        calc = compute_holding(ledger)

    assert calc.quantity == Decimal("10")


def test_passive_types_change_nothing():
    """Verify dividends, interest, spinoffs and mergers leave quantity and cost alone."""
    ledger = [
        txn("b1", "buy", "2024-01-02", "10", "100"),
        txn("d1", "dividend", "2024-03-01", "0", total_amount="12.50"),
        txn("i1", "interest", "2024-03-02", "0", total_amount="1"),
        txn("so", "spinoff", "2024-04-01", "3", "5"),
        txn("m1", "merger", "2024-05-01", "10", "7"),
    ]
    calc = compute_holding(ledger)

    assert calc.quantity == Decimal("10")
    assert calc.cost_basis == Decimal("1000")


def test_lot_quantities_match_holding_quantity():
    """Verify quantity equals the sum of remaining lot quantities after a mixed history."""
    ledger = [
        txn("b1", "buy", "2023-01-02", "10", "100"),
        txn("r1", "reinvestment", "2023-03-15", "0.25", "104"),
        txn("e1", "espp_purchase", "2023-06-30", "5", "85", grant_date="2023-01-01", discount_percent="0.15"),
        txn("s1", "sell", "2023-09-01", "7", "120"),
        txn("sp", "split", "2024-01-10", "3"),
        txn("v1", "rsu_vest", "2024-03-15", "4", "40"),
        txn("s2", "transfer_out", "2024-04-01", "10", "0"),
    ]
    calc = compute_holding(ledger)

    assert calc.quantity == sum(lot.remaining_quantity for lot in calc.lots)
    assert calc.quantity == (Decimal("15.25") - 7) * 3 + 4 - 10


def test_replay_is_idempotent():
    """Verify replaying the same ledger twice gives identical results."""
    ledger = [
        txn("b1", "buy", "2023-01-02", "10", "100"),
        txn("b2", "buy", "2023-05-02", "3", "110"),
        txn("s1", "sell", "2024-02-01", "4", "150"),
    ]
    first = compute_holding(ledger, Decimal("130"))
    second = compute_holding(list(reversed(ledger)), Decimal("130"))

    assert first == second


def test_valuation_with_current_price():
    """Verify value, gain and gain percent at a supplied price."""
    calc = compute_holding([txn("b1", "buy", "2024-01-02", "10", "100")], Decimal("120"))

    assert calc.current_value == Decimal("1200")
    assert calc.unrealized_gain == Decimal("200")
    assert calc.unrealized_gain_percent == Decimal("20")


def test_valuation_without_price_uses_average_cost():
    """Verify the placeholder price yields zero unrealized gain."""
    calc = compute_holding([txn("b1", "buy", "2024-01-02", "10", "100")])

    assert calc.current_price == Decimal("100")
    assert calc.unrealized_gain == Decimal("0")
    assert calc.unrealized_gain_percent == Decimal("0")


def test_realized_gains_split_by_holding_period():
    """Verify FIFO sales record short and long-term realized gains."""
    ledger = [
        txn("b1", "buy", "2023-01-02", "10", "100"),
        txn("b2", "buy", "2024-01-02", "10", "150"),
        txn("s1", "sell", "2024-06-01", "15", "200"),
    ]
    calc = compute_holding(ledger)

    assert calc.realized_gain_for(HoldingPeriod.LONG) == Decimal("1000")
    assert calc.realized_gain_for(HoldingPeriod.SHORT) == Decimal("250")
    assert calc.realized_gain == Decimal("1250")


def test_specific_lot_method_uses_sell_lot_id():
    """Verify SPECIFIC matching follows the sell's tax lot id."""
    ledger = [
        txn("b1", "buy", "2023-01-02", "10", "100"),
        txn("b2", "buy", "2024-01-02", "10", "150"),
        txn("s1", "sell", "2024-06-01", "5", "200", tax_lot_id="lot-b2"),
    ]
    calc = compute_holding(ledger, lot_method=LotMatchingMethod.SPECIFIC)

    assert [s.lot_id for s in calc.sales] == ["lot-b2"]
    assert calc.lots[1].remaining_quantity == Decimal("5")


def test_mixed_assets_are_rejected():
    """Verify compute_holding refuses a ledger spanning two assets."""
    with pytest.raises(ValueError, match="single asset"):
        compute_holding([
            txn("b1", "buy", "2024-01-02", "1", "1", asset="AAPL"),
            txn("b2", "buy", "2024-01-02", "1", "1", asset="MSFT"),
        ])


def test_empty_ledger():
    """Verify an empty ledger gives an empty holding for the named asset."""
    calc = compute_holding([], asset_id="AAPL")

    assert calc.asset_id == "AAPL"
    assert calc.quantity == Decimal("0")
    assert calc.lots == []


def test_compute_holdings_groups_by_asset():
    """Verify a mixed ledger yields one holding per asset with its own price."""
    results = compute_holdings(
        [
            txn("b1", "buy", "2024-01-02", "2", "10", asset="AAPL"),
            txn("b2", "buy", "2024-01-02", "3", "20", asset="MSFT"),
        ],
        prices={"MSFT": Decimal("25")},
    )

    assert set(results) == {"AAPL", "MSFT"}
    assert results["AAPL"].current_value == Decimal("20")
    assert results["MSFT"].unrealized_gain == Decimal("15")

"""Tests for tax lot creation, sale matching and lot analytics."""

from datetime import date
from decimal import Decimal

import pytest

from lotkeeper.errors import InvalidTaxRateError, PriceDataWarning
from lotkeeper.holdings import compute_holdings
from lotkeeper.tax import (
    HoldingPeriod,
    LotMatchingMethod,
    LotType,
    TaxLot,
    TaxRates,
    allocate_sale,
    apply_split,
    create_lot,
    detect_aging_lots,
    estimate_tax_liability,
    find_tax_loss_harvesting,
    unrealized_gains_by_lot,
)
from lotkeeper.transactions import Transaction


def make_lots() -> list[TaxLot]:
    return [
        TaxLot("lot-a", "AAPL", Decimal("10"), Decimal("100"), date(2023, 1, 1)),
        TaxLot("lot-b", "AAPL", Decimal("10"), Decimal("150"), date(2024, 1, 1)),
        TaxLot("lot-c", "AAPL", Decimal("10"), Decimal("120"), date(2024, 3, 1)),
    ]


def test_create_lot_from_buy():
    """Verify a buy opens a standard lot with a deterministic id."""
    txn = Transaction.create("t1", "AAPL", "buy", "2024-01-15", "10", "150")
    lot = create_lot(txn)

    assert lot.id == "lot-t1"
    assert lot.lot_type == LotType.STANDARD
    assert lot.remaining_quantity == Decimal("10")
    assert lot.purchase_price == Decimal("150")
    assert lot.purchase_date == date(2024, 1, 15)


def test_create_espp_and_rsu_lots():
    """Verify ESPP and RSU lots carry their type-specific fields."""
    espp = create_lot(Transaction.create(
        "e1", "ACME", "espp_purchase", "2024-06-30", "10", "85",
        grant_date="2024-01-01", discount_percent="0.15",
    ))
    rsu = create_lot(Transaction.create("r1", "ACME", "rsu_vest", "2024-03-15", "5", "110"))

    assert espp.lot_type == LotType.ESPP
    assert espp.grant_date == date(2024, 1, 1)
    assert espp.bargain_element == Decimal("15")
    assert rsu.lot_type == LotType.RSU
    assert rsu.vesting_date == date(2024, 3, 15)
    assert rsu.vesting_price == Decimal("110")


def test_create_lot_rejects_disposals():
    """Verify only acquisitions open lots."""
    with pytest.raises(ValueError):
        create_lot(Transaction.create("s1", "AAPL", "sell", "2024-01-15", "10", "150"))


def test_fifo_consumes_oldest_first():
    """Verify FIFO allocation, per-lot cost and holding period."""
    lots = make_lots()
    allocations = allocate_sale(lots, Decimal("15"), Decimal("200"), date(2024, 6, 1))

    assert [(a.lot_id, a.quantity) for a in allocations] == [("lot-a", Decimal("10")), ("lot-b", Decimal("5"))]
    assert allocations[0].cost_basis == Decimal("1000")
    assert allocations[0].proceeds == Decimal("2000")
    assert allocations[0].realized_gain == Decimal("1000")
    assert allocations[0].holding_period == HoldingPeriod.LONG
    assert allocations[1].holding_period == HoldingPeriod.SHORT
    assert lots[0].remaining_quantity == Decimal("0")
    assert lots[1].remaining_quantity == Decimal("5")
    assert lots[1].sold_quantity == Decimal("5")


def test_lifo_consumes_newest_first():
    """Verify LIFO starts with the most recent lot."""
    lots = make_lots()
    allocations = allocate_sale(lots, Decimal("12"), Decimal("200"), date(2024, 6, 1), LotMatchingMethod.LIFO)

    assert [(a.lot_id, a.quantity) for a in allocations] == [("lot-c", Decimal("10")), ("lot-b", Decimal("2"))]


def test_hifo_consumes_highest_price_first():
    """Verify HIFO orders by purchase price."""
    lots = make_lots()
    allocations = allocate_sale(lots, Decimal("12"), Decimal("200"), date(2024, 6, 1), LotMatchingMethod.HIFO)

    assert [(a.lot_id, a.quantity) for a in allocations] == [("lot-b", Decimal("10")), ("lot-c", Decimal("2"))]


def test_specific_lot_then_fifo_remainder():
    """Verify a named lot is used first and any remainder falls back to FIFO."""
    lots = make_lots()
    allocations = allocate_sale(
        lots, Decimal("12"), Decimal("200"), date(2024, 6, 1), LotMatchingMethod.SPECIFIC, "lot-c",
    )

    assert [(a.lot_id, a.quantity) for a in allocations] == [("lot-c", Decimal("10")), ("lot-a", Decimal("2"))]


def test_specific_unknown_lot_falls_back_to_fifo():
    """Verify an unknown lot id behaves like FIFO."""
    lots = make_lots()
    allocations = allocate_sale(
        lots, Decimal("3"), Decimal("200"), date(2024, 6, 1), LotMatchingMethod.SPECIFIC, "lot-zzz",
    )

    assert [a.lot_id for a in allocations] == ["lot-a"]


def test_closed_lots_are_skipped():
    """Verify a second sale starts where the first left off."""
    lots = make_lots()
    allocate_sale(lots, Decimal("10"), Decimal("200"), date(2024, 6, 1))
    allocations = allocate_sale(lots, Decimal("1"), Decimal("200"), date(2024, 6, 2))

    assert [a.lot_id for a in allocations] == ["lot-b"]


def test_split_scales_quantity_and_price():
    """Verify a 2-for-1 split doubles quantities, halves price and keeps lot cost."""
    lots = make_lots()
    allocate_sale(lots, Decimal("4"), Decimal("200"), date(2024, 6, 1))
    apply_split(lots, Decimal("2"))

    assert lots[0].quantity == Decimal("20")
    assert lots[0].sold_quantity == Decimal("8")
    assert lots[0].remaining_quantity == Decimal("12")
    assert lots[0].purchase_price == Decimal("50")
    assert lots[1].remaining_cost_basis == Decimal("1500")


def test_unrealized_gains_by_lot():
    """Verify open lots are valued and classified, closed lots omitted."""
    lots = make_lots()
    allocate_sale(lots, Decimal("10"), Decimal("200"), date(2024, 6, 1))
    gains = unrealized_gains_by_lot(lots, Decimal("130"), date(2024, 6, 1))

    assert [g.lot_id for g in gains] == ["lot-b", "lot-c"]
    assert gains[0].unrealized_gain == Decimal("-200")
    assert gains[1].unrealized_gain == Decimal("100")
    assert gains[1].unrealized_gain_percent == Decimal("100") / Decimal("1200") * 100
    assert gains[0].holding_period == HoldingPeriod.SHORT
    assert gains[0].days_held == 152


def test_detect_aging_lots():
    """Verify only short-term lots crossing within the window are reported, soonest first."""
    lots = [
        TaxLot("old", "AAPL", Decimal("1"), Decimal("100"), date(2023, 1, 1)),
        TaxLot("soon", "AAPL", Decimal("2"), Decimal("100"), date(2024, 1, 1)),
        TaxLot("sooner", "AAPL", Decimal("1"), Decimal("90"), date(2023, 12, 20)),
        TaxLot("later", "AAPL", Decimal("1"), Decimal("100"), date(2024, 6, 1)),
    ]
    aging = detect_aging_lots(lots, Decimal("110"), date(2024, 12, 15))

    assert [a.lot_id for a in aging] == ["sooner", "soon"]
    assert aging[1].days_until_long_term == 17
    assert aging[1].unrealized_gain == Decimal("20")
    assert detect_aging_lots(lots, Decimal("110"), date(2024, 12, 15), lookback_days=4) == []


def test_lots_acquired_after_valuation_date_are_left_out():
    """Verify a lot bought after the valuation date is neither valued nor reported as aging."""
    lots = [
        TaxLot("held", "AAPL", Decimal("1"), Decimal("100"), date(2024, 5, 20)),
        TaxLot("future", "AAPL", Decimal("1"), Decimal("100"), date(2024, 6, 2)),
    ]

    gains = unrealized_gains_by_lot(lots, Decimal("110"), date(2024, 6, 1))

    assert [g.lot_id for g in gains] == ["held"]
    aging = detect_aging_lots(lots, Decimal("110"), date(2024, 6, 1), lookback_days=400)
    assert [a.lot_id for a in aging] == ["held"]


def test_espp_lot_gain_carries_adjusted_cost_basis():
    """Verify ESPP lots add the bargain element to their cost basis; other lots have none."""
    espp = create_lot(Transaction.create(
        "e1", "ACME", "espp_purchase", "2024-01-31", "10", "85",
        grant_date="2023-08-01", discount_percent="0.15",
    ))
    standard = create_lot(Transaction.create("b1", "ACME", "buy", "2024-01-31", "10", "85"))

    espp_gain, standard_gain = unrealized_gains_by_lot([espp, standard], Decimal("100"), date(2024, 6, 1))

    assert espp_gain.lot_type == LotType.ESPP
    assert espp_gain.cost_basis == Decimal("850")
    assert espp_gain.adjusted_cost_basis == Decimal("1000")
    assert espp_gain.unrealized_gain == Decimal("150")
    assert standard_gain.adjusted_cost_basis is None


def make_holdings():
    ledger = [
        Transaction.create("b1", "AAPL", "buy", "2023-01-03", "10", "100"),
        Transaction.create("b2", "AAPL", "buy", "2024-03-01", "5", "200"),
        Transaction.create(
            "e1", "ACME", "espp_purchase", "2024-01-31", "10", "85",
            grant_date="2023-08-01", discount_percent="0.15",
        ),
        Transaction.create("t1", "TSLA", "buy", "2022-01-03", "2", "400"),
    ]
    return list(compute_holdings(ledger).values())


PRICES = {"AAPL": Decimal("150"), "ACME": Decimal("100"), "TSLA": Decimal("250")}


def test_estimate_tax_liability_buckets_and_rates():
    """Verify gains and losses land in term buckets and only gains are taxed, state rate included."""
    rates = TaxRates(Decimal("0.24"), Decimal("0.15"), Decimal("0.05"))

    analysis = estimate_tax_liability(make_holdings(), PRICES, rates, as_of=date(2024, 6, 1))

    assert analysis.short_term_gains == Decimal("150")
    assert analysis.long_term_gains == Decimal("500")
    assert analysis.short_term_losses == Decimal("250")
    assert analysis.long_term_losses == Decimal("300")
    assert analysis.net_unrealized_gain == Decimal("100")
    assert analysis.estimated_short_term_tax == Decimal("43.50")
    assert analysis.estimated_long_term_tax == Decimal("100.00")
    assert analysis.total_estimated_tax == Decimal("143.50")
    assert sorted(lot.lot_id for lot in analysis.lots) == ["lot-b1", "lot-b2", "lot-e1", "lot-t1"]
    assert analysis.skipped_assets == ()


def test_estimate_tax_liability_rounds_to_cents():
    """Verify estimated tax is rounded half up to the cent."""
    holdings = list(compute_holdings([
        Transaction.create("b1", "AAPL", "buy", "2024-05-01", "1", "100"),
    ]).values())

    analysis = estimate_tax_liability(
        holdings, {"AAPL": Decimal("100.125")}, TaxRates(Decimal("0.2"), Decimal("0.15")), date(2024, 6, 1),
    )

    assert analysis.short_term_gains == Decimal("0.125")
    assert analysis.estimated_short_term_tax == Decimal("0.03")


def test_estimate_tax_liability_skips_unpriced_assets():
    """Verify a holding without a price warns and is listed as skipped."""
    holdings = make_holdings() + list(compute_holdings([
        Transaction.create("m1", "MSFT", "buy", "2024-01-02", "1", "10"),
    ]).values())

    with pytest.warns(PriceDataWarning, match="MSFT"):
        analysis = estimate_tax_liability(holdings, PRICES, as_of=date(2024, 6, 1))

    assert analysis.skipped_assets == ("MSFT",)
    assert "lot-m1" not in [lot.lot_id for lot in analysis.lots]


def test_tax_rates_must_be_fractions():
    """Verify rates outside 0 to 1 are rejected."""
    with pytest.raises(InvalidTaxRateError, match="short_term_rate"):
        TaxRates(short_term_rate=Decimal("24"))
    with pytest.raises(ValueError, match="state_rate"):
        TaxRates(state_rate=Decimal("-0.01"))


def test_find_tax_loss_harvesting_orders_by_loss():
    """Verify assets with enough loss are reported largest first, with their losing lots."""
    opportunities = find_tax_loss_harvesting(make_holdings(), PRICES, Decimal("100"), as_of=date(2024, 6, 1))

    assert [o.asset_id for o in opportunities] == ["TSLA", "AAPL"]
    assert opportunities[0].long_term_loss == Decimal("300")
    assert opportunities[0].short_term_loss == Decimal("0")
    assert opportunities[1].short_term_loss == Decimal("250")
    assert opportunities[1].unrealized_loss == Decimal("250")
    assert opportunities[1].lot_ids == ("lot-b2",)


def test_find_tax_loss_harvesting_minimum_loss():
    """Verify losses below the threshold are not reported and the threshold is inclusive."""
    holdings = make_holdings()

    assert [o.asset_id for o in find_tax_loss_harvesting(holdings, PRICES, Decimal("260"), date(2024, 6, 1))] == ["TSLA"]
    assert [o.asset_id for o in find_tax_loss_harvesting(holdings, PRICES, Decimal("300"), date(2024, 6, 1))] == ["TSLA"]
    assert find_tax_loss_harvesting(holdings, PRICES, Decimal("300.01"), date(2024, 6, 1)) == []

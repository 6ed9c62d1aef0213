"""
Point-in-time and time-series portfolio valuation.

Each sampled date is valued by replaying every transaction dated on or before
it and pricing the resulting quantities. A failed price lookup removes that
asset from that date's total and flags the point as degraded; it never stops
the series.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable
import warnings

from .errors import PriceDataWarning
from .holdings import ZERO, AssetReplay
from .pricingdata import PriceCache, PricingDataManager
from .transactions import Transaction, sort_transactions


class TimePeriod(Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    ALL = "all"


class Resolution(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# Days before today at which each fixed window starts.
PERIOD_DAYS = {
    TimePeriod.TODAY: 0,
    TimePeriod.WEEK: 7,
    TimePeriod.MONTH: 30,
    TimePeriod.QUARTER: 90,
    TimePeriod.YEAR: 365,
}


def default_resolution(period: TimePeriod) -> Resolution:
    """Daily for short windows, weekly for a year, monthly for all-time."""
    if period == TimePeriod.ALL:
        return Resolution.MONTHLY
    if period == TimePeriod.YEAR:
        return Resolution.WEEKLY
    return Resolution.DAILY


def period_start(period: TimePeriod, today: date, earliest: date) -> date:
    """Return the first date of ``period`` ending on ``today``.

    For ``TimePeriod.ALL`` this is ``earliest``, the first transaction date.
    """
    if period == TimePeriod.ALL:
        return earliest
    return today - timedelta(days=PERIOD_DAYS[period])


def _first_of_next_month(d: date) -> date:
    if d.month == 12:
        return date(d.year + 1, 1, 1)
    return date(d.year, d.month + 1, 1)


def sample_dates(start: date, end: date, resolution: Resolution) -> list[date]:
    """
    Enumerate the dates to value between ``start`` and ``end`` inclusive.

    Daily samples every day. Weekly samples ``start`` and every 7 days after.
    Monthly samples ``start`` and then the first of each following month.
    ``end`` is always the final sample.

    Example:
        sample_dates(2024-01-15, 2024-03-10, MONTHLY)
        -> [2024-01-15, 2024-02-01, 2024-03-01, 2024-03-10]
    """
    if start > end:
        return []

    dates: list[date] = []
    current = start
    while current < end:
        dates.append(current)
        if resolution == Resolution.DAILY:
            current += timedelta(days=1)
        elif resolution == Resolution.WEEKLY:
            current += timedelta(days=7)
        else:
            current = _first_of_next_month(current)
    dates.append(end)
    return dates


@dataclass(frozen=True)
class HistoricalValuePoint:
    """Portfolio value on one sampled date."""

    date: date
    total_value: Decimal
    change: Decimal
    has_interpolated_prices: bool
    degraded_assets: tuple[str, ...] = ()

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded_assets)


class HoldingsTimeline:
    """Quantities per asset, advanced forward through a sorted ledger.

    Dates passed to ``advance_to`` must not decrease; each transaction is
    replayed exactly once across the whole run.
    """

    def __init__(self, transactions: Iterable[Transaction]):
        self._ordered = sort_transactions(transactions)
        self._position = 0
        self._replays: dict[str, AssetReplay] = {}

    @property
    def earliest(self) -> date | None:
        return self._ordered[0].date if self._ordered else None

    def advance_to(self, on_date: date) -> dict[str, Decimal]:
        while self._position < len(self._ordered) and self._ordered[self._position].date <= on_date:
            txn = self._ordered[self._position]
            replay = self._replays.get(txn.asset_id)
            if replay is None:
                replay = AssetReplay(txn.asset_id, track_lots=False)
                self._replays[txn.asset_id] = replay
            replay.apply(txn)
            self._position += 1

        return {asset: r.quantity for asset, r in self._replays.items() if r.quantity > 0}


def value_quantities(
    quantities: dict[str, Decimal],
    on_date: date,
    pricing_manager: PricingDataManager,
) -> tuple[Decimal, bool, tuple[str, ...]]:
    """
    Price a set of holdings on a date.

    Returns:
        ``(total_value, has_interpolated_prices, degraded_assets)``. An asset
        whose lookup fails adds nothing to the total and is listed in
        ``degraded_assets``; that also counts as interpolated.
    """
    total = ZERO
    interpolated = False
    degraded: list[str] = []

    for asset_id, quantity in quantities.items():
        try:
            point = pricing_manager.get_price_point(asset_id, on_date)
        except Exception as e:
            warnings.warn(
                f"Skipping {asset_id} on {on_date}: price lookup failed ({e})",
                PriceDataWarning,
                stacklevel=2,
            )
            degraded.append(asset_id)
            interpolated = True
            continue

        total += quantity * point.price
        if point.is_interpolated:
            interpolated = True

    return total, interpolated, tuple(degraded)


def get_historical_values(
    transactions: Iterable[Transaction],
    period: TimePeriod,
    pricing_manager: PricingDataManager,
    resolution: Resolution | None = None,
    today: date | None = None,
) -> list[HistoricalValuePoint]:
    """
    Reconstruct portfolio value over a period.

    Args:
        transactions: The whole portfolio ledger, any asset, any order.
        period: Window ending today.
        pricing_manager: Price source. Lookups are cached for this call only.
        resolution: Sampling cadence; defaults per period.
        today: Last date of the window. Defaults to ``date.today()``.

    Returns:
        One point per sampled date on or after the earliest transaction,
        ascending. Empty when there are no transactions.
    """
    timeline = HoldingsTimeline(transactions)
    earliest = timeline.earliest
    if earliest is None:
        return []

    end = today or date.today()
    start = period_start(period, end, earliest)
    resolution = resolution or default_resolution(period)
    prices = PriceCache(pricing_manager)

    points: list[HistoricalValuePoint] = []
    previous: Decimal | None = None
    for sample in sample_dates(start, end, resolution):
        if sample < earliest:
            continue

        quantities = timeline.advance_to(sample)
        total, interpolated, degraded = value_quantities(quantities, sample, prices)

        points.append(HistoricalValuePoint(
            date=sample,
            total_value=total,
            change=ZERO if previous is None else total - previous,
            has_interpolated_prices=interpolated,
            degraded_assets=degraded,
        ))
        previous = total

    return points


def get_value_at_date(
    transactions: Iterable[Transaction],
    on_date: date,
    pricing_manager: PricingDataManager,
) -> Decimal | None:
    """Value the portfolio on a single date.

    Returns None only when there are no transactions at all; a date before
    the first transaction is worth zero.
    """
    timeline = HoldingsTimeline(transactions)
    if timeline.earliest is None:
        return None

    quantities = timeline.advance_to(on_date)
    total, _, _ = value_quantities(quantities, on_date, pricing_manager)
    return total

"""
Portfolio-level entry points used by dashboards, charts and tax reports.

A Portfolio ties a transaction store, a price source and a holding store
together under one portfolio id. The functions below read the then-current
transactions on every call; nothing is cached between calls.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
import warnings

from .errors import PriceDataWarning
from .history import (
    HistoricalValuePoint,
    Resolution,
    TimePeriod,
    get_historical_values as _get_historical_values,
    get_value_at_date as _get_value_at_date,
)
from .holdings import HoldingCalculation, compute_holding
from .pricingdata import PricingDataManager
from .scheduler import RecomputeScheduler
from .stores import (
    Holding,
    HoldingStore,
    InMemoryHoldingStore,
    InMemoryTransactionStore,
    TransactionStore,
)
from .tax.lots import LotMatchingMethod
from .transactions import Transaction


class Portfolio():
    """A portfolio id bound to its transaction, price and holding stores."""

    def __init__(
        self,
        portfolio_id: str,
        pricing_manager: PricingDataManager,
        transaction_store: TransactionStore | None = None,
        holding_store: HoldingStore | None = None,
        lot_method: LotMatchingMethod = LotMatchingMethod.FIFO,
    ):
        """
        Initialize a portfolio.

        Args:
            portfolio_id: Identifier used to scope every store query.
            pricing_manager: Source of current and historical prices.
            transaction_store: Authoritative transactions. Defaults to an
                empty in-memory store.
            holding_store: Where recomputed holdings are persisted. Defaults
                to an in-memory store.
            lot_method: How sells consume tax lots when holdings are computed.
        """
        self.portfolio_id = portfolio_id
        self.pricing_manager = pricing_manager
        self.transaction_store = transaction_store or InMemoryTransactionStore()
        self.holding_store = holding_store or InMemoryHoldingStore()
        self.lot_method = lot_method

    def add_transactions(self, transactions: list[Transaction]) -> list[Transaction]:
        return [self.transaction_store.add(self.portfolio_id, t) for t in transactions]

    @property
    def transactions(self) -> list[Transaction]:
        return self.transaction_store.transactions_for(self.portfolio_id)

    @property
    def asset_ids(self) -> list[str]:
        return sorted({t.asset_id for t in self.transactions})

    def create_scheduler(self, debounce_seconds: float = 0.5, **kwargs: Any) -> RecomputeScheduler:
        """Build a scheduler that recomputes this portfolio's holdings after writes.

        The scheduler is subscribed to the transaction store; writes for other
        portfolio ids sharing the store are ignored.
        """
        def recompute(portfolio_id: str, asset_id: str) -> HoldingCalculation:
            return recompute_holding(self, asset_id)

        scheduler = RecomputeScheduler(recompute, debounce_seconds=debounce_seconds, **kwargs)

        def listener(change):
            if change.portfolio_id == self.portfolio_id:
                scheduler.on_transaction_change(change)

        self.transaction_store.subscribe(listener)
        return scheduler

    def __repr__(self):
        return f"Portfolio(id={self.portfolio_id}, lot_method={self.lot_method.value})"


def current_price(portfolio: Portfolio, asset_id: str, today: date | None = None) -> Decimal | None:
    """Look up today's price, or None when the price source has nothing."""
    on_date = today or date.today()
    try:
        return portfolio.pricing_manager.get_price_point(asset_id, on_date).price
    except Exception as e:
        warnings.warn(
            f"No current price for {asset_id}; valuing at average cost ({e})",
            PriceDataWarning,
            stacklevel=2,
        )
        return None


def recompute_holding(portfolio: Portfolio, asset_id: str, today: date | None = None) -> HoldingCalculation:
    """
    Rebuild one asset's holding from its transactions and persist it.

    A holding whose quantity ends at or below zero is deleted from the
    holding store instead of being written.

    Args:
        portfolio: The portfolio to recompute in.
        asset_id: The asset to recompute.
        today: Date used for the current price lookup.

    Returns:
        The HoldingCalculation, whether or not it was persisted.
    """
    transactions = portfolio.transaction_store.transactions_for(portfolio.portfolio_id, asset_id)
    price = current_price(portfolio, asset_id, today) if transactions else None
    calculation = compute_holding(transactions, price, portfolio.lot_method, asset_id=asset_id)

    if calculation.quantity <= 0:
        portfolio.holding_store.delete(portfolio.portfolio_id, asset_id)
    else:
        portfolio.holding_store.put(Holding.from_calculation(
            portfolio.portfolio_id,
            calculation,
            last_updated=datetime.now(timezone.utc),
        ))
    return calculation


def recompute_portfolio_holdings(portfolio: Portfolio, today: date | None = None) -> dict[str, HoldingCalculation]:
    """Recompute every asset with transactions, and drop stale holdings."""
    results: dict[str, HoldingCalculation] = {}
    for asset_id in portfolio.asset_ids:
        results[asset_id] = recompute_holding(portfolio, asset_id, today)

    for holding in portfolio.holding_store.holdings_for(portfolio.portfolio_id):
        if holding.asset_id not in results:
            portfolio.holding_store.delete(portfolio.portfolio_id, holding.asset_id)
    return results


def get_historical_values(
    portfolio: Portfolio,
    period: TimePeriod,
    resolution: Resolution | None = None,
    today: date | None = None,
) -> list[HistoricalValuePoint]:
    return _get_historical_values(
        portfolio.transactions,
        period,
        portfolio.pricing_manager,
        resolution=resolution,
        today=today,
    )


def get_value_at_date(portfolio: Portfolio, on_date: date) -> Decimal | None:
    return _get_value_at_date(portfolio.transactions, on_date, portfolio.pricing_manager)

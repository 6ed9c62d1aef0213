"""
Holdings aggregation by full replay of an asset's transaction history.

Nothing here keeps running balances between calls: every result is rebuilt
from the ledger, so replaying the same transactions always yields the same
holding.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable
import warnings

from .errors import ReplayWarning
from .tax.lots import (
    LotMatchingMethod,
    SaleAllocation,
    TaxLot,
    allocate_sale,
    apply_split,
    create_lot,
)
from .tax.holding_period import HoldingPeriod
from .transactions import Transaction, TransactionType, group_by_asset, sort_transactions

ZERO = Decimal("0")


class AssetReplay:
    """Running state of one asset while its ledger is replayed in order.

    ``apply`` handles a single transaction. The holdings aggregator replays
    the whole ledger at once; historical valuation advances one replay per
    asset date by date and only reads ``quantity``.
    """

    def __init__(self, asset_id: str, lot_method: LotMatchingMethod = LotMatchingMethod.FIFO,
                 track_lots: bool = True):
        self.asset_id = asset_id
        self.lot_method = lot_method
        self.track_lots = track_lots
        self.quantity = ZERO
        self.cost_basis = ZERO
        self.lots: list[TaxLot] = []
        self.sales: list[SaleAllocation] = []
        self.warnings: list[str] = []

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        warnings.warn(message, ReplayWarning, stacklevel=3)

    def apply(self, txn: Transaction) -> None:
        match txn.type:
            case (TransactionType.BUY | TransactionType.TRANSFER_IN | TransactionType.REINVESTMENT
                  | TransactionType.ESPP_PURCHASE | TransactionType.RSU_VEST):
                self.quantity += txn.quantity
                self.cost_basis += txn.total_amount
                if self.track_lots:
                    self.lots.append(create_lot(txn, lot_number=len(self.lots) + 1))

            case TransactionType.SELL | TransactionType.TRANSFER_OUT:
                self._dispose(txn)

            case TransactionType.SPLIT:
                ratio = txn.quantity
                if ratio <= 0:
                    self._warn(f"Ignoring split {txn.id} for {self.asset_id} with non-positive ratio {ratio}")
                    return
                self.quantity *= ratio
                if self.track_lots:
                    apply_split(self.lots, ratio)

            case TransactionType.FEE | TransactionType.TAX:
                self.cost_basis = max(self.cost_basis - txn.total_amount, ZERO)

            case (TransactionType.DIVIDEND | TransactionType.INTEREST
                  | TransactionType.SPINOFF | TransactionType.MERGER):
                pass

            case _:
                raise ValueError(f"Unhandled transaction type: {txn.type}")

    def _dispose(self, txn: Transaction) -> None:
        held = self.quantity
        requested = txn.quantity

        if held <= 0:
            self._warn(
                f"{txn.type.value} {txn.id} on {txn.date} requests {requested} {self.asset_id} "
                f"but nothing is held; ignoring"
            )
            return

        sold = requested
        if requested > held:
            self._warn(
                f"{txn.type.value} {txn.id} on {txn.date} requests {requested} {self.asset_id} "
                f"but only {held} is held; clamping to {held}"
            )
            sold = held

        if sold == held:
            self.cost_basis = ZERO
            self.quantity = ZERO
        else:
            self.cost_basis -= self.cost_basis * sold / held
            self.quantity -= sold

        if self.track_lots:
            specific = txn.tax_lot_id if self.lot_method == LotMatchingMethod.SPECIFIC else None
            self.sales.extend(allocate_sale(self.lots, sold, txn.price, txn.date, self.lot_method, specific))


@dataclass
class HoldingCalculation:
    """Snapshot of one asset's position derived from its ledger."""

    asset_id: str
    quantity: Decimal
    cost_basis: Decimal
    average_cost: Decimal
    current_price: Decimal
    current_value: Decimal
    unrealized_gain: Decimal
    unrealized_gain_percent: Decimal
    lots: list[TaxLot] = field(default_factory=list)
    sales: list[SaleAllocation] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def open_lots(self) -> list[TaxLot]:
        return [lot for lot in self.lots if lot.is_open]

    @property
    def realized_gain(self) -> Decimal:
        return sum((s.realized_gain for s in self.sales), ZERO)

    def realized_gain_for(self, period: HoldingPeriod) -> Decimal:
        return sum((s.realized_gain for s in self.sales if s.holding_period == period), ZERO)

    def __repr__(self):
        return (
            f"HoldingCalculation(asset={self.asset_id}, quantity={self.quantity}, "
            f"cost_basis={self.cost_basis}, current_value={self.current_value})"
        )


def compute_holding(
    transactions: Iterable[Transaction],
    current_price: Decimal | None = None,
    lot_method: LotMatchingMethod = LotMatchingMethod.FIFO,
    asset_id: str | None = None,
) -> HoldingCalculation:
    """
    Replay one asset's transactions into its current holding.

    Transactions are sorted by ``(date, sequence)`` before replay; input order
    breaks any remaining ties. Oversized sells are clamped to the held
    quantity and reported as ReplayWarning, both via ``warnings`` and on the
    result's ``warnings`` list.

    Args:
        transactions: Transactions of a single asset, in any order.
        current_price: Market price used for value and gain. When omitted,
            the average cost stands in, so unrealized gain is zero.
        lot_method: How sells consume tax lots.
        asset_id: Asset being computed. Required only when ``transactions``
            is empty; otherwise it must match every transaction.

    Returns:
        The HoldingCalculation for the asset.

    Raises:
        ValueError: If the transactions span more than one asset.
    """
    ordered = sort_transactions(transactions)

    assets = {t.asset_id for t in ordered}
    if asset_id is not None:
        assets.add(asset_id)
    if len(assets) > 1:
        raise ValueError(f"compute_holding expects a single asset, got {sorted(assets)}")
    resolved_asset = assets.pop() if assets else ""

    replay = AssetReplay(resolved_asset, lot_method=lot_method)
    for txn in ordered:
        replay.apply(txn)

    quantity = replay.quantity
    cost_basis = replay.cost_basis
    average_cost = cost_basis / quantity if quantity > 0 else ZERO

    price = average_cost if current_price is None else current_price
    current_value = quantity * price
    unrealized_gain = current_value - cost_basis
    unrealized_gain_percent = unrealized_gain / cost_basis * 100 if cost_basis > 0 else ZERO

    return HoldingCalculation(
        asset_id=resolved_asset,
        quantity=quantity,
        cost_basis=cost_basis,
        average_cost=average_cost,
        current_price=price,
        current_value=current_value,
        unrealized_gain=unrealized_gain,
        unrealized_gain_percent=unrealized_gain_percent,
        lots=replay.lots,
        sales=replay.sales,
        warnings=replay.warnings,
    )


def compute_holdings(
    transactions: Iterable[Transaction],
    prices: dict[str, Decimal] | None = None,
    lot_method: LotMatchingMethod = LotMatchingMethod.FIFO,
) -> dict[str, HoldingCalculation]:
    """Compute a holding for every asset in a mixed ledger.

    Args:
        transactions: Transactions for any number of assets.
        prices: Optional current price per asset id.
        lot_method: How sells consume tax lots.

    Returns:
        HoldingCalculation per asset id, in order of first appearance.
    """
    prices = prices or {}
    return {
        asset: compute_holding(txns, prices.get(asset), lot_method, asset_id=asset)
        for asset, txns in group_by_asset(transactions).items()
    }

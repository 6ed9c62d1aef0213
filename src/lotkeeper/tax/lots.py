import warnings
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Mapping

from ..errors import InvalidTaxRateError, PriceDataWarning
from ..transactions import ACQUISITION_TYPES, Transaction, TransactionType
from .espp import bargain_element
from .holding_period import (
    HoldingPeriod,
    classify_holding_period,
    days_until_long_term,
    holding_days,
    LONG_TERM_THRESHOLD_DAYS,
)

if TYPE_CHECKING:
    from ..holdings import HoldingCalculation

CENT = Decimal("0.01")


class LotType(Enum):
    STANDARD = "standard"
    ESPP = "espp"
    RSU = "rsu"


class LotMatchingMethod(Enum):
    """Order in which a sale consumes open lots."""

    FIFO = "fifo"
    LIFO = "lifo"
    HIFO = "hifo"
    SPECIFIC = "specific"


@dataclass
class TaxLot:
    """A discrete acquired quantity with its own date and price.

    ``remaining_quantity`` is always ``quantity - sold_quantity`` and never
    negative; both are kept on the lot so partial sales stay visible.
    """

    id: str
    asset_id: str
    quantity: Decimal
    purchase_price: Decimal
    purchase_date: date
    sold_quantity: Decimal = Decimal("0")
    lot_type: LotType = LotType.STANDARD
    grant_date: date | None = None
    bargain_element: Decimal | None = None
    vesting_date: date | None = None
    vesting_price: Decimal | None = None
    notes: str | None = None

    @property
    def remaining_quantity(self) -> Decimal:
        return self.quantity - self.sold_quantity

    @property
    def is_open(self) -> bool:
        return self.remaining_quantity > 0

    @property
    def remaining_cost_basis(self) -> Decimal:
        return self.remaining_quantity * self.purchase_price

    def holding_period(self, reference_date: date) -> HoldingPeriod:
        return classify_holding_period(self.purchase_date, reference_date)


@dataclass(frozen=True)
class SaleAllocation:
    """The part of one sale matched against one lot."""

    lot_id: str
    quantity: Decimal
    cost_basis: Decimal
    proceeds: Decimal
    purchase_date: date
    sell_date: date
    holding_period: HoldingPeriod

    @property
    def realized_gain(self) -> Decimal:
        return self.proceeds - self.cost_basis


def create_lot(txn: Transaction, lot_number: int | None = None) -> TaxLot:
    """Open a tax lot for an acquisition transaction.

    The lot id is derived from the transaction id so that replaying the same
    ledger always yields the same lots.

    Raises:
        ValueError: If the transaction type does not acquire shares.
    """
    if txn.type not in ACQUISITION_TYPES:
        raise ValueError(f"Cannot open a tax lot for a {txn.type.value} transaction")

    lot = TaxLot(
        id=f"lot-{txn.id}",
        asset_id=txn.asset_id,
        quantity=txn.quantity,
        purchase_price=txn.price,
        purchase_date=txn.date,
        notes=f"Lot #{lot_number}" if lot_number is not None else None,
    )

    if txn.type == TransactionType.ESPP_PURCHASE:
        lot.lot_type = LotType.ESPP
        lot.grant_date = txn.grant_date
        lot.bargain_element = bargain_element(txn.price, txn.discount_percent)
    elif txn.type == TransactionType.RSU_VEST:
        lot.lot_type = LotType.RSU
        lot.vesting_date = txn.vesting_date or txn.date
        lot.vesting_price = txn.price

    return lot


def order_lots_for_sale(
    lots: list[TaxLot],
    method: LotMatchingMethod,
    specific_lot_id: str | None = None,
) -> list[TaxLot]:
    """Return the open lots in the order a sale should consume them."""
    open_lots = [lot for lot in lots if lot.is_open]

    if method == LotMatchingMethod.LIFO:
        return sorted(open_lots, key=lambda lot: lot.purchase_date, reverse=True)
    if method == LotMatchingMethod.HIFO:
        return sorted(open_lots, key=lambda lot: lot.purchase_price, reverse=True)

    fifo = sorted(open_lots, key=lambda lot: lot.purchase_date)
    if method == LotMatchingMethod.SPECIFIC and specific_lot_id is not None:
        named = [lot for lot in fifo if lot.id == specific_lot_id]
        return named + [lot for lot in fifo if lot.id != specific_lot_id]
    return fifo


def allocate_sale(
    lots: list[TaxLot],
    quantity: Decimal,
    sell_price: Decimal,
    sell_date: date,
    method: LotMatchingMethod = LotMatchingMethod.FIFO,
    specific_lot_id: str | None = None,
) -> list[SaleAllocation]:
    """
    Consume ``quantity`` from the open lots and record what each lot gave up.

    Lots are mutated in place. Any quantity left over once every lot is
    exhausted is not allocated; callers clamp sales to the held quantity
    before calling this.

    Args:
        lots: All lots of the asset, open or closed.
        quantity: Quantity being sold.
        sell_price: Per-unit sale price.
        sell_date: Date of the sale, used to classify each allocation.
        method: Lot matching method.
        specific_lot_id: Lot named by the sale when ``method`` is SPECIFIC.

    Returns:
        One SaleAllocation per lot touched, in consumption order.
    """
    allocations: list[SaleAllocation] = []
    remaining = quantity

    for lot in order_lots_for_sale(lots, method, specific_lot_id):
        if remaining <= 0:
            break

        take = min(remaining, lot.remaining_quantity)
        lot.sold_quantity += take
        remaining -= take

        allocations.append(SaleAllocation(
            lot_id=lot.id,
            quantity=take,
            cost_basis=take * lot.purchase_price,
            proceeds=take * sell_price,
            purchase_date=lot.purchase_date,
            sell_date=sell_date,
            holding_period=classify_holding_period(lot.purchase_date, sell_date),
        ))

    return allocations


def apply_split(lots: list[TaxLot], ratio: Decimal) -> None:
    """Scale every lot by a split ratio; per-unit price moves the other way."""
    for lot in lots:
        lot.quantity *= ratio
        lot.sold_quantity *= ratio
        lot.purchase_price /= ratio


@dataclass(frozen=True)
class LotGain:
    """Unrealized position of one open lot at a price and date."""

    lot_id: str
    quantity: Decimal
    cost_basis: Decimal
    current_value: Decimal
    holding_period: HoldingPeriod
    days_held: int
    asset_id: str = ""
    purchase_date: date | None = None
    lot_type: LotType = LotType.STANDARD
    grant_date: date | None = None
    bargain_element: Decimal | None = None

    @property
    def unrealized_gain(self) -> Decimal:
        return self.current_value - self.cost_basis

    @property
    def unrealized_gain_percent(self) -> Decimal:
        if self.cost_basis <= 0:
            return Decimal("0")
        return self.unrealized_gain / self.cost_basis * 100

    @property
    def adjusted_cost_basis(self) -> Decimal | None:
        """ESPP cost basis plus the bargain element reported as ordinary income.

        None for lots that are not ESPP or carry no bargain element.
        """
        if self.lot_type != LotType.ESPP or self.bargain_element is None:
            return None
        return self.cost_basis + self.bargain_element * self.quantity


def analyze_lot(lot: TaxLot, current_price: Decimal, as_of: date) -> LotGain:
    """Value the open part of one lot and classify it on ``as_of``.

    Raises:
        InvalidDateRangeError: If the lot was acquired after ``as_of``.
    """
    return LotGain(
        lot_id=lot.id,
        quantity=lot.remaining_quantity,
        cost_basis=lot.remaining_cost_basis,
        current_value=lot.remaining_quantity * current_price,
        holding_period=lot.holding_period(as_of),
        days_held=holding_days(lot.purchase_date, as_of),
        asset_id=lot.asset_id,
        purchase_date=lot.purchase_date,
        lot_type=lot.lot_type,
        grant_date=lot.grant_date,
        bargain_element=lot.bargain_element,
    )


def unrealized_gains_by_lot(lots: list[TaxLot], current_price: Decimal, as_of: date) -> list[LotGain]:
    """Value each open lot at ``current_price`` and classify it on ``as_of``.

    Lots acquired after ``as_of`` are not held yet and are left out.
    """
    return [
        analyze_lot(lot, current_price, as_of)
        for lot in lots
        if lot.is_open and lot.purchase_date <= as_of
    ]


@dataclass(frozen=True)
class AgingLot:
    lot_id: str
    asset_id: str
    remaining_quantity: Decimal
    purchase_date: date
    days_until_long_term: int
    unrealized_gain: Decimal


def detect_aging_lots(
    lots: list[TaxLot],
    current_price: Decimal,
    as_of: date,
    lookback_days: int = 30,
) -> list[AgingLot]:
    """
    Find short-term lots that turn long-term within ``lookback_days``.

    Useful for "wait N more days before selling" prompts: selling these lots
    now realizes short-term gains that would soon be long-term.

    Returns:
        Aging lots ordered by days remaining, soonest first.
    """
    aging: list[AgingLot] = []
    for lot in lots:
        if not lot.is_open:
            continue
        if lot.purchase_date > as_of:
            continue
        if holding_days(lot.purchase_date, as_of) > LONG_TERM_THRESHOLD_DAYS:
            continue
        remaining_days = days_until_long_term(lot.purchase_date, as_of)
        if remaining_days > lookback_days:
            continue
        aging.append(AgingLot(
            lot_id=lot.id,
            asset_id=lot.asset_id,
            remaining_quantity=lot.remaining_quantity,
            purchase_date=lot.purchase_date,
            days_until_long_term=remaining_days,
            unrealized_gain=lot.remaining_quantity * current_price - lot.remaining_cost_basis,
        ))

    aging.sort(key=lambda a: a.days_until_long_term)
    return aging


@dataclass(frozen=True)
class TaxRates:
    """Marginal rates applied to unrealized gains, as fractions (0.24 is 24%).

    ``state_rate`` is added on top of both federal rates.
    """

    short_term_rate: Decimal = Decimal("0.24")
    long_term_rate: Decimal = Decimal("0.15")
    state_rate: Decimal = Decimal("0")

    def __post_init__(self):
        for name in ("short_term_rate", "long_term_rate", "state_rate"):
            rate = getattr(self, name)
            if not rate.is_finite() or not Decimal("0") <= rate <= Decimal("1"):
                raise InvalidTaxRateError(f"{name} must be between 0 and 1, got {rate}")

    @property
    def effective_short_term_rate(self) -> Decimal:
        return self.short_term_rate + self.state_rate

    @property
    def effective_long_term_rate(self) -> Decimal:
        return self.long_term_rate + self.state_rate


@dataclass(frozen=True)
class TaxAnalysis:
    """Unrealized gains split by holding period, with the tax they would owe if sold.

    Gains and losses are kept as separate positive magnitudes. Tax is only
    estimated on gains; losses are reported but not netted against them.
    """

    short_term_gains: Decimal
    long_term_gains: Decimal
    short_term_losses: Decimal
    long_term_losses: Decimal
    estimated_short_term_tax: Decimal
    estimated_long_term_tax: Decimal
    lots: list[LotGain] = field(default_factory=list)
    skipped_assets: tuple[str, ...] = ()

    @property
    def total_unrealized_gain(self) -> Decimal:
        return self.short_term_gains + self.long_term_gains

    @property
    def total_unrealized_loss(self) -> Decimal:
        return self.short_term_losses + self.long_term_losses

    @property
    def net_unrealized_gain(self) -> Decimal:
        return self.total_unrealized_gain - self.total_unrealized_loss

    @property
    def total_estimated_tax(self) -> Decimal:
        return self.estimated_short_term_tax + self.estimated_long_term_tax


def _priced_lots(
    holdings: Iterable["HoldingCalculation"],
    prices: Mapping[str, Decimal],
    as_of: date,
) -> tuple[list[tuple["HoldingCalculation", list[LotGain]]], list[str]]:
    priced: list[tuple["HoldingCalculation", list[LotGain]]] = []
    skipped: list[str] = []
    for holding in holdings:
        price = prices.get(holding.asset_id)
        if price is None:
            warnings.warn(
                f"Skipping {holding.asset_id}: no current price",
                PriceDataWarning,
                stacklevel=3,
            )
            skipped.append(holding.asset_id)
            continue
        priced.append((holding, unrealized_gains_by_lot(holding.lots, price, as_of)))
    return priced, skipped


def estimate_tax_liability(
    holdings: Iterable["HoldingCalculation"],
    prices: Mapping[str, Decimal],
    rates: TaxRates | None = None,
    as_of: date | None = None,
) -> TaxAnalysis:
    """
    Estimate the tax owed if every open lot were sold at ``prices``.

    Each open lot is classified on ``as_of`` and its gain or loss lands in
    the matching short-term or long-term bucket. Short-term gains are taxed
    at the short-term rate and long-term gains at the long-term rate, each
    plus the state rate, rounded to cents.

    Args:
        holdings: Replayed holdings; only their ``asset_id`` and ``lots`` are read.
        prices: Current price per asset id. Holdings without one are skipped
            with a ``PriceDataWarning`` and listed in ``skipped_assets``.
        rates: Tax rates; defaults to ``TaxRates()``.
        as_of: Valuation date. Defaults to ``date.today()``.

    Returns:
        A TaxAnalysis with one LotGain per open lot, ESPP lots carrying their
        adjusted cost basis.
    """
    rates = rates or TaxRates()
    as_of = as_of or date.today()
    priced, skipped = _priced_lots(holdings, prices, as_of)

    buckets = {
        (HoldingPeriod.SHORT, True): Decimal("0"),
        (HoldingPeriod.LONG, True): Decimal("0"),
        (HoldingPeriod.SHORT, False): Decimal("0"),
        (HoldingPeriod.LONG, False): Decimal("0"),
    }
    lots: list[LotGain] = []
    for _, gains in priced:
        for gain in gains:
            lots.append(gain)
            if gain.unrealized_gain != 0:
                buckets[(gain.holding_period, gain.unrealized_gain > 0)] += abs(gain.unrealized_gain)

    short_term_gains = buckets[(HoldingPeriod.SHORT, True)]
    long_term_gains = buckets[(HoldingPeriod.LONG, True)]
    return TaxAnalysis(
        short_term_gains=short_term_gains,
        long_term_gains=long_term_gains,
        short_term_losses=buckets[(HoldingPeriod.SHORT, False)],
        long_term_losses=buckets[(HoldingPeriod.LONG, False)],
        estimated_short_term_tax=(short_term_gains * rates.effective_short_term_rate).quantize(CENT, ROUND_HALF_UP),
        estimated_long_term_tax=(long_term_gains * rates.effective_long_term_rate).quantize(CENT, ROUND_HALF_UP),
        lots=lots,
        skipped_assets=tuple(skipped),
    )


@dataclass(frozen=True)
class HarvestingOpportunity:
    """An asset whose losing lots could be sold to realize a loss."""

    asset_id: str
    short_term_loss: Decimal
    long_term_loss: Decimal
    lot_ids: tuple[str, ...]

    @property
    def unrealized_loss(self) -> Decimal:
        return self.short_term_loss + self.long_term_loss


def find_tax_loss_harvesting(
    holdings: Iterable["HoldingCalculation"],
    prices: Mapping[str, Decimal],
    minimum_loss: Decimal = Decimal("100"),
    as_of: date | None = None,
) -> list[HarvestingOpportunity]:
    """
    Find assets whose open lots hold at least ``minimum_loss`` of unrealized loss.

    Only losing lots count toward an asset's loss; gaining lots of the same
    asset do not offset it. Losses are positive magnitudes.

    Returns:
        Opportunities ordered by total loss, largest first.
    """
    as_of = as_of or date.today()
    priced, _ = _priced_lots(holdings, prices, as_of)

    opportunities: list[HarvestingOpportunity] = []
    for holding, gains in priced:
        losing = [g for g in gains if g.unrealized_gain < 0]
        short_term = sum((-g.unrealized_gain for g in losing if g.holding_period == HoldingPeriod.SHORT), Decimal("0"))
        long_term = sum((-g.unrealized_gain for g in losing if g.holding_period == HoldingPeriod.LONG), Decimal("0"))
        if losing and short_term + long_term >= minimum_loss:
            opportunities.append(HarvestingOpportunity(
                asset_id=holding.asset_id,
                short_term_loss=short_term,
                long_term_loss=long_term,
                lot_ids=tuple(g.lot_id for g in losing),
            ))

    opportunities.sort(key=lambda o: o.unrealized_loss, reverse=True)
    return opportunities

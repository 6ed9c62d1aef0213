"""
Transaction and holding storage.

Transactions are the authoritative record; holdings are derived and can be
rebuilt from transactions at any time. The in-memory stores are thread-safe
so the recompute scheduler can read them from its background thread.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable
import threading

from .holdings import HoldingCalculation
from .transactions import Transaction


class ChangeKind(Enum):
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class TransactionChange:
    """A write to the transaction store, published to subscribers."""

    kind: ChangeKind
    portfolio_id: str
    transaction: Transaction

    @property
    def asset_id(self) -> str:
        return self.transaction.asset_id


Listener = Callable[[TransactionChange], None]


class TransactionStore(ABC):
    """Abstract base class for transaction storage."""

    @abstractmethod
    def transactions_for(self, portfolio_id: str, asset_id: str | None = None) -> list[Transaction]:
        """Return a portfolio's transactions, optionally for a single asset."""
        raise NotImplementedError("This method should be overridden by subclasses.")

    @abstractmethod
    def add(self, portfolio_id: str, txn: Transaction) -> Transaction:
        raise NotImplementedError("This method should be overridden by subclasses.")

    @abstractmethod
    def update(self, portfolio_id: str, txn: Transaction) -> Transaction:
        raise NotImplementedError("This method should be overridden by subclasses.")

    @abstractmethod
    def delete(self, portfolio_id: str, transaction_id: str) -> Transaction:
        raise NotImplementedError("This method should be overridden by subclasses.")

    @abstractmethod
    def subscribe(self, listener: Listener) -> None:
        """Register a callback invoked after every successful write."""
        raise NotImplementedError("This method should be overridden by subclasses.")


class InMemoryTransactionStore(TransactionStore):
    """Transaction store held in memory.

    Every added transaction is stamped with an increasing ``sequence`` so
    same-day entries replay in insertion order. Updates keep the original
    sequence, so editing a transaction never moves it within its day.
    """

    def __init__(self):
        self._transactions: dict[str, dict[str, Transaction]] = {}
        self._listeners: list[Listener] = []
        self._next_sequence = 0
        self._lock = threading.Lock()

    def transactions_for(self, portfolio_id: str, asset_id: str | None = None) -> list[Transaction]:
        with self._lock:
            txns = list(self._transactions.get(portfolio_id, {}).values())
        if asset_id is not None:
            txns = [t for t in txns if t.asset_id == asset_id]
        return txns

    def add(self, portfolio_id: str, txn: Transaction) -> Transaction:
        with self._lock:
            book = self._transactions.setdefault(portfolio_id, {})
            if txn.id in book:
                raise ValueError(f"Transaction {txn.id} already exists in portfolio {portfolio_id}")
            stored = replace(txn, sequence=self._next_sequence)
            self._next_sequence += 1
            book[txn.id] = stored
        self._publish(TransactionChange(ChangeKind.ADDED, portfolio_id, stored))
        return stored

    def update(self, portfolio_id: str, txn: Transaction) -> Transaction:
        with self._lock:
            book = self._transactions.get(portfolio_id, {})
            previous = book.get(txn.id)
            if previous is None:
                raise KeyError(f"Transaction {txn.id} not found in portfolio {portfolio_id}")
            stored = replace(txn, sequence=previous.sequence)
            book[txn.id] = stored
        # Moving a transaction to another asset changes both assets.
        if previous.asset_id != stored.asset_id:
            self._publish(TransactionChange(ChangeKind.DELETED, portfolio_id, previous))
        self._publish(TransactionChange(ChangeKind.UPDATED, portfolio_id, stored))
        return stored

    def delete(self, portfolio_id: str, transaction_id: str) -> Transaction:
        with self._lock:
            book = self._transactions.get(portfolio_id, {})
            if transaction_id not in book:
                raise KeyError(f"Transaction {transaction_id} not found in portfolio {portfolio_id}")
            removed = book.pop(transaction_id)
        self._publish(TransactionChange(ChangeKind.DELETED, portfolio_id, removed))
        return removed

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _publish(self, change: TransactionChange) -> None:
        for listener in list(self._listeners):
            listener(change)


@dataclass
class Holding:
    """Persisted holding for one (portfolio, asset) pair."""

    portfolio_id: str
    asset_id: str
    calculation: HoldingCalculation
    last_updated: datetime

    @property
    def quantity(self) -> Decimal:
        return self.calculation.quantity

    @property
    def cost_basis(self) -> Decimal:
        return self.calculation.cost_basis

    @property
    def current_value(self) -> Decimal:
        return self.calculation.current_value

    @classmethod
    def from_calculation(cls, portfolio_id: str, calculation: HoldingCalculation,
                         last_updated: datetime | None = None) -> "Holding":
        return cls(
            portfolio_id=portfolio_id,
            asset_id=calculation.asset_id,
            calculation=calculation,
            last_updated=last_updated or datetime.now(timezone.utc),
        )


class HoldingStore(ABC):
    """Abstract base class for derived-holding storage."""

    @abstractmethod
    def get(self, portfolio_id: str, asset_id: str) -> Holding | None:
        raise NotImplementedError("This method should be overridden by subclasses.")

    @abstractmethod
    def put(self, holding: Holding) -> None:
        raise NotImplementedError("This method should be overridden by subclasses.")

    @abstractmethod
    def delete(self, portfolio_id: str, asset_id: str) -> bool:
        """Remove a holding; return whether one existed."""
        raise NotImplementedError("This method should be overridden by subclasses.")

    @abstractmethod
    def holdings_for(self, portfolio_id: str) -> list[Holding]:
        raise NotImplementedError("This method should be overridden by subclasses.")


class InMemoryHoldingStore(HoldingStore):

    def __init__(self):
        self._holdings: dict[tuple[str, str], Holding] = {}
        self._lock = threading.Lock()

    def get(self, portfolio_id: str, asset_id: str) -> Holding | None:
        with self._lock:
            return self._holdings.get((portfolio_id, asset_id))

    def put(self, holding: Holding) -> None:
        if holding.quantity <= 0:
            raise ValueError(
                f"Refusing to persist {holding.asset_id} in {holding.portfolio_id} "
                f"with non-positive quantity {holding.quantity}"
            )
        with self._lock:
            self._holdings[(holding.portfolio_id, holding.asset_id)] = holding

    def delete(self, portfolio_id: str, asset_id: str) -> bool:
        with self._lock:
            return self._holdings.pop((portfolio_id, asset_id), None) is not None

    def holdings_for(self, portfolio_id: str) -> list[Holding]:
        with self._lock:
            return [h for (pid, _), h in self._holdings.items() if pid == portfolio_id]

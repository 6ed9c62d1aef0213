from dataclasses import dataclass, fields
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable
import json
import os

import pandas as pd
from openpyxl import Workbook

from .errors import InvalidDateError


class TransactionType(Enum):
    """Enumeration of supported ledger event types."""

    BUY = "buy"
    SELL = "sell"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    SPLIT = "split"
    DIVIDEND = "dividend"
    INTEREST = "interest"
    FEE = "fee"
    TAX = "tax"
    SPINOFF = "spinoff"
    MERGER = "merger"
    REINVESTMENT = "reinvestment"
    ESPP_PURCHASE = "espp_purchase"
    RSU_VEST = "rsu_vest"


# Types that add quantity and cost basis, and open a tax lot.
ACQUISITION_TYPES = frozenset({
    TransactionType.BUY,
    TransactionType.TRANSFER_IN,
    TransactionType.REINVESTMENT,
    TransactionType.ESPP_PURCHASE,
    TransactionType.RSU_VEST,
})

# Types that remove quantity and consume lots.
DISPOSAL_TYPES = frozenset({
    TransactionType.SELL,
    TransactionType.TRANSFER_OUT,
})

# Types that reduce cost basis without touching quantity.
COST_REDUCTION_TYPES = frozenset({
    TransactionType.FEE,
    TransactionType.TAX,
})

# Types recorded in the ledger that leave quantity and cost basis untouched.
PASSIVE_TYPES = frozenset({
    TransactionType.DIVIDEND,
    TransactionType.INTEREST,
    TransactionType.SPINOFF,
    TransactionType.MERGER,
})


def parse_date(value: Any, field: str = "date") -> date:
    """Coerce a date-like value to a calendar date.

    Accepts ``date``, ``datetime`` (including pandas ``Timestamp``) and ISO
    8601 strings. Time-of-day information is discarded; the ledger works in
    calendar days.

    Args:
        value: The value to convert.
        field: Name of the field being parsed, used in the error message.

    Returns:
        The calendar date.

    Raises:
        InvalidDateError: If the value is missing or cannot be parsed.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
    raise InvalidDateError(f"Invalid {field} provided: {value!r}")


def to_decimal(value: Any, field: str = "value") -> Decimal:
    """Convert a numeric value to ``Decimal`` without going through binary floats."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid {field}: {value!r}") from e


@dataclass(frozen=True)
class Transaction:
    """A single immutable ledger event for one asset.

    ``quantity`` is always a magnitude; its direction comes from ``type``.
    For splits, ``quantity`` holds the split ratio (e.g. ``2`` for 2-for-1).
    ``sequence`` orders transactions sharing the same date.
    """

    id: str
    asset_id: str
    type: TransactionType
    date: date
    quantity: Decimal
    price: Decimal
    total_amount: Decimal
    fees: Decimal = Decimal("0")
    currency: str = "USD"
    sequence: int = 0
    tax_lot_id: str | None = None
    grant_date: date | None = None
    vesting_date: date | None = None
    discount_percent: Decimal | None = None
    shares_withheld: Decimal | None = None
    ordinary_income_amount: Decimal | None = None
    notes: str | None = None

    @classmethod
    def create(
        cls,
        id: str,
        asset_id: str,
        type: TransactionType | str,
        date: Any,
        quantity: Any,
        price: Any = Decimal("0"),
        total_amount: Any = None,
        **metadata: Any,
    ) -> "Transaction":
        """Build a transaction from loosely typed values.

        ``total_amount`` defaults to ``quantity * price``. Date-valued metadata
        (``grant_date``, ``vesting_date``) and Decimal-valued metadata are
        coerced the same way as the core fields.
        """
        if not isinstance(type, TransactionType):
            type = TransactionType(str(type).strip().lower())
        qty = to_decimal(quantity, "quantity")
        unit_price = to_decimal(price, "price")
        total = qty * unit_price if total_amount is None else to_decimal(total_amount, "total amount")

        for key in ("grant_date", "vesting_date"):
            if metadata.get(key) is not None:
                metadata[key] = parse_date(metadata[key], key)
        for key in ("fees", "discount_percent", "shares_withheld", "ordinary_income_amount"):
            if metadata.get(key) is not None:
                metadata[key] = to_decimal(metadata[key], key)

        return cls(
            id=str(id),
            asset_id=str(asset_id),
            type=type,
            date=parse_date(date),
            quantity=qty,
            price=unit_price,
            total_amount=total,
            **metadata,
        )

    def __repr__(self):
        return f"Transaction(id={self.id}, asset={self.asset_id}, date={self.date}, type={self.type.value}, quantity={self.quantity}, price={self.price})"


def sort_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Return transactions in replay order: date, then sequence, then input order."""
    return sorted(transactions, key=lambda t: (t.date, t.sequence))


def group_by_asset(transactions: Iterable[Transaction]) -> dict[str, list[Transaction]]:
    """Split a ledger into per-asset lists, preserving input order within each asset."""
    grouped: dict[str, list[Transaction]] = {}
    for txn in transactions:
        grouped.setdefault(txn.asset_id, []).append(txn)
    return grouped


EXCEL_HEADERS = [
    "ID", "ASSET", "DATE", "TYPE", "QUANTITY", "PRICE", "TOTAL AMOUNT", "FEES",
    "CURRENCY", "LOT ID", "GRANT DATE", "VESTING DATE", "DISCOUNT PERCENT",
    "SHARES WITHHELD", "ORDINARY INCOME", "NOTES",
]

REQUIRED_COLUMNS = {"ASSET", "DATE", "TYPE", "QUANTITY", "PRICE"}

# Excel column -> Transaction.create keyword for optional metadata.
_OPTIONAL_COLUMNS = {
    "FEES": "fees",
    "CURRENCY": "currency",
    "LOT ID": "tax_lot_id",
    "GRANT DATE": "grant_date",
    "VESTING DATE": "vesting_date",
    "DISCOUNT PERCENT": "discount_percent",
    "SHARES WITHHELD": "shares_withheld",
    "ORDINARY INCOME": "ordinary_income_amount",
    "NOTES": "notes",
}


def load_transactions_from_excel(file_path: str) -> list[Transaction]:
    """
    Load a transaction ledger from an Excel file.

    Args:
        file_path: Path to the Excel file.

    Returns:
        Transactions in file order. Each row's position becomes its
        ``sequence`` so same-day rows replay in the order they were entered.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If required columns are missing or a row is malformed.
        InvalidDateError: If a date cell cannot be parsed.

    Expected Excel columns (order independent):
        - ASSET, DATE, TYPE, QUANTITY, PRICE (required)
        - ID, TOTAL AMOUNT, FEES, CURRENCY, LOT ID, GRANT DATE, VESTING DATE,
          DISCOUNT PERCENT, SHARES WITHHELD, ORDINARY INCOME, NOTES (optional)
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Ledger file not found: {file_path}")

    df = pd.read_excel(file_path)
    if df.empty:
        return []

    missing_columns = REQUIRED_COLUMNS - set(df.columns)
    if missing_columns:
        raise ValueError(f"Missing required columns: {missing_columns}")

    transactions: list[Transaction] = []
    for index, row in df.iterrows():
        position = int(index)  # type: ignore[arg-type]
        metadata: dict[str, Any] = {}
        for column, key in _OPTIONAL_COLUMNS.items():
            if column in df.columns and pd.notna(row[column]) and str(row[column]).strip():
                metadata[key] = row[column]
        if "tax_lot_id" in metadata:
            metadata["tax_lot_id"] = str(metadata["tax_lot_id"])

        txn_id = row["ID"] if "ID" in df.columns and pd.notna(row["ID"]) else f"row-{position + 1}"
        total = row["TOTAL AMOUNT"] if "TOTAL AMOUNT" in df.columns and pd.notna(row["TOTAL AMOUNT"]) else None
        raw_date = row["DATE"] if pd.notna(row["DATE"]) else None

        transactions.append(Transaction.create(
            id=txn_id,
            asset_id=str(row["ASSET"]).strip(),
            type=row["TYPE"],
            date=raw_date,
            quantity=row["QUANTITY"],
            price=row["PRICE"],
            total_amount=total,
            sequence=position,
            **metadata,
        ))

    return transactions


def _cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _row_values(txn: Transaction) -> list[Any]:
    return [
        txn.id, txn.asset_id, txn.date, txn.type, txn.quantity, txn.price,
        txn.total_amount, txn.fees, txn.currency, txn.tax_lot_id, txn.grant_date,
        txn.vesting_date, txn.discount_percent, txn.shares_withheld,
        txn.ordinary_income_amount, txn.notes,
    ]


def save_transactions_to_excel(transactions: Iterable[Transaction], file_path: str) -> None:
    """
    Save a transaction ledger to an Excel file.

    Decimal values are written as text so no precision is lost on reload.

    Args:
        transactions: Transactions to write, in the order given.
        file_path: Path to the Excel file to write.
    """
    wb = Workbook()
    ws = wb.active
    assert ws is not None

    for col, header in enumerate(EXCEL_HEADERS, start=1):
        ws.cell(row=1, column=col, value=header)

    for row, txn in enumerate(transactions, start=2):
        for col, value in enumerate(_row_values(txn), start=1):
            ws.cell(row=row, column=col, value=_cell(value))

    wb.save(file_path)


_TRANSACTION_FIELDS = frozenset(f.name for f in fields(Transaction))


def load_transactions_from_json(file_path: str) -> list[Transaction]:
    """
    Load a transaction ledger from a JSON file.

    Expected JSON structure:
        [
            {
                "id": "t1",
                "asset_id": "AAPL",
                "type": "buy",
                "date": "2024-01-15",
                "quantity": "10",
                "price": "150.50",
                "total_amount": "1505.00",
                "fees": "1.00"
            },
            ...
        ]

    Numeric record may be strings or numbers; strings are preferred since
    they round-trip exactly.
    """
    with open(file_path, "r") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError("JSON file must contain a list of transactions")

    transactions: list[Transaction] = []
    item: Any
    for position, item in enumerate(data):  # type: ignore[arg-type]
        if not isinstance(item, dict):
            raise ValueError(f"Transaction {position + 1} must be a JSON object")
        record = dict(item)
        unknown = set(record) - _TRANSACTION_FIELDS
        if unknown:
            raise ValueError(f"Transaction {position + 1} has unknown fields: {sorted(unknown)}")
        missing = {"asset_id", "type", "quantity"} - set(record)
        if missing:
            raise ValueError(f"Transaction {position + 1} is missing fields: {sorted(missing)}")

        txn_id = record.pop("id", f"row-{position + 1}")
        try:
            record["sequence"] = int(record.get("sequence", position))
        except (TypeError, ValueError):
            raise ValueError(f"Invalid sequence: {record['sequence']!r}") from None
        transactions.append(Transaction.create(
            id=txn_id,
            asset_id=record.pop("asset_id"),
            type=record.pop("type"),
            date=record.pop("date", None),
            quantity=record.pop("quantity"),
            price=record.pop("price", "0"),
            total_amount=record.pop("total_amount", None),
            **record,
        ))

    return transactions


def save_transactions_to_json(transactions: Iterable[Transaction], file_path: str) -> None:
    """Save a transaction ledger to a JSON file, writing Decimals as strings."""
    data = []
    for txn in transactions:
        record = {
            "id": txn.id,
            "asset_id": txn.asset_id,
            "type": txn.type.value,
            "date": txn.date.isoformat(),
            "quantity": str(txn.quantity),
            "price": str(txn.price),
            "total_amount": str(txn.total_amount),
            "fees": str(txn.fees),
            "currency": txn.currency,
            "sequence": txn.sequence,
        }
        for key in ("tax_lot_id", "grant_date", "vesting_date", "discount_percent",
                    "shares_withheld", "ordinary_income_amount", "notes"):
            value = getattr(txn, key)
            if value is not None:
                record[key] = _cell(value)
        data.append(record)

    with open(file_path, "w") as f:
        json.dump(data, f, indent=2)


def load_transactions(file_path: str) -> list[Transaction]:
    """Load a ledger from ``.json`` or Excel, chosen by file extension."""
    if file_path.lower().endswith(".json"):
        return load_transactions_from_json(file_path)
    return load_transactions_from_excel(file_path)

from abc import ABC, abstractmethod
from bisect import bisect_right
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from pathlib import Path

import pandas as pd

from .errors import PriceNotFoundError
from .transactions import parse_date, to_decimal


@dataclass(frozen=True)
class PriceObservation:
    """One stored (date, price) pair for an asset."""

    date: date
    price: Decimal


class PriceMatch(Enum):
    """How a looked-up price relates to the requested date."""

    EXACT = "exact"
    PRIOR = "prior"
    NEXT = "next"


class PricePoint:
    """A price resolved for an asset on a target date."""

    def __init__(self, asset_id: str, target_date: date, price: Decimal, price_date: date,
                 match: PriceMatch = PriceMatch.EXACT, currency: str = "USD"):
        """Initialize a PricePoint.

        Args:
            asset_id: Asset the price belongs to.
            target_date: Date the caller asked for.
            price: The resolved price as a Decimal.
            price_date: Date of the observation that supplied the price.
            match: Whether the observation was exact, earlier or later.
            currency: Currency the price is denominated in.
        """
        self.asset_id: str = asset_id
        self.target_date: date = target_date
        self.price: Decimal = price
        self.price_date: date = price_date
        self.match: PriceMatch = match
        self.currency: str = currency

    @property
    def is_interpolated(self) -> bool:
        return self.match != PriceMatch.EXACT

    @property
    def days_from_target(self) -> int:
        """Signed distance of the observation from the target (negative = earlier)."""
        return (self.price_date - self.target_date).days

    def __repr__(self):
        return f"PricePoint(asset={self.asset_id}, target={self.target_date}, price={self.price}, match={self.match.value})"


class PriceSeriesStore(ABC):
    """Source of historical price observations, one series per asset."""

    @abstractmethod
    def price_series_for(self, asset_id: str) -> list[PriceObservation]:
        """Return every observation for the asset, ordered by date ascending."""
        raise NotImplementedError("This method should be overridden by subclasses.")


class InMemoryPriceSeriesStore(PriceSeriesStore):
    """Price store backed by a dict, mostly for tests and scripted use."""

    def __init__(self, series: dict[str, list[PriceObservation]] | None = None):
        self._series: dict[str, list[PriceObservation]] = {}
        for asset_id, observations in (series or {}).items():
            self.set_series(asset_id, observations)

    def set_series(self, asset_id: str, observations: list[PriceObservation]) -> None:
        self._series[asset_id] = sorted(observations, key=lambda o: o.date)

    def add_price(self, asset_id: str, on_date, price) -> None:
        observation = PriceObservation(parse_date(on_date), to_decimal(price, "price"))
        self.set_series(asset_id, self._series.get(asset_id, []) + [observation])

    def price_series_for(self, asset_id: str) -> list[PriceObservation]:
        return list(self._series.get(asset_id, []))


class CsvPriceSeriesStore(PriceSeriesStore):
    """Price store reading ``<asset>.csv`` files with ``Date`` and ``Close`` columns.

    Each file is read at most once per store instance; later lookups for the
    same asset are served from memory.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self._loaded: dict[str, list[PriceObservation]] = {}

    def _get_path(self, asset_id: str) -> Path:
        return self.directory / f"{asset_id}.csv"

    def price_series_for(self, asset_id: str) -> list[PriceObservation]:
        if asset_id in self._loaded:
            return self._loaded[asset_id]

        path = self._get_path(asset_id)
        observations: list[PriceObservation] = []
        if path.exists():
            df = pd.read_csv(path, dtype={"Close": str})
            missing = {"Date", "Close"} - set(df.columns)
            if missing:
                raise ValueError(f"Price file {path} is missing columns: {missing}")
            for _, row in df.iterrows():
                if pd.isna(row["Date"]) or pd.isna(row["Close"]):
                    continue
                observations.append(PriceObservation(
                    date=parse_date(str(row["Date"]), "price date"),
                    price=to_decimal(row["Close"], "close price"),
                ))
            observations.sort(key=lambda o: o.date)

        self._loaded[asset_id] = observations
        return observations


class PricingDataManager(ABC):
    """Abstract base class for all pricing data providers."""

    @abstractmethod
    def get_price_point(self, asset_id: str, on_date: date) -> PricePoint:
        raise NotImplementedError("This method should be overridden by subclasses.")


class FixedPricingDataManager(PricingDataManager):
    """Pricing manager that returns a fixed price for any asset/date."""

    def __init__(self, price_for_everything: Decimal = Decimal("1.0")):
        """Initialize with a fixed price.

        Args:
            price_for_everything: The constant price returned for every query.
        """
        self.price = price_for_everything

    def get_price_point(self, asset_id: str, on_date: date) -> PricePoint:
        return PricePoint(
            asset_id=asset_id,
            target_date=on_date,
            price=self.price,
            price_date=on_date,
        )


class SeriesPricingDataManager(PricingDataManager):
    """Resolve prices from a PriceSeriesStore.

    The nearest observation on or before the target date wins. When the
    series starts after the target, the earliest observation is used and the
    point is flagged ``PriceMatch.NEXT``.
    """

    def __init__(self, store: PriceSeriesStore):
        self.store = store

    def get_price_point(self, asset_id: str, on_date: date) -> PricePoint:
        """Get the price for an asset on a date.

        Raises:
            PriceNotFoundError: If the asset has no observations at all.
        """
        series = self.store.price_series_for(asset_id)
        if not series:
            raise PriceNotFoundError(f"No price data available for {asset_id}")

        dates = [o.date for o in series]
        index = bisect_right(dates, on_date)

        if index == 0:
            observation = series[0]
            match = PriceMatch.NEXT
        else:
            observation = series[index - 1]
            match = PriceMatch.EXACT if observation.date == on_date else PriceMatch.PRIOR

        return PricePoint(
            asset_id=asset_id,
            target_date=on_date,
            price=observation.price,
            price_date=observation.date,
            match=match,
        )


class PriceCache(PricingDataManager):
    """Memoizes lookups of another manager by ``(asset_id, date)``.

    Meant to live for a single reconstruction run. Failed lookups are cached
    too, so a missing asset is only queried once per date.
    """

    def __init__(self, manager: PricingDataManager):
        self.manager = manager
        self._points: dict[tuple[str, date], PricePoint] = {}
        self._failures: dict[tuple[str, date], Exception] = {}
        self.lookups = 0

    def get_price_point(self, asset_id: str, on_date: date) -> PricePoint:
        key = (asset_id, on_date)
        if key in self._points:
            return self._points[key]
        if key in self._failures:
            raise self._failures[key]

        self.lookups += 1
        try:
            point = self.manager.get_price_point(asset_id, on_date)
        except Exception as e:
            self._failures[key] = e
            raise
        self._points[key] = point
        return point

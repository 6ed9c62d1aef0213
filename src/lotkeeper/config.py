"""Runtime settings read from the environment (and a ``.env`` file, if present)."""

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

from dotenv import load_dotenv

from .tax.lots import LotMatchingMethod, TaxRates

DEFAULT_PRICE_DIR = Path(".cache") / "prices"


@dataclass(frozen=True)
class Settings:
    lot_method: LotMatchingMethod = LotMatchingMethod.FIFO
    debounce_seconds: float = 0.5
    price_dir: Path = DEFAULT_PRICE_DIR
    aging_lookback_days: int = 30
    short_term_rate: Decimal = Decimal("0.24")
    long_term_rate: Decimal = Decimal("0.15")
    state_rate: Decimal = Decimal("0")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, dotenv: bool = True) -> "Settings":
        """
        Build settings from ``LOTKEEPER_*`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.
            dotenv: Whether to load a ``.env`` file into ``os.environ`` first.
                Ignored when ``environ`` is given.

        Returns:
            Settings with defaults for any unset variable.

        Raises:
            ValueError: If a variable is set to an invalid value.
        """
        if environ is None:
            if dotenv:
                load_dotenv()
            environ = dict(os.environ)

        settings = cls()

        raw_method = environ.get("LOTKEEPER_LOT_METHOD", "").strip()
        lot_method = settings.lot_method
        if raw_method:
            try:
                lot_method = LotMatchingMethod(raw_method.lower())
            except ValueError:
                choices = ", ".join(m.value for m in LotMatchingMethod)
                raise ValueError(f"LOTKEEPER_LOT_METHOD must be one of {choices}, got {raw_method!r}") from None

        debounce = settings.debounce_seconds
        raw_debounce = environ.get("LOTKEEPER_DEBOUNCE_SECONDS", "").strip()
        if raw_debounce:
            try:
                debounce = float(raw_debounce)
            except ValueError:
                raise ValueError(f"LOTKEEPER_DEBOUNCE_SECONDS must be a number, got {raw_debounce!r}") from None
            if debounce < 0:
                raise ValueError(f"LOTKEEPER_DEBOUNCE_SECONDS cannot be negative, got {raw_debounce!r}")

        lookback = settings.aging_lookback_days
        raw_lookback = environ.get("LOTKEEPER_AGING_LOOKBACK_DAYS", "").strip()
        if raw_lookback:
            try:
                lookback = int(raw_lookback)
            except ValueError:
                raise ValueError(f"LOTKEEPER_AGING_LOOKBACK_DAYS must be an integer, got {raw_lookback!r}") from None
            if lookback < 0:
                raise ValueError(f"LOTKEEPER_AGING_LOOKBACK_DAYS cannot be negative, got {raw_lookback!r}")

        raw_dir = environ.get("LOTKEEPER_PRICE_DIR", "").strip()
        price_dir = Path(raw_dir) if raw_dir else settings.price_dir

        return cls(
            lot_method=lot_method,
            debounce_seconds=debounce,
            price_dir=price_dir,
            aging_lookback_days=lookback,
            short_term_rate=_read_rate(environ, "LOTKEEPER_SHORT_TERM_RATE", settings.short_term_rate),
            long_term_rate=_read_rate(environ, "LOTKEEPER_LONG_TERM_RATE", settings.long_term_rate),
            state_rate=_read_rate(environ, "LOTKEEPER_STATE_RATE", settings.state_rate),
        )

    @property
    def tax_rates(self) -> TaxRates:
        return TaxRates(self.short_term_rate, self.long_term_rate, self.state_rate)


def _read_rate(environ: dict[str, str], name: str, default: Decimal) -> Decimal:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        rate = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name} must be a decimal fraction, got {raw!r}") from None
    if not rate.is_finite() or not Decimal("0") <= rate <= Decimal("1"):
        raise ValueError(f"{name} must be between 0 and 1, got {raw!r}")
    return rate

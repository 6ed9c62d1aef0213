"""Exception and warning types raised by the ledger replay engine."""


class LotkeeperError(ValueError):
    """Base class for input errors that callers must surface to the user."""


class InvalidDateError(LotkeeperError):
    """A date could not be parsed from the supplied value."""


class InvalidDateRangeError(LotkeeperError):
    """A reference or sell date falls before the purchase date."""


class InvalidSellDateError(InvalidDateRangeError):
    """An ESPP sell date falls before the purchase date."""


class InvalidGrantDateError(LotkeeperError):
    """An ESPP grant date is not strictly before the purchase date."""


class PriceNotFoundError(LookupError):
    """No price observation exists for an asset."""


class ReplayWarning(UserWarning):
    """Data-integrity signal raised while replaying a ledger (e.g. oversell)."""


class PriceDataWarning(UserWarning):
    """A price lookup failed or was skipped while valuing a date."""


class InvalidTaxRateError(LotkeeperError):
    """A tax rate lies outside 0 to 1."""

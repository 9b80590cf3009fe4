"""Custom exceptions for the UK CGT engine."""

from decimal import Decimal


class CGTError(Exception):
    """Base exception for CGT computation errors."""


class RateError(CGTError):
    """Base exception for FX rate resolution errors."""


class RateUnavailableError(RateError):
    """Raised when a rate has not been published or the currency is absent."""

    def __init__(self, strategy: str, date_key: str, currency: str, reason: str):
        self.strategy = strategy
        self.date_key = date_key
        self.currency = currency
        self.reason = reason
        super().__init__(
            f"No {strategy} rate for {currency} ({date_key}): {reason}"
        )


class RateFetchError(RateError):
    """Raised when a rate source cannot be reached or returns an error.

    Never cached, so the next lookup retries.
    """

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Rate fetch failed for {url}: {reason}")


class StrategySwitchError(CGTError):
    """Raised when re-enrichment under a new FX strategy fails."""

    def __init__(self, from_strategy: str, to_strategy: str, reason: str):
        self.from_strategy = from_strategy
        self.to_strategy = to_strategy
        super().__init__(
            f"Could not switch FX strategy from {from_strategy} to {to_strategy}: {reason}"
        )


class UnderfundedPoolError(CGTError):
    """Raised in strict mode when a disposal exceeds the available holding."""

    def __init__(
        self,
        asset_identity: str,
        transaction_id: str,
        requested: Decimal,
        available: Decimal,
    ):
        self.asset_identity = asset_identity
        self.transaction_id = transaction_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Section 104 pool for {asset_identity} cannot fund disposal {transaction_id}: "
            f"requested={requested}, available={available}"
        )


class InvalidSplitRatioError(CGTError):
    """Raised when a stock split ratio is not of the form 'new:old'."""

    def __init__(self, ratio: str | None):
        self.ratio = ratio
        super().__init__(
            f'Invalid split ratio "{ratio}". Expected "new:old" (e.g. "2:1")'
        )


class DataValidationError(CGTError):
    """Raised when input data fails validation."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error on '{field}': {message}")


class SplitLookupError(CGTError):
    """Raised when stock split data cannot be fetched and nothing is cached."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Split data fetch failed for {url}: {reason}")

"""Data models for the UK CGT engine."""

from ukcgt.models.cgt import (
    AcquisitionMatch,
    Disposal,
    MatchingResult,
    PoolHistoryEntry,
    Section104Pool,
    SplitRatio,
)
from ukcgt.models.enums import (
    DEFAULT_FX_STRATEGY,
    FXStrategy,
    MatchRule,
    OptionType,
    PoolEventType,
    TransactionKind,
)
from ukcgt.models.fx import RateCacheEntry, RateResult, cache_key
from ukcgt.models.reports import (
    CalculationResult,
    RateChangeSplit,
    SA106Figures,
    TaxYearSummary,
)
from ukcgt.models.transaction import EnrichedTransaction, OptionDetails, Transaction

__all__ = [
    "AcquisitionMatch",
    "CalculationResult",
    "cache_key",
    "DEFAULT_FX_STRATEGY",
    "Disposal",
    "EnrichedTransaction",
    "FXStrategy",
    "MatchingResult",
    "MatchRule",
    "OptionDetails",
    "OptionType",
    "PoolEventType",
    "PoolHistoryEntry",
    "RateCacheEntry",
    "RateChangeSplit",
    "RateResult",
    "SA106Figures",
    "Section104Pool",
    "SplitRatio",
    "TaxYearSummary",
    "Transaction",
    "TransactionKind",
]

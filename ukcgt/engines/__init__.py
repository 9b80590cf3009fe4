"""CGT computation engines."""

from ukcgt.engines.aggregator import TaxYearAggregator
from ukcgt.engines.calculator import CGTCalculator
from ukcgt.engines.dividends import DividendLinker
from ukcgt.engines.matcher import MatchingEngine
from ukcgt.engines.splits import parse_split_ratio

__all__ = [
    "CGTCalculator",
    "DividendLinker",
    "MatchingEngine",
    "parse_split_ratio",
    "TaxYearAggregator",
]

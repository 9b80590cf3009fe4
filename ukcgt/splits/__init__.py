"""Automatic stock split detection from a public split data feed."""

from ukcgt.splits.lookup import AUTO_SPLIT_SOURCE, auto_splits_for, with_auto_splits
from ukcgt.splits.sources import (
    JsDelivrSplitSource,
    SplitDataSource,
    SplitRecord,
    parse_split_year,
)

__all__ = [
    "AUTO_SPLIT_SOURCE",
    "auto_splits_for",
    "JsDelivrSplitSource",
    "parse_split_year",
    "SplitDataSource",
    "SplitRecord",
    "with_auto_splits",
]

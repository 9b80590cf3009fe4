"""Database layer for the UK CGT engine."""

from ukcgt.db.repository import (
    InMemoryRateCache,
    RateCache,
    SettingsRepository,
    SplitDataRepository,
    SQLiteRateCache,
)
from ukcgt.db.schema import create_schema

__all__ = [
    "create_schema",
    "InMemoryRateCache",
    "RateCache",
    "SettingsRepository",
    "SplitDataRepository",
    "SQLiteRateCache",
]

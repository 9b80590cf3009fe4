"""Data access layer for FX rates, stock split data and settings."""

import logging
import sqlite3
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Protocol

from ukcgt.models.enums import DEFAULT_FX_STRATEGY, FXStrategy
from ukcgt.models.fx import RateCacheEntry

logger = logging.getLogger(__name__)

FX_STRATEGY_SETTING = "fx_strategy"


class RateCache(Protocol):
    """Persistent rate storage keyed by ``{strategy}-{date_key}-{currency}``."""

    def get(self, key: str) -> RateCacheEntry | None: ...

    def put(self, entry: RateCacheEntry) -> None: ...

    def bulk_put(self, entries: Iterable[RateCacheEntry]) -> None: ...

    def find(
        self, strategy: FXStrategy, date_prefix: str, currency: str
    ) -> list[RateCacheEntry]: ...


class InMemoryRateCache:
    """Dict-backed rate cache, used for tests and one-off runs."""

    def __init__(self) -> None:
        self.entries: dict[str, RateCacheEntry] = {}

    def get(self, key: str) -> RateCacheEntry | None:
        return self.entries.get(key)

    def put(self, entry: RateCacheEntry) -> None:
        self.entries[entry.key] = entry

    def bulk_put(self, entries: Iterable[RateCacheEntry]) -> None:
        for entry in entries:
            self.put(entry)

    def find(
        self, strategy: FXStrategy, date_prefix: str, currency: str
    ) -> list[RateCacheEntry]:
        return sorted(
            (
                e
                for e in self.entries.values()
                if e.strategy == strategy
                and e.currency == currency
                and e.date_key.startswith(date_prefix)
            ),
            key=lambda e: e.date_key,
        )

    def __len__(self) -> int:
        return len(self.entries)


class SQLiteRateCache:
    """Rate cache stored in the ``fx_rates`` table. Writes are idempotent."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get(self, key: str) -> RateCacheEntry | None:
        cursor = self.conn.execute(
            "SELECT strategy, date_key, currency, rate, source FROM fx_rates WHERE id = ?",
            (key,),
        )
        row = cursor.fetchone()
        return self._row_to_entry(row) if row else None

    def put(self, entry: RateCacheEntry) -> None:
        self.bulk_put([entry])

    def bulk_put(self, entries: Iterable[RateCacheEntry]) -> None:
        rows = [
            (e.key, e.strategy.value, e.date_key, e.currency, str(e.rate), e.source)
            for e in entries
        ]
        if not rows:
            return
        self.conn.executemany(
            """INSERT OR REPLACE INTO fx_rates
               (id, strategy, date_key, currency, rate, source)
               VALUES (?, ?, ?, ?, ?, ?)""",
            rows,
        )
        self.conn.commit()

    def find(
        self, strategy: FXStrategy, date_prefix: str, currency: str
    ) -> list[RateCacheEntry]:
        cursor = self.conn.execute(
            """SELECT strategy, date_key, currency, rate, source FROM fx_rates
               WHERE strategy = ? AND currency = ? AND date_key LIKE ?
               ORDER BY date_key""",
            (strategy.value, currency, f"{date_prefix}%"),
        )
        return [entry for row in cursor.fetchall() if (entry := self._row_to_entry(row))]

    def count(self, strategy: FXStrategy | None = None) -> int:
        if strategy is None:
            cursor = self.conn.execute("SELECT COUNT(*) FROM fx_rates")
        else:
            cursor = self.conn.execute(
                "SELECT COUNT(*) FROM fx_rates WHERE strategy = ?", (strategy.value,)
            )
        return cursor.fetchone()[0]

    @staticmethod
    def _row_to_entry(row: tuple) -> RateCacheEntry | None:
        strategy, date_key, currency, rate, source = row
        try:
            return RateCacheEntry(
                strategy=FXStrategy(strategy),
                date_key=date_key,
                currency=currency,
                rate=Decimal(rate),
                source=source,
            )
        except (ValueError, InvalidOperation):
            logger.warning("Ignoring corrupt cached rate %s-%s-%s", strategy, date_key, currency)
            return None


class SettingsRepository:
    """Key/value settings, currently the active FX strategy."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get(self, key: str) -> str | None:
        cursor = self.conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, value)
        )
        self.conn.commit()

    def get_fx_strategy(self) -> FXStrategy:
        """Return the persisted strategy. Unknown values fall back to the default."""
        stored = self.get(FX_STRATEGY_SETTING)
        if stored is None:
            return DEFAULT_FX_STRATEGY
        try:
            return FXStrategy(stored)
        except ValueError:
            logger.warning(
                "Unknown stored FX strategy %r, using %s", stored, DEFAULT_FX_STRATEGY
            )
            return DEFAULT_FX_STRATEGY

    def set_fx_strategy(self, strategy: FXStrategy) -> None:
        self.set(FX_STRATEGY_SETTING, strategy.value)


class SplitDataRepository:
    """Raw stock split year files, kept so later runs can skip or fall back on the network."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get(self, year: int) -> tuple[str, datetime] | None:
        """Return ``(data, fetched_at)`` for ``year``, or None if never fetched."""
        cursor = self.conn.execute(
            "SELECT data, fetched_at FROM split_data WHERE year = ?", (year,)
        )
        row = cursor.fetchone()
        if row is None:
            return None
        data, fetched_at = row
        try:
            return data, datetime.fromisoformat(fetched_at)
        except ValueError:
            logger.warning("Ignoring cached split data for %d with bad timestamp %r", year, fetched_at)
            return None

    def put(self, year: int, data: str, fetched_at: datetime) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO split_data (year, data, fetched_at) VALUES (?, ?, ?)",
            (year, data, fetched_at.isoformat()),
        )
        self.conn.commit()

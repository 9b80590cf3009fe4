"""Tests for filling in stock splits the broker did not report."""

from datetime import date
from decimal import Decimal

import pytest

from ukcgt.engines.matcher import MatchingEngine
from ukcgt.exceptions import SplitLookupError
from ukcgt.models.cgt import SplitRatio
from ukcgt.models.enums import TransactionKind
from ukcgt.models.transaction import EnrichedTransaction
from ukcgt.splits import AUTO_SPLIT_SOURCE, SplitRecord, auto_splits_for, with_auto_splits


def _record(symbol: str, on: date, new: str = "5", old: str = "1") -> SplitRecord:
    return SplitRecord(
        symbol=symbol, split_date=on, ratio=SplitRatio(new=Decimal(new), old=Decimal(old))
    )


class StubSplitSource:
    def __init__(self, records: list[SplitRecord] | None = None):
        self.records = records or []
        self.years: list[list[int]] = []
        self.fail = False

    async def fetch_splits_for_years(self, years):
        self.years.append(list(years))
        if self.fail:
            raise SplitLookupError("stub://splits", "unreachable")
        return self.records


def _today() -> date:
    return date(2024, 6, 1)


class TestAutoSplits:
    def setup_method(self):
        self.source = StubSplitSource([
            _record("TSLA", date(2020, 8, 31)),
            _record("TSLA", date(2022, 8, 24), new="3"),
            _record("NVDA", date(2021, 7, 20), new="4"),
        ])

    @pytest.mark.asyncio
    async def test_adds_splits_for_held_symbols(self, make_tx):
        transactions = [
            make_tx("b1", "BUY", date(2020, 1, 15), quantity="1", price="500", symbol="TSLA"),
            make_tx("s1", "SELL", date(2023, 3, 1), quantity="-15", price="190", symbol="TSLA"),
        ]
        splits = await auto_splits_for(transactions, self.source, today=_today)

        assert [(s.symbol, s.event_date, s.split_ratio) for s in splits] == [
            ("TSLA", date(2020, 8, 31), "5:1"),
            ("TSLA", date(2022, 8, 24), "3:1"),
        ]
        assert self.source.years == [[2020, 2021, 2022, 2023, 2024]]

        split = splits[0]
        assert split.id == "auto-split-TSLA-2020-08-31"
        assert split.kind == TransactionKind.STOCK_SPLIT
        assert split.source == AUTO_SPLIT_SOURCE
        assert split.quantity is None
        assert split.currency == "GBP"

    @pytest.mark.asyncio
    async def test_broker_split_takes_priority(self, make_tx):
        transactions = [
            make_tx("b1", "BUY", date(2020, 1, 15), quantity="1", price="500", symbol="TSLA"),
            make_tx("x1", "STOCK_SPLIT", date(2020, 8, 28), symbol="TSLA", split_ratio="5:1"),
        ]
        splits = await auto_splits_for(transactions, self.source, today=_today)
        assert [s.event_date for s in splits] == [date(2022, 8, 24)]

    @pytest.mark.asyncio
    async def test_broker_split_outside_window_does_not_dedupe(self, make_tx):
        transactions = [
            make_tx("b1", "BUY", date(2020, 1, 15), quantity="1", price="500", symbol="TSLA"),
            make_tx("x1", "STOCK_SPLIT", date(2020, 8, 23), symbol="TSLA", split_ratio="5:1"),
        ]
        splits = await auto_splits_for(transactions, self.source, today=_today)
        assert date(2020, 8, 31) in [s.event_date for s in splits]

    @pytest.mark.asyncio
    async def test_no_holdings(self, make_tx):
        transactions = [make_tx("d1", "DIVIDEND", date(2021, 3, 1), total="10", symbol="TSLA")]
        assert await auto_splits_for(transactions, self.source, today=_today) == []
        assert self.source.years == []

    @pytest.mark.asyncio
    async def test_feed_outage_adds_nothing(self, make_tx):
        self.source.fail = True
        transactions = [
            make_tx("b1", "BUY", date(2020, 1, 15), quantity="1", price="500", symbol="TSLA"),
        ]
        assert await auto_splits_for(transactions, self.source, today=_today) == []

    @pytest.mark.asyncio
    async def test_duplicate_records_added_once(self, make_tx):
        self.source.records.append(_record("TSLA", date(2020, 8, 31)))
        transactions = [
            make_tx("b1", "BUY", date(2020, 1, 15), quantity="1", price="500", symbol="TSLA"),
        ]
        splits = await auto_splits_for(transactions, self.source, today=_today)
        assert [s.id for s in splits].count("auto-split-TSLA-2020-08-31") == 1

    @pytest.mark.asyncio
    async def test_split_completes_matching(self, make_tx):
        transactions = [
            make_tx("b1", "BUY", date(2020, 1, 15), quantity="1", price="500", symbol="TSLA"),
            make_tx("s1", "SELL", date(2023, 3, 1), quantity="-15", price="190", symbol="TSLA"),
        ]
        combined = await with_auto_splits(transactions, self.source, today=_today)
        assert [tx.id for tx in combined[:2]] == ["b1", "s1"]

        enriched = [
            EnrichedTransaction.from_transaction(
                tx, total_gbp=tx.consideration_native, fee_gbp=Decimal("0"), fx_rate=Decimal("1")
            )
            for tx in combined
        ]
        [disposal] = MatchingEngine().match(enriched)[0]
        assert disposal.underfunded is False
        assert disposal.pool_quantity == Decimal("15")
        assert disposal.allowable_cost_gbp == Decimal("500")

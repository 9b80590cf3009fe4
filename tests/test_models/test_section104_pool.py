"""Tests for the Section 104 pool and disposal models."""

from datetime import date
from decimal import Decimal

import pytest

from ukcgt.models.cgt import (
    AcquisitionMatch,
    Disposal,
    MatchingResult,
    Section104Pool,
    SplitRatio,
)
from ukcgt.models.enums import MatchRule, PoolEventType, TransactionKind


class TestSection104Pool:
    def setup_method(self):
        self.pool = Section104Pool(asset_identity="ACME")

    def test_add_accumulates(self):
        self.pool.add(Decimal("100"), Decimal("1005"), date(2023, 1, 10), "b1")
        self.pool.add(Decimal("100"), Decimal("1200"), date(2023, 3, 10), "b2")
        assert self.pool.quantity == Decimal("200")
        assert self.pool.total_cost_gbp == Decimal("2205")
        assert self.pool.average_cost_gbp == Decimal("11.025")

    def test_remove_at_average_cost(self):
        self.pool.add(Decimal("200"), Decimal("2205"), date(2023, 1, 10), "b1")
        cost = self.pool.remove(Decimal("50"), date(2023, 6, 1), "s1")
        assert cost == Decimal("551.25")
        assert self.pool.quantity == Decimal("150")
        assert self.pool.total_cost_gbp == Decimal("1653.75")

    def test_full_removal_takes_whole_cost(self):
        self.pool.add(Decimal("3"), Decimal("100"), date(2023, 1, 10), "b1")
        first = self.pool.remove(Decimal("1"), date(2023, 2, 1), "s1")
        rest = self.pool.remove(Decimal("2"), date(2023, 3, 1), "s2")
        assert first + rest == Decimal("100")
        assert self.pool.quantity == 0
        assert self.pool.total_cost_gbp == 0

    def test_remove_more_than_held(self):
        self.pool.add(Decimal("10"), Decimal("100"), date(2023, 1, 10), "b1")
        with pytest.raises(ValueError):
            self.pool.remove(Decimal("11"), date(2023, 2, 1), "s1")

    def test_non_positive_quantities_rejected(self):
        with pytest.raises(ValueError):
            self.pool.add(Decimal("0"), Decimal("0"), date(2023, 1, 10), "b1")

    def test_split_scales_quantity_only(self):
        self.pool.add(Decimal("100"), Decimal("1000"), date(2023, 1, 10), "b1")
        self.pool.apply_split(SplitRatio(new=Decimal("10"), old=Decimal("1")), date(2023, 3, 1), "sp")
        assert self.pool.quantity == Decimal("1000")
        assert self.pool.total_cost_gbp == Decimal("1000")
        assert self.pool.average_cost_gbp == Decimal("1")

    def test_reverse_split(self):
        self.pool.add(Decimal("100"), Decimal("1000"), date(2023, 1, 10), "b1")
        self.pool.apply_split(SplitRatio(new=Decimal("1"), old=Decimal("4")), date(2023, 3, 1), "sp")
        assert self.pool.quantity == Decimal("25")

    def test_history(self):
        self.pool.add(Decimal("10"), Decimal("100"), date(2023, 1, 10), "b1")
        self.pool.remove(Decimal("4"), date(2023, 2, 1), "s1")
        events = [(h.event_type, h.balance_quantity) for h in self.pool.history]
        assert events == [
            (PoolEventType.BUY, Decimal("10")),
            (PoolEventType.SELL, Decimal("6")),
        ]

    def test_empty_pool_average(self):
        assert self.pool.average_cost_gbp == 0


class TestSplitRatio:
    def test_str(self):
        assert str(SplitRatio(new=Decimal("3"), old=Decimal("2"))) == "3:2"

    def test_must_be_positive(self):
        with pytest.raises(ValueError):
            SplitRatio(new=Decimal("0"), old=Decimal("1"))


class TestDisposal:
    def _disposal(self) -> Disposal:
        return Disposal(
            id="disposal-s1",
            transaction_id="s1",
            asset_identity="ACME",
            kind=TransactionKind.SELL,
            disposal_date=date(2023, 6, 1),
            tax_year="2023/24",
            currency="GBP",
            quantity=Decimal("50"),
            proceeds_gbp=Decimal("1000"),
            disposal_fee_gbp=Decimal("10"),
            matchings=[
                MatchingResult(
                    rule=MatchRule.SAME_DAY,
                    quantity=Decimal("30"),
                    cost_gbp=Decimal("540"),
                    acquisitions=[
                        AcquisitionMatch(
                            transaction_id="b2",
                            acquisition_date=date(2023, 6, 1),
                            quantity=Decimal("30"),
                            cost_gbp=Decimal("540"),
                        )
                    ],
                ),
                MatchingResult(rule=MatchRule.SECTION_104, quantity=Decimal("20"), cost_gbp=Decimal("200")),
            ],
        )

    def test_rule_breakdown(self):
        disposal = self._disposal()
        assert disposal.same_day_quantity == Decimal("30")
        assert disposal.pool_quantity == Decimal("20")
        assert disposal.thirty_day_quantity == 0
        assert disposal.matched_quantity == Decimal("50")
        assert disposal.pool_cost_gbp == Decimal("200")

    def test_gain_includes_disposal_fee(self):
        disposal = self._disposal()
        assert disposal.allowable_cost_gbp == Decimal("740")
        assert disposal.net_proceeds_gbp == Decimal("990")
        assert disposal.gain_gbp == Decimal("250")
        assert not disposal.is_incomplete

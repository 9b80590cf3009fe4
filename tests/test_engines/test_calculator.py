"""End-to-end tests for the CGT calculator."""

from datetime import date
from decimal import Decimal

import pytest

from ukcgt.engines.calculator import CGTCalculator
from ukcgt.exceptions import UnderfundedPoolError
from ukcgt.fx.manager import FXManager
from ukcgt.models.enums import FXStrategy


class TestCGTCalculator:
    def _transactions(self, make_enriched):
        return [
            make_enriched("b1", "BUY", date(2023, 5, 2), quantity="100", price="50", fee="10"),
            make_enriched("s1", "SELL", date(2024, 7, 1), quantity="-60", price="80", fee="6"),
            make_enriched("d1", "DIVIDEND", date(2024, 9, 2), total="25"),
            make_enriched("w1", "TAX_ON_DIVIDEND", date(2024, 9, 2), total="3.75"),
            make_enriched("x1", "BUY", date(2024, 8, 1), quantity="1", price="60000",
                          symbol="BTC", currency="BTC",
                          fx_error="No FX conversion available for non-fiat currency BTC"),
        ]

    def test_full_calculation(self, make_enriched):
        result = CGTCalculator().calculate(self._transactions(make_enriched))

        [disposal] = result.disposals
        assert disposal.allowable_cost_gbp == Decimal("3006")
        assert disposal.gain_gbp == Decimal("1788")
        assert result.pools["ACME"].quantity == Decimal("40")

        summary = result.summary_for("2024/25")
        assert summary.net_gain_or_loss == Decimal("1788")
        assert summary.taxable_gain == 0
        assert summary.gross_dividends_gbp == Decimal("25")
        assert summary.withholding_tax_gbp == Decimal("3.75")
        assert summary.net_dividends_gbp == Decimal("21.25")

        assert result.summary_for("2023/24").disposal_count == 0
        assert result.summary_for("2019/20") is None

    def test_unresolved_transactions_reported(self, make_enriched):
        result = CGTCalculator().calculate(self._transactions(make_enriched))
        assert [tx.id for tx in result.unresolved] == ["x1"]
        assert "BTC" not in result.pools
        assert any("x1" in w for w in result.warnings)

    def test_withholding_line_is_consumed(self, make_enriched):
        result = CGTCalculator().calculate(self._transactions(make_enriched))
        assert "w1" not in [tx.id for tx in result.transactions]

    def test_loss_brought_forward(self, make_enriched):
        transactions = [
            make_enriched("b1", "BUY", date(2024, 5, 2), quantity="10", price="100"),
            make_enriched("s1", "SELL", date(2024, 8, 1), quantity="-10", price="900"),
        ]
        result = CGTCalculator().calculate(transactions, loss_brought_forward=Decimal("2500"))
        summary = result.summary_for("2024/25")
        assert summary.net_gain_or_loss == Decimal("8000")
        assert summary.loss_used == Decimal("2500")
        assert summary.taxable_gain == Decimal("2500")

    def test_strict_mode(self, make_enriched):
        transactions = [
            make_enriched("s1", "SELL", date(2024, 8, 1), quantity="-10", price="900"),
        ]
        with pytest.raises(UnderfundedPoolError):
            CGTCalculator(strict=True).calculate(transactions)


class TestDividendWithholdingScenario:
    @pytest.mark.asyncio
    async def test_usd_trades_and_dividend(self, cache, monthly_source, make_tx):
        monthly_source.months[(2024, 2)] = {"USD": Decimal("1.2625")}
        transactions = [
            make_tx("b1", "BUY", date(2024, 2, 15), quantity="100", price="170", currency="USD"),
            make_tx("s1", "SELL", date(2024, 6, 17), quantity="-50", price="180", currency="USD"),
            make_tx("d1", "DIVIDEND", date(2024, 9, 16), total="21.25", currency="USD",
                    gross_dividend=Decimal("25.00"), withholding_tax=Decimal("3.75")),
        ]
        manager = FXManager(cache, sources={FXStrategy.HMRC_MONTHLY: monthly_source})
        enriched = await manager.enrich(transactions)
        result = CGTCalculator().calculate(enriched)

        assert [d.tax_year for d in result.disposals] == ["2024/25"]
        summary = result.summary_for("2024/25")
        assert summary.dividend_count == 1
        gross, withholding = summary.gross_dividends_gbp, summary.withholding_tax_gbp
        assert abs(withholding / gross - Decimal("0.15")) < Decimal("1e-9")
        assert summary.net_dividends_gbp == gross - withholding
        assert summary.sa106.net_gbp == gross - withholding
        assert summary.sa106.gross_gbp == Decimal("25.00") / Decimal("1.30")

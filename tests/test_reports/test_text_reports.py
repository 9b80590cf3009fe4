"""Tests for the text report generators and formatting filters."""

from datetime import date
from decimal import Decimal

from ukcgt.engines.calculator import CGTCalculator
from ukcgt.reports import DisposalReportGenerator, TaxYearReportGenerator
from ukcgt.reports.formatting import format_gbp, format_quantity


class TestFormatting:
    def test_gbp(self):
        assert format_gbp(Decimal("1234.5")) == "£1,234.50"
        assert format_gbp(Decimal("-1234.567")) == "-£1,234.57"
        assert format_gbp(Decimal("0")) == "£0.00"
        assert format_gbp(None) == "-"

    def test_gbp_rounds_half_up(self):
        assert format_gbp(Decimal("0.125")) == "£0.13"

    def test_quantity(self):
        assert format_quantity(Decimal("10.500")) == "10.5"
        assert format_quantity(Decimal("100")) == "100"
        assert format_quantity(None) == "-"


class TestReports:
    def setup_method(self):
        self.summary_report = TaxYearReportGenerator()
        self.disposal_report = DisposalReportGenerator()

    def _result(self, make_enriched):
        transactions = [
            make_enriched("b1", "BUY", date(2024, 5, 2), quantity="100", price="50"),
            make_enriched("s1", "SELL", date(2024, 11, 4), quantity="-60", price="150", fee="6"),
            make_enriched("b2", "BUY", date(2024, 11, 4), quantity="20", price="148"),
            make_enriched("s2", "SELL", date(2025, 2, 3), quantity="-70", price="160"),
            make_enriched("d1", "DIVIDEND", date(2024, 9, 2), total="21.25").model_copy(
                update={
                    "currency": "USD",
                    "gross_dividend_gbp": Decimal("25"),
                    "withholding_tax_gbp": Decimal("3.75"),
                }
            ),
        ]
        return CGTCalculator().calculate(transactions)

    def test_tax_year_summary(self, make_enriched):
        result = self._result(make_enriched)
        report = self.summary_report.render(result.summaries)

        assert "UK CAPITAL GAINS TAX SUMMARY" in report
        assert "Tax year 2024/25 (2024-04-06 to 2025-04-05)" in report
        assert "Annual exempt amount:      £3,000.00" in report
        assert "(10%/20% -> 18%/24%)" in report
        assert "SA108 box 51 adjustment required: YES" in report
        assert "Foreign income (SA106)" in report
        assert "Foreign tax taken off:     £3.75" in report
        assert "WARNING: 1 disposal(s)" in report

    def test_empty_summary(self):
        report = self.summary_report.render([])
        assert "No taxable events." in report

    def test_disposal_schedule(self, make_enriched):
        result = self._result(make_enriched)
        report = self.disposal_report.render(result.disposals, tax_year="2024/25")

        assert report.startswith("DISPOSAL SCHEDULE 2024/25")
        assert "2024-11-04  ACME  60 units  (2024/25)" in report
        assert "SAME_DAY" in report
        assert "<- b2 (2024-11-04): 20 units, £2,960.00" in report
        assert "Disposal costs:    £6.00" in report
        assert "INCOMPLETE: 10 units have no matching acquisition." in report

    def test_disposal_schedule_filters_year(self, make_enriched):
        result = self._result(make_enriched)
        report = self.disposal_report.render(result.disposals, tax_year="2023/24")
        assert "No disposals." in report

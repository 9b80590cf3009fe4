"""Tax-year summary report generator (SA108 / SA106 figures)."""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from ukcgt.engines.allowances import CGT_RATES_AFTER_CHANGE, CGT_RATES_BEFORE_CHANGE
from ukcgt.models.reports import TaxYearSummary
from ukcgt.reports.formatting import register_filters

TEMPLATE_DIR = Path(__file__).parent / "templates"


class TaxYearReportGenerator:
    """Generates a human-readable summary per UK tax year."""

    def __init__(self) -> None:
        self.env = register_filters(Environment(loader=FileSystemLoader(str(TEMPLATE_DIR))))

    def render(self, summaries: list[TaxYearSummary]) -> str:
        """Render tax-year summaries in the order given."""
        template = self.env.get_template("tax_year_summary.txt")
        return template.render(
            summaries=summaries,
            rates_before=[int(r * 100) for r in CGT_RATES_BEFORE_CHANGE],
            rates_after=[int(r * 100) for r in CGT_RATES_AFTER_CHANGE],
        )

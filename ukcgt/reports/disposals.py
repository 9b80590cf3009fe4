"""Disposal schedule report generator."""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from ukcgt.models.cgt import Disposal
from ukcgt.reports.formatting import register_filters

TEMPLATE_DIR = Path(__file__).parent / "templates"


class DisposalReportGenerator:
    """Generates the per-disposal computation schedule."""

    def __init__(self) -> None:
        self.env = register_filters(Environment(loader=FileSystemLoader(str(TEMPLATE_DIR))))

    def render(self, disposals: list[Disposal], tax_year: str | None = None) -> str:
        """Render disposals, optionally restricted to one tax year."""
        if tax_year is not None:
            disposals = [d for d in disposals if d.tax_year == tax_year]
        template = self.env.get_template("disposals.txt")
        return template.render(disposals=disposals, tax_year=tax_year)

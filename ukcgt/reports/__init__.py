"""Report generation for the UK CGT engine."""

from ukcgt.reports.disposals import DisposalReportGenerator
from ukcgt.reports.tax_year_summary import TaxYearReportGenerator

__all__ = [
    "DisposalReportGenerator",
    "TaxYearReportGenerator",
]

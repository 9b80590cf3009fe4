"""UK Capital Gains Tax engine: FX enrichment, HMRC share matching, tax-year totals."""

__version__ = "0.1.0"

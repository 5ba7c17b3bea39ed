"""Store uploaded PDFs and merge chosen ones into a single document."""

__version__ = "1.0.0"

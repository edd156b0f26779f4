"""Activities entered by hand or imported from CSV."""

from .client import ManualActivitySource, ManualEntryClient, parse_activity_csv

__all__ = ["ManualActivitySource", "ManualEntryClient", "parse_activity_csv"]

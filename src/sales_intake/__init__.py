"""sales-intake — Normalize monthly sales spreadsheets into validated records."""

__version__ = "0.2.0"

RECORD_FIELDS: tuple[str, ...] = ("month", "actual", "lastYear", "mom", "yoy")

"""PayLog: bank SMS to deduplicated transaction ledger."""

__version__ = "1.0.0"

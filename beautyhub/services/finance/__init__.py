"""Finance ledger aggregation."""

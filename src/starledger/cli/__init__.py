"""Command line interface for the star ledger."""

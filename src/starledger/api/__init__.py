"""HTTP request layer for the star ledger."""

from starledger.api.server import create_app

__all__ = ["create_app"]

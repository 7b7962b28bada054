"""
Star Ledger - Tamper-Evident Star Registry

A single-writer, append-only ledger of star registrations. Each block is
hash-linked to its predecessor and appending is gated by a signed
challenge/response workflow.

Main Components:
- Blockchain: block construction, hashing, lookup and integrity validation
- Validation Pool: challenge issuance, expiry and signature verification
- Storage: ordered and key-value stores (in-memory and SQLite)
- API: Flask request layer
- CLI: operator and client commands
"""

__version__ = "0.1.0"
__author__ = "Star Ledger Development Team"

__all__ = []

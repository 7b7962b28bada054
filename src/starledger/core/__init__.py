"""
Star Ledger Core Module

Chain engine, validation pool, storage backends and the shared
encoding, cryptography, configuration and logging helpers they rely on.
"""

__all__ = []

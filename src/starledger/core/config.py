"""
Star Ledger Configuration

All settings are read from ``STARLEDGER_*`` environment variables at import
time. Components accept explicit arguments as well, so tests never need to
touch the environment.
"""

from __future__ import annotations

import os

from starledger.core.exceptions import ConfigurationError


def _get_int(env_var: str, default: int, minimum: int = 0) -> int:
    """Read an integer setting, rejecting malformed or out-of-range values."""
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{env_var} must be an integer (got {raw!r})",
            details={"env_var": env_var},
        ) from exc
    if value < minimum:
        raise ConfigurationError(
            f"{env_var} must be >= {minimum} (got {value})",
            details={"env_var": env_var},
        )
    return value


ENVIRONMENT = os.getenv("STARLEDGER_ENV", "development")

DATA_DIR = os.getenv("STARLEDGER_DATA_DIR", os.path.join(os.getcwd(), "data"))
DATABASE_PATH = os.getenv("STARLEDGER_DB_PATH", os.path.join(DATA_DIR, "starledger.db"))

# Authorization window and challenge format
VALIDATION_WINDOW_SECONDS = _get_int("STARLEDGER_VALIDATION_WINDOW", 300, minimum=1)
CHALLENGE_DOMAIN_TAG = os.getenv("STARLEDGER_CHALLENGE_TAG", "starRegistry").strip() or "starRegistry"

# Registration payload limits
MAX_STORY_BYTES = _get_int("STARLEDGER_MAX_STORY_BYTES", 500, minimum=1)

GENESIS_BODY = "Genesis Block"

API_HOST = os.getenv("STARLEDGER_API_HOST", "127.0.0.1")
API_PORT = _get_int("STARLEDGER_API_PORT", 8000, minimum=1)
API_MAX_JSON_BYTES = _get_int("STARLEDGER_API_MAX_JSON_BYTES", 64 * 1024, minimum=1024)

LOG_LEVEL = os.getenv("STARLEDGER_LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("STARLEDGER_LOG_FILE", "").strip() or None

# SQLite scan page size; bounds memory used by full-ledger scans
SCAN_PAGE_SIZE = _get_int("STARLEDGER_SCAN_PAGE_SIZE", 256, minimum=1)

if LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
    raise ConfigurationError(f"STARLEDGER_LOG_LEVEL is not a logging level: {LOG_LEVEL}")


__all__ = [
    "ENVIRONMENT",
    "DATA_DIR",
    "DATABASE_PATH",
    "VALIDATION_WINDOW_SECONDS",
    "CHALLENGE_DOMAIN_TAG",
    "MAX_STORY_BYTES",
    "GENESIS_BODY",
    "API_HOST",
    "API_PORT",
    "API_MAX_JSON_BYTES",
    "LOG_LEVEL",
    "LOG_FILE",
    "SCAN_PAGE_SIZE",
]

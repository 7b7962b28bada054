"""
Ledger exception hierarchy for Star Ledger.

Provides typed exceptions for chain, authorization and storage operations so
callers can render distinct outcomes (missing record, expired challenge,
rejected signature, store failure) without inspecting messages.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class LedgerError(Exception):
    """Base exception for all ledger-related errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Lookup Errors ====================


class NotFoundError(LedgerError):
    """Raised when a height, hash or identity record does not exist."""
    pass


class AuthorizationNotFoundError(NotFoundError):
    """Raised when no challenge was ever issued for an identity."""
    pass


# ==================== Authorization Errors ====================


class UnauthorizedError(LedgerError):
    """Raised when an identity holds no valid authorization.

    The ``reason`` attribute is one of ``missing``, ``pending``, ``invalid``
    or ``expired``.
    """

    def __init__(
        self,
        message: str,
        reason: str = "missing",
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.reason = reason


# ==================== Input Errors ====================


class MalformedInputError(LedgerError):
    """Raised when a registration is missing fields or carries invalid text.

    Rejected before the chain engine is invoked.
    """
    pass


# ==================== Storage Errors ====================


class StorageError(LedgerError):
    """Raised when an underlying read, write or scan fails."""
    pass


class CorruptedDataError(StorageError):
    """Raised when stored data cannot be decoded into a typed record."""

    def __init__(
        self,
        message: str,
        key: Any = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.key = key


class HeightConflictError(StorageError):
    """Raised when a block is written to a height that is already taken."""

    def __init__(self, message: str, height: Optional[int] = None, **kwargs: Any) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)
        self.height = height


# ==================== Configuration Errors ====================


class ConfigurationError(LedgerError):
    """Raised when ledger configuration is invalid."""
    pass


# ==================== Utility Functions ====================


def is_recoverable_error(exc: Exception) -> bool:
    """Check if an exception represents a recoverable error.

    Args:
        exc: The exception to check

    Returns:
        True if the error is recoverable and the operation can be retried
    """
    if isinstance(exc, LedgerError):
        return exc.recoverable
    return isinstance(exc, (ConnectionError, TimeoutError))


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context: Dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, LedgerError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    if isinstance(exc, UnauthorizedError):
        context["reason"] = exc.reason

    if isinstance(exc, HeightConflictError) and exc.height is not None:
        context["height"] = exc.height

    if isinstance(exc, CorruptedDataError) and exc.key is not None:
        context["key"] = exc.key

    return context

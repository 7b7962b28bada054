"""
Star Ledger - Validation Pool

Challenge/response authorization for appends. Per identity:

    absent -> pending -> valid | invalid | expired

A new challenge request is the only way back to ``pending`` once a record
has expired. A ``valid`` record authorizes exactly one append: it is
consumed before the append runs and written back only if the append fails.

Every read-modify-write on a record runs under that identity's lock;
different identities never contend.
"""

from __future__ import annotations

import json
import logging
import math
import threading
import time
import weakref
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Optional

from starledger.core.config import CHALLENGE_DOMAIN_TAG, VALIDATION_WINDOW_SECONDS
from starledger.core.crypto_utils import verify_signature_hex
from starledger.core.exceptions import (
    AuthorizationNotFoundError,
    CorruptedDataError,
    MalformedInputError,
    StorageError,
    UnauthorizedError,
    get_error_context,
)
from starledger.core.storage import KeyValueStore

logger = logging.getLogger(__name__)


class AuthorizationStatus(str, Enum):
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"


@dataclass(frozen=True)
class AuthorizationRecord:
    """Challenge issued to one identity."""

    identity: str
    challenge: str
    issued_at: int
    window_seconds: int
    status: AuthorizationStatus = AuthorizationStatus.PENDING

    def is_expired(self, now: float) -> bool:
        return now - self.issued_at > self.window_seconds

    def remaining_window(self, now: float) -> int:
        """Whole seconds left before expiry, never negative."""
        return max(0, math.floor(self.issued_at + self.window_seconds - now))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "identity": self.identity,
            "challenge": self.challenge,
            "issuedAt": self.issued_at,
            "windowSeconds": self.window_seconds,
        }
        # pending is stored as the absence of a status
        if self.status is not AuthorizationStatus.PENDING:
            data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthorizationRecord":
        if not isinstance(data, dict):
            raise ValueError("authorization record must be an object")
        identity = data.get("identity")
        challenge = data.get("challenge")
        issued_at = data.get("issuedAt")
        window = data.get("windowSeconds")
        if not isinstance(identity, str) or not isinstance(challenge, str):
            raise ValueError("identity and challenge must be strings")
        for name, value in (("issuedAt", issued_at), ("windowSeconds", window)):
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"'{name}' must be an integer")
        return cls(
            identity=identity,
            challenge=challenge,
            issued_at=issued_at,
            window_seconds=window,
            status=AuthorizationStatus(data.get("status") or AuthorizationStatus.PENDING.value),
        )


@dataclass(frozen=True)
class VerificationResult:
    authorized: bool
    record: AuthorizationRecord

    def to_dict(self) -> Dict[str, Any]:
        record = self.record.to_dict()
        record.setdefault("status", self.record.status.value)
        return {"authorized": self.authorized, "status": record}


SignatureVerifier = Callable[[str, str, str], bool]


class ValidationPool:
    """Per-identity authorization records over an injected key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        window_seconds: int = VALIDATION_WINDOW_SECONDS,
        domain_tag: str = CHALLENGE_DOMAIN_TAG,
        clock: Callable[[], float] = time.time,
        verifier: SignatureVerifier = verify_signature_hex,
    ) -> None:
        """
        Args:
            store: Key-value store for authorization records
            window_seconds: Validity window of a challenge
            domain_tag: Fixed suffix binding challenges to this service
            clock: Seconds-since-epoch source for issuance and expiry
            verifier: ``(identity, message, signature) -> bool``
        """
        self.store = store
        self.window_seconds = int(window_seconds)
        self.domain_tag = domain_tag
        self._clock = clock
        self._verifier = verifier
        # entries vanish once no caller holds the lock
        self._locks: weakref.WeakValueDictionary[str, threading.RLock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    def _identity_lock(self, identity: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(identity)
            if lock is None:
                lock = threading.RLock()
                self._locks[identity] = lock
            return lock

    def _load(self, identity: str) -> Optional[AuthorizationRecord]:
        raw = self.store.get(identity)
        if raw is None:
            return None
        try:
            return AuthorizationRecord.from_dict(json.loads(raw))
        except (ValueError, TypeError) as exc:
            raise CorruptedDataError(
                f"Authorization record for {identity[:16]} is corrupted: {exc}", key=identity
            ) from exc

    def _save(self, record: AuthorizationRecord) -> None:
        self.store.put(record.identity, json.dumps(record.to_dict(), sort_keys=True))

    def generate_challenge(self, identity: str, issued_at: int) -> str:
        return f"{identity}:{issued_at}:{self.domain_tag}"

    # ==================== Operations ====================

    def get_or_create_challenge(self, identity: str) -> AuthorizationRecord:
        """
        Return the identity's live challenge, issuing a new one if none
        exists or the previous one expired.

        The returned record's ``window_seconds`` is the time remaining; the
        stored record keeps the full window.
        """
        if not isinstance(identity, str) or not identity.strip():
            raise MalformedInputError("Identity is required")

        with self._identity_lock(identity):
            now = self._clock()
            existing = self._load(identity)
            if (
                existing is not None
                and existing.status is not AuthorizationStatus.EXPIRED
                and not existing.is_expired(now)
            ):
                return replace(existing, window_seconds=existing.remaining_window(now))

            issued_at = int(now)
            record = AuthorizationRecord(
                identity=identity,
                challenge=self.generate_challenge(identity, issued_at),
                issued_at=issued_at,
                window_seconds=self.window_seconds,
            )
            self._save(record)
            logger.info(
                "Challenge issued",
                extra={
                    "event": "auth.challenge_issued",
                    "identity": identity[:16],
                    "replaced_expired": existing is not None,
                },
            )
            return record

    def verify_signature(self, identity: str, signature: str) -> VerificationResult:
        """
        Check ``signature`` over the identity's challenge and persist the outcome.

        Raises:
            AuthorizationNotFoundError: If no challenge was issued for ``identity``.
        """
        with self._identity_lock(identity):
            record = self._load(identity)
            if record is None:
                raise AuthorizationNotFoundError(
                    "Not found", details={"identity": identity[:16]}
                )

            if record.status is AuthorizationStatus.VALID:
                return VerificationResult(authorized=True, record=record)

            now = self._clock()
            if record.status is AuthorizationStatus.EXPIRED or record.is_expired(now):
                expired = replace(record, status=AuthorizationStatus.EXPIRED)
                self._save(expired)
                logger.info(
                    "Validation expired",
                    extra={"event": "auth.expired", "identity": identity[:16]},
                )
                return VerificationResult(authorized=False, record=replace(expired, window_seconds=0))

            try:
                is_valid = bool(self._verifier(identity, record.challenge, signature))
            except Exception as e:
                logger.warning(
                    "Signature verification error for %s: %s",
                    identity[:16],
                    type(e).__name__,
                    extra={"event": "auth.verify_error", "error": str(e)},
                )
                is_valid = False

            updated = replace(
                record,
                status=AuthorizationStatus.VALID if is_valid else AuthorizationStatus.INVALID,
            )
            self._save(updated)
            logger.info(
                "Signature %s",
                updated.status.value,
                extra={"event": "auth.signature_checked", "identity": identity[:16], "valid": is_valid},
            )
            return VerificationResult(
                authorized=is_valid,
                record=replace(updated, window_seconds=updated.remaining_window(now)),
            )

    def is_authorized(self, identity: str) -> bool:
        """
        Raises:
            UnauthorizedError: Unless the identity holds a valid record.
        """
        record = self._load(identity)
        if record is None:
            raise UnauthorizedError("Not authorized", reason="missing")
        if record.status is not AuthorizationStatus.VALID:
            raise UnauthorizedError("Signature is not valid", reason=record.status.value)
        return True

    def consume(self, identity: str) -> None:
        """Delete the identity's record; it can no longer authorize an append."""
        with self._identity_lock(identity):
            if self._load(identity) is None:
                raise AuthorizationNotFoundError(
                    "Not found", details={"identity": identity[:16]}
                )
            self.store.delete(identity)
        logger.info(
            "Authorization consumed",
            extra={"event": "auth.consumed", "identity": identity[:16]},
        )

    def _restore(self, record: AuthorizationRecord) -> None:
        try:
            self._save(record)
        except StorageError as e:
            logger.error(
                "Could not restore authorization for %s: %s",
                record.identity[:16],
                e,
                extra={"event": "auth.restore_failed", **get_error_context(e)},
            )
            return
        logger.info(
            "Authorization restored",
            extra={"event": "auth.restored", "identity": record.identity[:16]},
        )

    @contextmanager
    def authorization(self, identity: str) -> Iterator[AuthorizationRecord]:
        """
        Spend the identity's authorization on one action.

        The record is consumed before the body runs, so a signature can
        authorize at most one action even if a later write fails. If the
        body raises, the record is written back and the error propagates.

        Raises:
            UnauthorizedError: If the identity is not authorized.
        """
        with self._identity_lock(identity):
            self.is_authorized(identity)
            record = self._load(identity)
            self.consume(identity)
            try:
                yield record
            except BaseException:
                self._restore(record)
                raise

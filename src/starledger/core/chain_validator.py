"""
Star Ledger - Chain Validation

Walks the whole ledger in one streamed pass and reports every integrity
violation it finds:

- hash_mismatch: stored hash differs from the digest of the block
- broken_link: previousBlockHash differs from the prior block's hash
- missing_block: a height below the tip has no stored block
- corrupted_block: the stored payload is not a JSON object

Validation never stops at the first problem and never raises for them.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from starledger.core.block import block_digest
from starledger.core.encoding import constant_time_equals
from starledger.core.storage import OrderedStore

logger = logging.getLogger(__name__)

HASH_MISMATCH = "hash_mismatch"
BROKEN_LINK = "broken_link"
MISSING_BLOCK = "missing_block"
CORRUPTED_BLOCK = "corrupted_block"


@dataclass(frozen=True)
class IntegrityViolation:
    """A single problem found at one height."""

    height: int
    kind: str
    description: str
    expected: Optional[str] = None
    actual: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "height": self.height,
            "type": self.kind,
            "description": self.description,
            "expected": self.expected,
            "actual": self.actual,
        }


@dataclass
class ChainValidationReport:
    """Result of a full-chain validation pass."""

    blocks_checked: int = 0
    tip_height: int = -1
    validation_time: float = 0.0
    violations: List[IntegrityViolation] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.violations

    @property
    def invalid_heights(self) -> List[int]:
        return sorted({v.height for v in self.violations})

    def add(
        self,
        height: int,
        kind: str,
        description: str,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
    ) -> None:
        self.violations.append(IntegrityViolation(height, kind, description, expected, actual))

    def by_kind(self, kind: str) -> List[IntegrityViolation]:
        return [v for v in self.violations if v.kind == kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "blocks_checked": self.blocks_checked,
            "tip_height": self.tip_height,
            "validation_time": self.validation_time,
            "invalid_heights": self.invalid_heights,
            "violations": [v.to_dict() for v in self.violations],
        }


def _parse_stored(raw: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(raw)
    except (ValueError, TypeError):
        return None
    return data if isinstance(data, dict) else None


def stored_hash_is_valid(raw: Optional[str]) -> bool:
    """Recompute the digest of a stored block and compare it to its stored hash."""
    if raw is None:
        return False
    data = _parse_stored(raw)
    if data is None:
        return False
    stored = data.get("hash")
    if not isinstance(stored, str):
        return False
    return constant_time_equals(stored, block_digest(data))


class ChainValidator:
    """Streams an ordered store and collects integrity violations."""

    def __init__(self, store: OrderedStore):
        self.store = store

    def validate(self) -> ChainValidationReport:
        start_time = time.time()
        report = ChainValidationReport()
        tip = self.store.last_key()
        report.tip_height = -1 if tip is None else tip

        expected_height = 0
        # None when the prior block is missing or unreadable
        previous_hash: Optional[str] = None

        for height, raw in self.store.scan():
            while expected_height < height:
                report.add(expected_height, MISSING_BLOCK, f"No block stored at height {expected_height}")
                previous_hash = None
                expected_height += 1
            expected_height = height + 1
            report.blocks_checked += 1

            data = _parse_stored(raw)
            if data is None:
                report.add(height, CORRUPTED_BLOCK, f"Block {height} is not a JSON object")
                previous_hash = None
                continue

            stored_hash = data.get("hash") if isinstance(data.get("hash"), str) else None
            if not stored_hash_is_valid(raw):
                report.add(
                    height,
                    HASH_MISMATCH,
                    f"Block {height} hash does not match its contents",
                    expected=block_digest(data),
                    actual=stored_hash,
                )

            link = data.get("previousBlockHash")
            if height == 0:
                if link:
                    report.add(height, BROKEN_LINK, "Genesis block must not reference a previous hash", actual=str(link))
            elif previous_hash is None or not isinstance(link, str) or not constant_time_equals(link, previous_hash):
                report.add(
                    height,
                    BROKEN_LINK,
                    f"Block {height} previousBlockHash does not match block {height - 1}",
                    expected=previous_hash,
                    actual=link if isinstance(link, str) else None,
                )

            previous_hash = stored_hash

        report.validation_time = time.time() - start_time

        if report.valid:
            logger.info(
                "Chain validated: %d blocks",
                report.blocks_checked,
                extra={"event": "chain.validated", "tip_height": report.tip_height},
            )
        else:
            logger.warning(
                "Chain validation found %d violations at heights %s",
                len(report.violations),
                report.invalid_heights,
                extra={"event": "chain.integrity_violation", "tip_height": report.tip_height},
            )
        return report

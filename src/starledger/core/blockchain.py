"""
Star Ledger - Chain Engine

Owns block construction, hashing, height tracking and lookup over an
injected ordered store. The engine is the single writer for its store:
``add_block`` holds ``self._lock`` across the height read and the write,
and the store's insert refuses an existing height, so two appends can
never land on the same height.

Lookups return ``None`` when nothing matches; store failures surface as
``StorageError``.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterator, List, Optional

from starledger.core.block import (
    Block,
    RegistrationBody,
    deserialize_block,
    genesis_block,
    serialize_block,
)
from starledger.core.chain_validator import ChainValidationReport, ChainValidator, stored_hash_is_valid
from starledger.core.config import GENESIS_BODY
from starledger.core.encoding import constant_time_equals
from starledger.core.exceptions import MalformedInputError, StorageError
from starledger.core.storage import OrderedStore

logger = logging.getLogger(__name__)


def chain_height(store: OrderedStore) -> int:
    """Highest stored height, or -1 for an empty store."""
    last = store.last_key()
    return -1 if last is None else int(last)


class Blockchain:
    """Append-only, hash-linked ledger of star registrations."""

    def __init__(
        self,
        store: OrderedStore,
        clock: Callable[[], float] = time.time,
        genesis_body: str = GENESIS_BODY,
    ) -> None:
        """
        Args:
            store: Ordered store holding serialized blocks keyed by height
            clock: Seconds-since-epoch source used to stamp blocks
            genesis_body: Fixed body of the height-0 block
        """
        self.store = store
        self._clock = clock
        self._genesis_body = genesis_body
        self._lock = threading.RLock()
        self._ensure_genesis()

    def _ensure_genesis(self) -> None:
        with self._lock:
            if self.get_height() != -1:
                return
            block = genesis_block(self._timestamp(), self._genesis_body)
            self.store.insert(block.height, serialize_block(block))
            logger.info(
                "Genesis block created",
                extra={"event": "chain.genesis_created", "block_hash": block.hash},
            )

    def _timestamp(self) -> str:
        return str(int(self._clock()))

    def _load(self, height: int) -> Optional[Block]:
        raw = self.store.get(height)
        if raw is None:
            return None
        return deserialize_block(raw, key=height)

    def _iter_blocks(self) -> Iterator[Block]:
        for height, raw in self.store.scan():
            yield deserialize_block(raw, key=height)

    # ==================== Queries ====================

    def get_height(self) -> int:
        """Highest assigned height, or -1 for an empty store."""
        return chain_height(self.store)

    def get_block(self, height: int) -> Optional[Block]:
        """Block at ``height`` with its story decoded, or None."""
        if not isinstance(height, int) or isinstance(height, bool) or height < 0:
            return None
        block = self._load(height)
        return block.with_decoded_text() if block is not None else None

    def get_block_by_hash(self, block_hash: str) -> Optional[Block]:
        """
        First block, by ascending height, whose stored hash equals ``block_hash``.

        Hashes are compared in constant time. Duplicate hashes cannot occur
        for blocks written by this engine, so the first match is returned.
        """
        for block in self._iter_blocks():
            if constant_time_equals(block.hash, block_hash):
                return block.with_decoded_text()
        return None

    def get_blocks_by_address(self, identity: str) -> List[Block]:
        """All blocks registered by ``identity`` in ascending height order."""
        return [
            block.with_decoded_text()
            for block in self._iter_blocks()
            if block.identity is not None and block.identity == identity
        ]

    # ==================== Append ====================

    def add_block(self, body: RegistrationBody) -> Block:
        """
        Seal ``body`` into the next block and persist it.

        Height, timestamp, previous hash and hash are assigned here; nothing
        is written unless every step before the insert succeeds.

        Raises:
            MalformedInputError: If ``body`` is not a RegistrationBody
            StorageError: If the store cannot be read or written
        """
        if not isinstance(body, RegistrationBody):
            raise MalformedInputError("Block body must be a registration")

        with self._lock:
            current = self.get_height()
            height = current + 1
            previous_hash = None
            if height > 0:
                previous = self._load(current)
                if previous is None:
                    raise StorageError(f"Block {current} disappeared while appending")
                previous_hash = previous.hash

            block = Block(
                height=height,
                time=self._timestamp(),
                body=body,
                previous_block_hash=previous_hash,
            ).sealed()
            self.store.insert(height, serialize_block(block))

        logger.info(
            "Block #%d added",
            block.height,
            extra={
                "event": "chain.block_added",
                "height": block.height,
                "block_hash": block.hash[:16],
                "identity": body.identity[:16],
            },
        )
        return block

    # ==================== Integrity ====================

    def validate_block_hash(self, height: int) -> bool:
        """Recompute the digest of the stored block and compare it to its hash."""
        return stored_hash_is_valid(self.store.get(height))

    def validate_chain(self) -> ChainValidationReport:
        """Check every height; collects all violations in one pass."""
        return ChainValidator(self.store).validate()

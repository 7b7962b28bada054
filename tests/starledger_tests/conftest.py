"""
Shared fixtures for Star Ledger tests.

Engines run over the in-memory stores with a controllable clock so expiry
arithmetic and block timestamps are deterministic.
"""

import pytest

from starledger.core.block import RegistrationBody, StarRecord
from starledger.core.blockchain import Blockchain
from starledger.core.crypto_utils import deterministic_keypair_from_seed, sign_message_hex
from starledger.core.storage import MemoryKeyValueStore, MemoryOrderedStore
from starledger.core.validation_pool import ValidationPool

START_TIME = 1_700_000_000


class FakeClock:
    """Manually advanced seconds-since-epoch clock."""

    def __init__(self, now: float = START_TIME):
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger_store():
    return MemoryOrderedStore()


@pytest.fixture
def auth_store():
    return MemoryKeyValueStore()


@pytest.fixture
def blockchain(ledger_store, clock):
    return Blockchain(ledger_store, clock=clock)


@pytest.fixture
def pool(auth_store, clock):
    return ValidationPool(auth_store, window_seconds=300, clock=clock)


@pytest.fixture
def keypair():
    """(private_hex, identity) derived from a fixed seed."""
    return deterministic_keypair_from_seed(b"star-ledger-test-identity-seed-1")


@pytest.fixture
def other_keypair():
    return deterministic_keypair_from_seed(b"star-ledger-test-identity-seed-2")


@pytest.fixture
def make_body():
    def _make(identity="abc", ra="16h29m", dec="-26°29'", story="hello", **extra):
        return RegistrationBody(identity=identity, item=StarRecord.from_plain(ra, dec, story, **extra))

    return _make


@pytest.fixture
def authorize(pool):
    """Run the full challenge/verify cycle for a keypair."""

    def _authorize(private_hex, identity):
        record = pool.get_or_create_challenge(identity)
        signature = sign_message_hex(private_hex, record.challenge)
        return pool.verify_signature(identity, signature)

    return _authorize

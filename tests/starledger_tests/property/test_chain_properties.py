"""
Property tests for chain invariants and story validation.
"""

import json

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from starledger.core.block import RegistrationBody, StarRecord
from starledger.core.blockchain import Blockchain
from starledger.core.encoding import decode_text, encode_text
from starledger.core.exceptions import MalformedInputError
from starledger.core.storage import MemoryOrderedStore

ascii_stories = st.text(alphabet=st.characters(max_codepoint=127), min_size=1, max_size=500)
non_ascii_stories = st.text(min_size=1, max_size=100).filter(lambda s: not s.isascii())

registrations = st.lists(
    st.tuples(
        st.sampled_from(["alice", "bob", "carol"]),
        st.text(alphabet="0123456789hms ", min_size=1, max_size=12).filter(str.strip),
        ascii_stories,
    ),
    min_size=1,
    max_size=12,
)


class _TickingClock:
    def __init__(self):
        self.now = 1_700_000_000

    def __call__(self):
        self.now += 1
        return self.now


def _chain_from(entries):
    chain = Blockchain(MemoryOrderedStore(), clock=_TickingClock())
    for identity, coordinate, story in entries:
        chain.add_block(RegistrationBody(identity, StarRecord.from_plain(coordinate, coordinate, story)))
    return chain


@given(registrations)
@settings(max_examples=40, deadline=None)
def test_every_block_links_to_its_predecessor(entries):
    chain = _chain_from(entries)

    assert chain.get_height() == len(entries)
    for height in range(1, len(entries) + 1):
        block = chain.get_block(height)
        assert block.height == height
        assert block.previous_block_hash == chain.get_block(height - 1).hash
        assert chain.validate_block_hash(height)
    assert chain.validate_chain().valid


@given(registrations)
@settings(max_examples=40, deadline=None)
def test_identity_lookup_partitions_the_chain(entries):
    chain = _chain_from(entries)

    found = []
    for identity in {identity for identity, _, _ in entries}:
        blocks = chain.get_blocks_by_address(identity)
        heights = [b.height for b in blocks]
        assert heights == sorted(heights)
        assert all(b.identity == identity for b in blocks)
        found.extend(heights)

    assert sorted(found) == list(range(1, len(entries) + 1))


@given(registrations, st.data())
@settings(max_examples=40, deadline=None, suppress_health_check=[HealthCheck.too_slow])
def test_tampering_any_block_is_detected(entries, data):
    chain = _chain_from(entries)
    target = data.draw(st.integers(min_value=1, max_value=len(entries)))
    stored = json.loads(chain.store.get(target))
    stored["body"]["item"]["field_b"] = stored["body"]["item"]["field_b"] + "'"
    chain.store.put(target, json.dumps(stored))

    report = chain.validate_chain()

    assert not chain.validate_block_hash(target)
    assert target in report.invalid_heights
    assert all(chain.validate_block_hash(h) for h in range(len(entries) + 1) if h != target)


@given(ascii_stories)
def test_ascii_stories_decode_to_themselves(story):
    assert decode_text(encode_text(story)) == story


@given(non_ascii_stories)
def test_non_ascii_stories_rejected(story):
    with pytest.raises(MalformedInputError, match="non-ASCII"):
        encode_text(story)


@given(st.integers(min_value=501, max_value=2000))
def test_oversized_stories_rejected(size):
    with pytest.raises(MalformedInputError) as exc_info:
        encode_text("a" * size)
    assert exc_info.value.details["size"] == size

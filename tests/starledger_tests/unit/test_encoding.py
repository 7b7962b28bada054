"""
Unit tests for story encoding, canonical JSON and constant-time comparison.
"""

import pytest

from starledger.core.encoding import (
    canonical_json,
    constant_time_equals,
    decode_text,
    encode_text,
    sha256_hex,
)
from starledger.core.exceptions import MalformedInputError


class TestStoryEncoding:

    def test_hex_encoding(self):
        assert encode_text("hello") == "68656c6c6f"
        assert decode_text("68656c6c6f") == "hello"

    def test_limit_is_inclusive(self):
        assert decode_text(encode_text("a" * 500)) == "a" * 500

    def test_over_limit_rejected(self):
        with pytest.raises(MalformedInputError) as exc_info:
            encode_text("a" * 501)
        assert exc_info.value.details == {"size": 501, "max_bytes": 500}

    def test_custom_limit(self):
        with pytest.raises(MalformedInputError):
            encode_text("abcdef", max_bytes=5)

    @pytest.mark.parametrize("text", ["café", "星", "tab\tok but emoji 🌟"])
    def test_non_ascii_rejected(self, text):
        with pytest.raises(MalformedInputError, match="non-ASCII"):
            encode_text(text)

    @pytest.mark.parametrize("text", ["", None, 42])
    def test_missing_story_rejected(self, text):
        with pytest.raises(MalformedInputError, match="required"):
            encode_text(text)

    def test_control_characters_are_ascii(self):
        assert decode_text(encode_text("line one\nline two")) == "line one\nline two"


class TestCanonicalJson:

    def test_key_order_and_whitespace(self):
        assert canonical_json({"b": 1, "a": {"d": 2, "c": 3}}) == '{"a":{"c":3,"d":2},"b":1}'

    def test_non_ascii_is_escaped(self):
        assert canonical_json({"dec": "-26°29'"}) == '{"dec":"-26\\u00b029\'"}'

    def test_sha256_hex(self):
        assert sha256_hex("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


class TestConstantTimeEquals:

    def test_equal_and_unequal(self):
        assert constant_time_equals("abc", "abc")
        assert not constant_time_equals("abc", "abd")
        assert not constant_time_equals("abc", "ab")

    def test_non_ascii_does_not_raise(self):
        assert not constant_time_equals("ünï", "abc")

    def test_non_strings_never_match(self):
        assert not constant_time_equals(None, None)
        assert not constant_time_equals(b"abc", "abc")

import pytest

from starledger.core.crypto_utils import (
    derive_identity,
    deterministic_keypair_from_seed,
    generate_keypair_hex,
    is_valid_identity,
    sign_message_hex,
    verify_signature_hex,
    _CURVE_ORDER,
)

CHALLENGE = "ab" * 64 + ":1700000000:starRegistry"


def test_generated_keypair_round_trip():
    private_hex, identity = generate_keypair_hex()
    assert len(private_hex) == 64
    assert is_valid_identity(identity)
    assert derive_identity(private_hex) == identity

    signature = sign_message_hex(private_hex, CHALLENGE)
    assert len(signature) == 128
    assert verify_signature_hex(identity, CHALLENGE, signature)


def test_deterministic_keypair_is_stable():
    assert deterministic_keypair_from_seed(b"seed") == deterministic_keypair_from_seed(b"seed")
    assert deterministic_keypair_from_seed(b"seed") != deterministic_keypair_from_seed(b"other")


def test_signature_is_low_s():
    private_hex, _ = deterministic_keypair_from_seed(b"low-s")
    for i in range(10):
        signature = sign_message_hex(private_hex, f"message {i}")
        s = int(signature[64:], 16)
        assert s <= _CURVE_ORDER // 2


def test_high_s_signature_rejected():
    private_hex, identity = deterministic_keypair_from_seed(b"malleable")
    signature = sign_message_hex(private_hex, CHALLENGE)
    r = int(signature[:64], 16)
    s = int(signature[64:], 16)
    high_s = (r.to_bytes(32, "big") + (_CURVE_ORDER - s).to_bytes(32, "big")).hex()
    assert verify_signature_hex(identity, CHALLENGE, high_s) is False


def test_signature_bound_to_message_and_key():
    private_hex, identity = deterministic_keypair_from_seed(b"alice")
    _, other_identity = deterministic_keypair_from_seed(b"bob")
    signature = sign_message_hex(private_hex, CHALLENGE)

    assert verify_signature_hex(identity, CHALLENGE + "x", signature) is False
    assert verify_signature_hex(other_identity, CHALLENGE, signature) is False


def test_bytes_and_str_messages_agree():
    private_hex, identity = deterministic_keypair_from_seed(b"bytes")
    signature = sign_message_hex(private_hex, CHALLENGE.encode("utf-8"))
    assert verify_signature_hex(identity, CHALLENGE, signature)


@pytest.mark.parametrize("signature", ["", "not-hex", "00" * 63, "00" * 64, "ff" * 64])
def test_malformed_signature_returns_false(signature):
    _, identity = deterministic_keypair_from_seed(b"garbage")
    assert verify_signature_hex(identity, CHALLENGE, signature) is False


@pytest.mark.parametrize("identity", ["", "abc", "00" * 64, "zz" * 64])
def test_malformed_identity_raises(identity):
    with pytest.raises(ValueError):
        verify_signature_hex(identity, CHALLENGE, "00" * 64)


@pytest.mark.parametrize(
    "identity,expected",
    [("ab" * 64, True), ("AB" * 64, True), ("ab" * 63, False), ("g" * 128, False), (None, False)],
)
def test_is_valid_identity(identity, expected):
    assert is_valid_identity(identity) is expected

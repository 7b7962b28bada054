"""secp256k1 helpers for identity keys and challenge signatures.

An identity is the 64-byte uncompressed public key (x || y, no ``04``
prefix) as 128 hex characters. Signatures are 64-byte ``r || s`` hex in
canonical low-S form over ECDSA/SHA-256 of the challenge bytes.
"""

from __future__ import annotations

import re

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

_CURVE = ec.SECP256K1()
_CURVE_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)
_IDENTITY_RE = re.compile(r"[0-9a-fA-F]{128}")

def _normalize_private_value(value: int) -> int:
    normalized = value % _CURVE_ORDER
    if normalized == 0:
        normalized = 1
    return normalized

def _private_key_to_hex(private_key: ec.EllipticCurvePrivateKey) -> str:
    return private_key.private_numbers().private_value.to_bytes(32, "big").hex()

def _public_key_to_hex(public_key: ec.EllipticCurvePublicKey) -> str:
    numbers = public_key.public_numbers()
    return (numbers.x.to_bytes(32, "big") + numbers.y.to_bytes(32, "big")).hex()

def _as_bytes(message: str | bytes) -> bytes:
    return message.encode("utf-8") if isinstance(message, str) else message

def is_valid_identity(identity: str) -> bool:
    """Check the identity is a well-formed public key hex string."""
    return isinstance(identity, str) and _IDENTITY_RE.fullmatch(identity) is not None

def load_private_key_from_hex(private_hex: str) -> ec.EllipticCurvePrivateKey:
    return ec.derive_private_key(_normalize_private_value(int(private_hex, 16)), _CURVE)

def load_public_key_from_hex(public_hex: str) -> ec.EllipticCurvePublicKey:
    """
    Raises:
        ValueError: If the hex is malformed or not a point on the curve.
    """
    raw = bytes.fromhex(public_hex)
    if len(raw) != 64:
        raise ValueError("Public key hex must be 64 bytes (uncompressed without prefix).")
    return ec.EllipticCurvePublicKey.from_encoded_point(_CURVE, b"\x04" + raw)

def generate_keypair_hex() -> tuple[str, str]:
    """Return ``(private_hex, identity)`` for a fresh key."""
    private_key = ec.generate_private_key(_CURVE)
    return _private_key_to_hex(private_key), _public_key_to_hex(private_key.public_key())

def derive_identity(private_hex: str) -> str:
    private_key = load_private_key_from_hex(private_hex)
    return _public_key_to_hex(private_key.public_key())

def deterministic_keypair_from_seed(seed: bytes) -> tuple[str, str]:
    if len(seed) < 32:
        seed = seed.ljust(32, b"\x00")
    private_value = _normalize_private_value(int.from_bytes(seed[:32], "big"))
    private_key = ec.derive_private_key(private_value, _CURVE)
    return _private_key_to_hex(private_key), _public_key_to_hex(private_key.public_key())

def is_canonical_signature(r: int, s: int) -> bool:
    """True if both components are in range and ``s`` is in low-S form."""
    if not (1 <= r < _CURVE_ORDER and 1 <= s < _CURVE_ORDER):
        return False
    return s <= _CURVE_ORDER // 2

def sign_message_hex(private_hex: str, message: str | bytes) -> str:
    private_key = load_private_key_from_hex(private_hex)
    der_signature = private_key.sign(_as_bytes(message), ec.ECDSA(hashes.SHA256()))
    r, s = decode_dss_signature(der_signature)
    if s > _CURVE_ORDER // 2:
        s = _CURVE_ORDER - s
    return (r.to_bytes(32, "big") + s.to_bytes(32, "big")).hex()

def verify_signature_hex(identity: str, message: str | bytes, signature_hex: str) -> bool:
    """
    Verify ``signature_hex`` was produced by the key behind ``identity``.

    Malformed signatures return False; a malformed identity raises ValueError.
    """
    public_key = load_public_key_from_hex(identity)
    try:
        raw_signature = bytes.fromhex(signature_hex)
        if len(raw_signature) != 64:
            return False
        r = int.from_bytes(raw_signature[:32], "big")
        s = int.from_bytes(raw_signature[32:], "big")
        if not is_canonical_signature(r, s):
            return False
        der_signature = encode_dss_signature(r, s)
        public_key.verify(der_signature, _as_bytes(message), ec.ECDSA(hashes.SHA256()))
        return True
    except (InvalidSignature, ValueError, TypeError):
        return False

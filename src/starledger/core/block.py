"""
Block records for the star ledger.

A block is created once by the chain engine and never modified afterwards.
Records are frozen dataclasses; the persisted form is produced by
``to_dict(include_decoded=False)`` and read back with ``from_dict``, which
rejects anything that does not match the stored schema.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Union

from starledger.core.config import GENESIS_BODY, MAX_STORY_BYTES
from starledger.core.encoding import canonical_json, decode_text, encode_text, sha256_hex
from starledger.core.exceptions import CorruptedDataError, MalformedInputError


def _require_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string when present")
    return value


@dataclass(frozen=True)
class StarRecord:
    """Registered star: coordinates plus a hex-encoded ASCII story."""

    field_a: str
    field_b: str
    text: str
    magnitude: Optional[str] = None
    constellation: Optional[str] = None
    # Derived on read paths; never persisted and never hashed
    text_decoded: Optional[str] = None

    @classmethod
    def from_plain(
        cls,
        field_a: str,
        field_b: str,
        story: str,
        magnitude: Optional[str] = None,
        constellation: Optional[str] = None,
        max_bytes: int = MAX_STORY_BYTES,
    ) -> "StarRecord":
        """
        Build a record from caller input, encoding the story.

        Raises:
            MalformedInputError: If a coordinate is missing or the story is
                empty, non-ASCII or too long.
        """
        if not isinstance(field_a, str) or not field_a.strip():
            raise MalformedInputError("Ra is required")
        if not isinstance(field_b, str) or not field_b.strip():
            raise MalformedInputError("Dec is required")
        return cls(
            field_a=field_a,
            field_b=field_b,
            text=encode_text(story, max_bytes=max_bytes),
            magnitude=magnitude or None,
            constellation=constellation or None,
        )

    def with_decoded_text(self) -> "StarRecord":
        try:
            return replace(self, text_decoded=decode_text(self.text))
        except (ValueError, UnicodeDecodeError) as exc:
            raise CorruptedDataError("Stored story is not valid hex-encoded ASCII") from exc

    def to_dict(self, include_decoded: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "field_a": self.field_a,
            "field_b": self.field_b,
            "text": self.text,
        }
        if self.magnitude is not None:
            data["magnitude"] = self.magnitude
        if self.constellation is not None:
            data["constellation"] = self.constellation
        if include_decoded and self.text_decoded is not None:
            data["textDecoded"] = self.text_decoded
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StarRecord":
        if not isinstance(data, dict):
            raise ValueError("item must be an object")
        return cls(
            field_a=_require_str(data, "field_a"),
            field_b=_require_str(data, "field_b"),
            text=_require_str(data, "text"),
            magnitude=_optional_str(data, "magnitude"),
            constellation=_optional_str(data, "constellation"),
        )


@dataclass(frozen=True)
class RegistrationBody:
    """Block payload: who registered which star."""

    identity: str
    item: StarRecord

    def to_dict(self, include_decoded: bool = True) -> Dict[str, Any]:
        return {"identity": self.identity, "item": self.item.to_dict(include_decoded)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistrationBody":
        if not isinstance(data, dict):
            raise ValueError("body must be an object")
        return cls(identity=_require_str(data, "identity"), item=StarRecord.from_dict(data.get("item")))


@dataclass(frozen=True)
class Block:
    """A sealed ledger entry."""

    height: int
    time: str
    body: Union[RegistrationBody, str]
    hash: str = ""
    previous_block_hash: Optional[str] = None

    @property
    def is_genesis(self) -> bool:
        return self.height == 0

    @property
    def identity(self) -> Optional[str]:
        if isinstance(self.body, RegistrationBody):
            return self.body.identity
        return None

    def calculate_hash(self) -> str:
        return block_digest(self.to_dict(include_decoded=False))

    def sealed(self) -> "Block":
        """Return a copy with ``hash`` computed over the canonical form."""
        return replace(self, hash=self.calculate_hash())

    def with_decoded_text(self) -> "Block":
        if self.is_genesis or not isinstance(self.body, RegistrationBody):
            return self
        body = replace(self.body, item=self.body.item.with_decoded_text())
        return replace(self, body=body)

    def to_dict(self, include_decoded: bool = True) -> Dict[str, Any]:
        """Convert to the stored schema (plus ``textDecoded`` when attached)."""
        data: Dict[str, Any] = {
            "height": self.height,
            "time": self.time,
            "hash": self.hash,
            "body": (
                self.body.to_dict(include_decoded)
                if isinstance(self.body, RegistrationBody)
                else self.body
            ),
        }
        if self.previous_block_hash is not None:
            data["previousBlockHash"] = self.previous_block_hash
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Block":
        if not isinstance(data, dict):
            raise ValueError("block must be an object")
        height = data.get("height")
        if not isinstance(height, int) or isinstance(height, bool) or height < 0:
            raise ValueError("'height' must be a non-negative integer")

        raw_body = data.get("body")
        body: Union[RegistrationBody, str]
        if height == 0 and isinstance(raw_body, str):
            body = raw_body
        else:
            body = RegistrationBody.from_dict(raw_body)

        return cls(
            height=height,
            time=_require_str(data, "time"),
            body=body,
            hash=_require_str(data, "hash"),
            previous_block_hash=_optional_str(data, "previousBlockHash"),
        )

    def __repr__(self) -> str:
        return f"Block(height={self.height}, hash={self.hash[:8]}...)"


def block_digest(data: Dict[str, Any]) -> str:
    """SHA-256 hex of a block dict with its ``hash`` field held empty."""
    return sha256_hex(canonical_json({**data, "hash": ""}))


def genesis_block(timestamp: str, body: str = GENESIS_BODY) -> Block:
    return Block(height=0, time=timestamp, body=body).sealed()


def serialize_block(block: Block) -> str:
    return json.dumps(block.to_dict(include_decoded=False), sort_keys=True)


def deserialize_block(raw: str, key: Any = None) -> Block:
    """
    Decode a stored block.

    Raises:
        CorruptedDataError: If the payload is not a well-formed block.
    """
    try:
        return Block.from_dict(json.loads(raw))
    except (ValueError, TypeError) as exc:
        raise CorruptedDataError(
            f"Stored block {key} is corrupted: {exc}", key=key
        ) from exc

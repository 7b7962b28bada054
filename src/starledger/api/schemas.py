from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from starledger.core.block import RegistrationBody, StarRecord
from starledger.core.config import MAX_STORY_BYTES
from starledger.core.crypto_utils import is_valid_identity
from starledger.core.encoding import encode_text
from starledger.core.exceptions import MalformedInputError


def _required_text(value: str, name: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{name} is required")
    return value


def _valid_identity(value: str) -> str:
    _required_text(value, "identity")
    if not is_valid_identity(value):
        raise ValueError("identity must be a 128-character hex public key")
    return value


class ValidationRequestInput(BaseModel):
    identity: str = Field(validation_alias=AliasChoices("identity", "address"))

    @field_validator("identity")
    @classmethod
    def _identity_required(cls, value: str) -> str:
        return _valid_identity(value)


class SignatureInput(BaseModel):
    identity: str = Field(validation_alias=AliasChoices("identity", "address"))
    signature: str

    @field_validator("identity")
    @classmethod
    def _identity_required(cls, value: str) -> str:
        return _valid_identity(value)

    @field_validator("signature")
    @classmethod
    def _signature_required(cls, value: str) -> str:
        return _required_text(value, "signature")


class StarInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    field_a: str = Field(validation_alias=AliasChoices("field_a", "ra"))
    field_b: str = Field(validation_alias=AliasChoices("field_b", "dec"))
    text: str = Field(validation_alias=AliasChoices("text", "story"))
    magnitude: Optional[str] = Field(default=None, validation_alias=AliasChoices("magnitude", "mag"))
    constellation: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("constellation", "cen")
    )

    @field_validator("field_a", "field_b")
    @classmethod
    def _coordinate_required(cls, value: str, info) -> str:
        return _required_text(value, info.field_name)

    @field_validator("text")
    @classmethod
    def _story_limits(cls, value: str) -> str:
        try:
            encode_text(value, max_bytes=MAX_STORY_BYTES)
        except MalformedInputError as exc:
            raise ValueError(exc.message) from exc
        return value


class RegistrationInput(BaseModel):
    identity: str = Field(validation_alias=AliasChoices("identity", "address"))
    item: StarInput = Field(validation_alias=AliasChoices("item", "star"))

    @field_validator("identity")
    @classmethod
    def _identity_required(cls, value: str) -> str:
        return _valid_identity(value)

    def to_body(self) -> RegistrationBody:
        return RegistrationBody(
            identity=self.identity,
            item=StarRecord.from_plain(
                self.item.field_a,
                self.item.field_b,
                self.item.text,
                magnitude=self.item.magnitude,
                constellation=self.item.constellation,
            ),
        )

"""
Colored coin protocol: token metadata, pay-to-contract keys and color ids.

Pay-to-contract (TIP-0020): for a base public key P and token metadata m,

    commitment = SHA256(P || SHA256(canonical_json(m)))
    P2C public key  = P + commitment*G
    P2C private key = (p + commitment) mod n

Color ids are 33 bytes: a type byte followed by SHA256 of a payload.
- c1 (reissuable): payload is the P2PKH script of the P2C public key
- c2 (non-reissuable): payload is the serialized funding outpoint
- c3 (NFT): as c2, tagged c3; the issued amount is always 1
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from tapwallet.constants import (
    COLOR_ID_LENGTH,
    COLOR_TYPE_NFT,
    COLOR_TYPE_NON_REISSUABLE,
    COLOR_TYPE_REISSUABLE,
)
from tapwallet.crypto import add_scalars, derive_public_key, sha256, tweak_public_key
from tapwallet.errors import InvalidColorIdError, InvalidMetadataError, KeyDerivationError
from tapwallet.validation import is_hex, is_valid_txid, sanitize_image_url, sanitize_url
from tapwallet.wallet.address import pubkey_to_p2pkh_script


class TokenType(str, Enum):
    REISSUABLE = "reissuable"
    NON_REISSUABLE = "non_reissuable"
    NFT = "nft"

    @property
    def color_type(self) -> int:
        return _COLOR_TYPES[self]

    @property
    def uses_out_point(self) -> bool:
        return self is not TokenType.REISSUABLE


_COLOR_TYPES = {
    TokenType.REISSUABLE: COLOR_TYPE_REISSUABLE,
    TokenType.NON_REISSUABLE: COLOR_TYPE_NON_REISSUABLE,
    TokenType.NFT: COLOR_TYPE_NFT,
}


class Issuer(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str | None = None
    url: str | None = None
    email: str | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        if v is None:
            return v
        sanitized = sanitize_url(v)
        if sanitized is None:
            raise ValueError(f"Unsupported URL: {v}")
        return sanitized


class Attribute(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    trait_type: str
    value: str
    display_type: str | None = None


class Metadata(BaseModel):
    """Token descriptor. Immutable once constructed."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    version: str = "1.0"
    name: str = Field(..., min_length=1, max_length=64)
    symbol: str = Field(..., min_length=1, max_length=12)
    token_type: TokenType = Field(..., validation_alias=AliasChoices("token_type", "tokenType"))
    decimals: int | None = Field(default=None, ge=0, le=18)
    description: str | None = None
    icon: str | None = None
    website: str | None = None
    issuer: Issuer | None = None
    terms: str | None = None
    # NFT fields
    image: str | None = None
    animation_url: str | None = None
    external_url: str | None = None
    attributes: list[Attribute] | None = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("icon", "website", "animation_url", "external_url", "terms")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        if v is None:
            return v
        sanitized = sanitize_url(v)
        if sanitized is None:
            raise ValueError(f"Unsupported URL: {v}")
        return sanitized

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: str | None) -> str | None:
        if v is None:
            return v
        sanitized = sanitize_image_url(v)
        if sanitized is None:
            raise ValueError(f"Unsupported image URL: {v}")
        return sanitized

    @model_validator(mode="after")
    def check_nft_decimals(self) -> Metadata:
        if self.token_type is TokenType.NFT and self.decimals not in (None, 0):
            raise ValueError("NFT metadata must not declare decimals")
        return self

    def canonical_json(self) -> bytes:
        """Sorted keys, no whitespace, unset fields omitted, UTF-8."""
        data = self.model_dump(mode="json", exclude_none=True)
        return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode(
            "utf-8"
        )

    def digest(self) -> bytes:
        return sha256(self.canonical_json())


def parse_metadata(data: dict[str, Any]) -> Metadata:
    try:
        return Metadata.model_validate(data)
    except ValidationError as e:
        raise InvalidMetadataError(f"Invalid token metadata: {e}") from e


@dataclass(frozen=True)
class OutPoint:
    txid: str
    index: int

    def __post_init__(self) -> None:
        if not is_valid_txid(self.txid):
            raise ValueError(f"Invalid txid: {self.txid}")
        if self.index < 0 or self.index > 0xFFFFFFFF:
            raise ValueError(f"Invalid output index: {self.index}")

    def serialize(self) -> bytes:
        return bytes.fromhex(self.txid)[::-1] + self.index.to_bytes(4, "little")

    def __str__(self) -> str:
        return f"{self.txid}:{self.index}"

    @classmethod
    def parse(cls, value: str) -> OutPoint:
        txid, _, index = value.rpartition(":")
        if not txid or not index.isdigit():
            raise ValueError(f"Invalid outpoint: {value}")
        return cls(txid.lower(), int(index))


@dataclass(frozen=True)
class ColorId:
    raw: bytes

    def __post_init__(self) -> None:
        if len(self.raw) != COLOR_ID_LENGTH:
            raise InvalidColorIdError(f"Color id must be {COLOR_ID_LENGTH} bytes")
        if self.raw[0] not in _COLOR_TYPES.values():
            raise InvalidColorIdError(f"Unknown color type {self.raw[0]:#04x}")

    @classmethod
    def reissuable(cls, script_pubkey: bytes) -> ColorId:
        return cls(bytes([COLOR_TYPE_REISSUABLE]) + sha256(script_pubkey))

    @classmethod
    def non_reissuable(cls, out_point: OutPoint) -> ColorId:
        return cls(bytes([COLOR_TYPE_NON_REISSUABLE]) + sha256(out_point.serialize()))

    @classmethod
    def nft(cls, out_point: OutPoint) -> ColorId:
        return cls(bytes([COLOR_TYPE_NFT]) + sha256(out_point.serialize()))

    @classmethod
    def from_hex(cls, value: str) -> ColorId:
        if not is_hex(value) or len(value) != COLOR_ID_LENGTH * 2:
            raise InvalidColorIdError(f"Invalid color id: {value!r}")
        return cls(bytes.fromhex(value))

    @property
    def token_type(self) -> TokenType:
        for token_type, color_type in _COLOR_TYPES.items():
            if color_type == self.raw[0]:
                return token_type
        raise InvalidColorIdError(f"Unknown color type {self.raw[0]:#04x}")

    def hex(self) -> str:
        return self.raw.hex()

    def __str__(self) -> str:
        return self.hex()


def commitment(public_key: bytes, metadata: Metadata) -> bytes:
    """Scalar binding ``public_key`` to ``metadata``."""
    if len(public_key) != 33:
        raise KeyDerivationError(f"Invalid compressed public key length: {len(public_key)}")
    return sha256(public_key + metadata.digest())


def p2c_public_key(public_key: bytes, metadata: Metadata) -> bytes:
    tweaked = tweak_public_key(public_key, commitment(public_key, metadata))
    if tweaked is None:
        raise KeyDerivationError("Failed to derive P2C public key")
    return tweaked


def p2c_private_key(private_key: bytes | bytearray, metadata: Metadata) -> bytearray:
    """Base private key tweaked by the commitment. The caller wipes the result."""
    public_key = derive_public_key(bytes(private_key))
    if public_key is None:
        raise KeyDerivationError("Invalid base private key")
    tweaked = add_scalars(bytes(private_key), commitment(public_key, metadata))
    if tweaked is None:
        raise KeyDerivationError("Failed to derive P2C private key")
    return bytearray(tweaked)


def derive_color_id(
    token_type: TokenType,
    metadata: Metadata | None = None,
    public_key: bytes | None = None,
    out_point: OutPoint | None = None,
) -> ColorId:
    """
    Color id for a token class.

    Reissuable ids depend only on the base key and metadata; the other
    classes depend only on the funding outpoint.
    """
    if token_type is TokenType.REISSUABLE:
        if metadata is None or public_key is None:
            raise ValueError("Reissuable color ids need metadata and a public key")
        return ColorId.reissuable(pubkey_to_p2pkh_script(p2c_public_key(public_key, metadata)))

    if out_point is None:
        raise ValueError(f"{token_type.value} color ids need an outpoint")
    if token_type is TokenType.NFT:
        return ColorId.nft(out_point)
    return ColorId.non_reissuable(out_point)

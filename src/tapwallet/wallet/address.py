"""
Tapyrus address and script utilities.

Supports P2PKH and colored P2PKH (CP2PKH) outputs with base58check
addresses for the prod and dev networks.
"""

from __future__ import annotations

from dataclasses import dataclass

import base58

from tapwallet.constants import COLOR_ID_LENGTH, NETWORK_VERSIONS, OP_COLOR
from tapwallet.crypto import hash160
from tapwallet.errors import InvalidAddressError


@dataclass(frozen=True)
class DecodedAddress:
    network: str
    kind: str  # "p2pkh" or "cp2pkh"
    pubkey_hash: bytes
    color_id: bytes | None = None


def _versions(network: str) -> dict[str, int]:
    try:
        return NETWORK_VERSIONS[network]
    except KeyError:
        raise ValueError(f"Unknown network: {network}") from None


def pubkey_to_p2pkh_address(pubkey: bytes, network: str = "dev") -> str:
    if len(pubkey) != 33:
        raise ValueError(f"Invalid compressed pubkey length: {len(pubkey)}")
    return pubkey_hash_to_address(hash160(pubkey), network)


def pubkey_hash_to_address(pubkey_hash: bytes, network: str = "dev") -> str:
    version = _versions(network)["p2pkh"]
    return base58.b58encode_check(bytes([version]) + pubkey_hash).decode("ascii")


def colored_address(color_id: bytes, pubkey_hash: bytes, network: str = "dev") -> str:
    """Base58check colored address: version || color id || pubkey hash."""
    if len(color_id) != COLOR_ID_LENGTH:
        raise ValueError(f"Invalid color id length: {len(color_id)}")
    version = _versions(network)["cp2pkh"]
    return base58.b58encode_check(bytes([version]) + color_id + pubkey_hash).decode("ascii")


def decode_address(address: str) -> DecodedAddress:
    """Decode a P2PKH or CP2PKH address, raising InvalidAddressError otherwise."""
    try:
        payload = base58.b58decode_check(address)
    except ValueError as e:
        raise InvalidAddressError(f"Invalid address {address!r}: {e}") from e

    if not payload:
        raise InvalidAddressError(f"Invalid address {address!r}: empty payload")

    version = payload[0]
    body = payload[1:]
    for network, versions in NETWORK_VERSIONS.items():
        if version == versions["p2pkh"] and len(body) == 20:
            return DecodedAddress(network, "p2pkh", body)
        if version == versions["cp2pkh"] and len(body) == COLOR_ID_LENGTH + 20:
            return DecodedAddress(
                network, "cp2pkh", body[COLOR_ID_LENGTH:], color_id=body[:COLOR_ID_LENGTH]
            )

    raise InvalidAddressError(f"Unsupported address {address!r} (version {version:#04x})")


def validate_address(address: str, network: str | None = None) -> bool:
    try:
        decoded = decode_address(address)
    except InvalidAddressError:
        return False
    return network is None or decoded.network == network


def p2pkh_script(pubkey_hash: bytes) -> bytes:
    """OP_DUP OP_HASH160 <20-byte-hash> OP_EQUALVERIFY OP_CHECKSIG"""
    if len(pubkey_hash) != 20:
        raise ValueError(f"Invalid pubkey hash length: {len(pubkey_hash)}")
    return b"\x76\xa9\x14" + pubkey_hash + b"\x88\xac"


def pubkey_to_p2pkh_script(pubkey: bytes) -> bytes:
    return p2pkh_script(hash160(pubkey))


def cp2pkh_script(color_id: bytes, pubkey_hash: bytes) -> bytes:
    """<33-byte color id> OP_COLOR followed by a P2PKH script."""
    if len(color_id) != COLOR_ID_LENGTH:
        raise ValueError(f"Invalid color id length: {len(color_id)}")
    return bytes([COLOR_ID_LENGTH]) + color_id + bytes([OP_COLOR]) + p2pkh_script(pubkey_hash)


def address_to_script(address: str, color_id: bytes | None = None) -> bytes:
    """
    scriptPubKey paying ``address``.

    With ``color_id`` the output is colored; a colored address must then
    carry the same color id.
    """
    decoded = decode_address(address)

    if decoded.kind == "cp2pkh":
        if color_id is not None and decoded.color_id != color_id:
            raise InvalidAddressError(f"Address {address} is for a different color")
        assert decoded.color_id is not None
        return cp2pkh_script(decoded.color_id, decoded.pubkey_hash)

    if color_id is not None:
        return cp2pkh_script(color_id, decoded.pubkey_hash)
    return p2pkh_script(decoded.pubkey_hash)

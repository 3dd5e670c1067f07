"""
secp256k1 primitives for the wallet engine.

Thin wrappers over coincurve working on fixed-width byte buffers. Invalid
input yields ``None`` instead of an exception; callers check the result
and raise the appropriate wallet error.
"""

from __future__ import annotations

import hashlib

from coincurve import PrivateKey, PublicKey
from coincurve import verify_signature as coincurve_verify

# secp256k1 curve order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hash256(data: bytes) -> bytes:
    """SHA256(SHA256(data))"""
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def is_valid_scalar(scalar: bytes) -> bool:
    if len(scalar) != 32:
        return False
    value = int.from_bytes(scalar, "big")
    return 0 < value < SECP256K1_N


def derive_public_key(private_key: bytes) -> bytes | None:
    """Compressed 33-byte public key for a 32-byte secret."""
    if not is_valid_scalar(bytes(private_key)):
        return None
    return PrivateKey(bytes(private_key)).public_key.format(compressed=True)


def add_scalars(a: bytes, b: bytes) -> bytes | None:
    """(a + b) mod n, or None if either input is out of range or the sum is zero."""
    if len(a) != 32 or len(b) != 32:
        return None
    a_int = int.from_bytes(a, "big")
    b_int = int.from_bytes(b, "big")
    if a_int >= SECP256K1_N or b_int >= SECP256K1_N:
        return None
    total = (a_int + b_int) % SECP256K1_N
    if total == 0:
        return None
    return total.to_bytes(32, "big")


def add_points(point_a: bytes, point_b: bytes) -> bytes | None:
    """Group addition of two compressed points."""
    try:
        combined = PublicKey.combine_keys([PublicKey(bytes(point_a)), PublicKey(bytes(point_b))])
    except (ValueError, TypeError):
        return None
    return combined.format(compressed=True)


def tweak_public_key(point: bytes, tweak: bytes) -> bytes | None:
    """point + tweak*G"""
    if not is_valid_scalar(tweak):
        return None
    tweak_point = derive_public_key(tweak)
    if tweak_point is None:
        return None
    return add_points(point, tweak_point)


def sign(message_hash: bytes, private_key: bytes) -> bytes | None:
    """DER-encoded low-S ECDSA signature over an already hashed 32-byte message."""
    if len(message_hash) != 32 or not is_valid_scalar(bytes(private_key)):
        return None
    return PrivateKey(bytes(private_key)).sign(message_hash, hasher=None)


def verify(signature: bytes, message_hash: bytes, public_key: bytes) -> bool:
    try:
        return coincurve_verify(signature, message_hash, public_key, hasher=None)
    except (ValueError, TypeError):
        return False

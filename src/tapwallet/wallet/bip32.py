"""
BIP32 HD key derivation for Tapyrus wallets.
Implements BIP44 paths with the Tapyrus network id as coin type.
"""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from coincurve import PrivateKey, PublicKey

from tapwallet.constants import DEFAULT_NETWORK_ID
from tapwallet.crypto import SECP256K1_N
from tapwallet.errors import DerivationError
from tapwallet.wallet.address import pubkey_to_p2pkh_address
from tapwallet.wallet.mnemonic import mnemonic_to_seed


class HDKey:
    """
    Hierarchical Deterministic Key for Tapyrus.
    Implements BIP32 derivation.
    """

    def __init__(self, private_key: PrivateKey, chain_code: bytes, depth: int = 0):
        self._private_key = private_key
        self._public_key = private_key.public_key
        self.chain_code = chain_code
        self.depth = depth

    @property
    def private_key(self) -> PrivateKey:
        """Return the coincurve PrivateKey instance."""
        return self._private_key

    @property
    def public_key(self) -> PublicKey:
        """Return the coincurve PublicKey instance."""
        return self._public_key

    @classmethod
    def from_seed(cls, seed: bytes) -> HDKey:
        """Create master HD key from seed"""
        hmac_result = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        key_bytes = hmac_result[:32]
        chain_code = hmac_result[32:]

        key_int = int.from_bytes(key_bytes, "big")
        if key_int == 0 or key_int >= SECP256K1_N:
            raise DerivationError("Seed produced an invalid master key")

        return cls(PrivateKey(key_bytes), chain_code, depth=0)

    def derive(self, path: str) -> HDKey:
        """
        Derive child key from path notation (e.g., "m/44'/1939510133'/0'/0/0")
        ' indicates hardened derivation
        """
        if not path.startswith("m"):
            raise ValueError("Path must start with 'm'")

        parts = path.split("/")[1:]
        key = self

        for part in parts:
            if not part:
                continue

            hardened = part.endswith("'") or part.endswith("h")
            index = int(part.rstrip("'h"))
            if index < 0 or index >= 0x80000000:
                raise ValueError(f"Path index out of range: {part}")

            if hardened:
                index += 0x80000000

            key = key._derive_child(index)

        return key

    def _derive_child(self, index: int) -> HDKey:
        """Derive a child key at the given index"""
        hardened = index >= 0x80000000

        if hardened:
            data = b"\x00" + self._private_key.secret + index.to_bytes(4, "big")
        else:
            data = self._public_key.format(compressed=True) + index.to_bytes(4, "big")

        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        key_offset = hmac_result[:32]
        child_chain = hmac_result[32:]

        parent_key_int = int.from_bytes(self._private_key.secret, "big")
        offset_int = int.from_bytes(key_offset, "big")

        if offset_int >= SECP256K1_N:
            raise DerivationError(f"Invalid child key at index {index}")

        child_key_int = (parent_key_int + offset_int) % SECP256K1_N

        if child_key_int == 0:
            raise DerivationError(f"Invalid child key at index {index}")

        child_private_key = PrivateKey(child_key_int.to_bytes(32, "big"))

        return HDKey(child_private_key, child_chain, depth=self.depth + 1)

    def get_private_key_bytes(self) -> bytes:
        """Get private key as 32 bytes"""
        return self._private_key.secret

    def get_public_key_bytes(self, compressed: bool = True) -> bytes:
        """Get public key bytes"""
        return self._public_key.format(compressed=compressed)

    def get_address(self, network: str = "dev") -> str:
        """Get P2PKH address for this key"""
        return pubkey_to_p2pkh_address(self.get_public_key_bytes(compressed=True), network)


def derivation_path(network_id: int = DEFAULT_NETWORK_ID, index: int = 0) -> str:
    return f"m/44'/{network_id}'/0'/0/{index}"


@dataclass
class KeyMaterial:
    """
    Signing key for one operation.

    ``private_key`` is a mutable buffer so it can be zeroed once the
    operation finishes. Never log or serialize instances of this class.
    """

    private_key: bytearray
    public_key: bytes
    address: str

    def wipe(self) -> None:
        for i in range(len(self.private_key)):
            self.private_key[i] = 0

    @property
    def wiped(self) -> bool:
        return not any(self.private_key)

    def __repr__(self) -> str:
        return f"KeyMaterial(public_key={self.public_key.hex()}, address={self.address})"


def derive_key_material(
    mnemonic: str,
    network: str = "dev",
    network_id: int = DEFAULT_NETWORK_ID,
    index: int = 0,
) -> KeyMaterial:
    """
    Derive the wallet key for ``mnemonic``. The caller owns wiping the result.

    Same mnemonic and path always give byte-identical output.
    """
    seed = mnemonic_to_seed(mnemonic)
    try:
        key = HDKey.from_seed(seed).derive(derivation_path(network_id, index))
    except ValueError as e:
        raise DerivationError(f"Key derivation failed: {e}") from e

    private_key = bytearray(key.get_private_key_bytes())
    if len(private_key) != 32 or not any(private_key):
        raise DerivationError("Derivation path yielded no private key")

    public_key = key.get_public_key_bytes(compressed=True)
    return KeyMaterial(
        private_key=private_key,
        public_key=public_key,
        address=pubkey_to_p2pkh_address(public_key, network),
    )


@contextmanager
def unlocked_key(
    mnemonic: str,
    network: str = "dev",
    network_id: int = DEFAULT_NETWORK_ID,
    index: int = 0,
) -> Iterator[KeyMaterial]:
    """Key material that is wiped on every exit path."""
    keys = derive_key_material(mnemonic, network, network_id, index)
    try:
        yield keys
    finally:
        keys.wipe()

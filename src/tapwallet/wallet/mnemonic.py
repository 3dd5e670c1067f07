"""
BIP39 mnemonic handling backed by python-mnemonic.
"""

from __future__ import annotations

from mnemonic import Mnemonic

_WORDLIST = Mnemonic("english")


def normalize_mnemonic(mnemonic: str) -> str:
    """Lower-case and collapse whitespace so pasted phrases compare equal."""
    return " ".join(mnemonic.strip().lower().split())


def generate_mnemonic(strength: int = 128) -> str:
    """
    Generate a BIP39 mnemonic from secure entropy.

    Args:
        strength: Entropy bits, 128 (12 words) or 256 (24 words)
    """
    if strength not in (128, 256):
        raise ValueError("strength must be 128 or 256")
    return _WORDLIST.generate(strength=strength)


def validate_mnemonic(mnemonic: str) -> bool:
    try:
        return _WORDLIST.check(normalize_mnemonic(mnemonic))
    except (ValueError, LookupError):
        return False


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """64-byte BIP39 seed."""
    return Mnemonic.to_seed(normalize_mnemonic(mnemonic), passphrase=passphrase)


def mnemonic_to_words(mnemonic: str) -> list[str]:
    return normalize_mnemonic(mnemonic).split(" ")


def words_to_mnemonic(words: list[str]) -> str:
    return " ".join(words)

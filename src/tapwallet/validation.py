"""
Validation helpers for amounts, identifiers and user-supplied URLs.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from tapwallet.constants import MAX_AMOUNT, MAX_COLORED_AMOUNT, TPC_COLOR_ID

TXID_RE = re.compile(r"^[0-9a-fA-F]{64}$")
HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
SAFE_IMAGE_DATA_RE = re.compile(r"^data:image/(png|jpeg|jpg|gif|webp|svg\+xml);")


def is_valid_amount(value: object, maximum: int = MAX_AMOUNT) -> bool:
    """Non-negative integer no larger than ``maximum``. Booleans are rejected."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return 0 <= value <= maximum


def is_valid_txid(value: object) -> bool:
    return isinstance(value, str) and bool(TXID_RE.match(value))


def is_hex(value: object) -> bool:
    return isinstance(value, str) and bool(HEX_RE.match(value))


def is_native_color_id(color_id: str | None) -> bool:
    """True for the native TPC bucket (absent or all-zero color id)."""
    return not color_id or color_id.lower() == TPC_COLOR_ID


def parse_and_validate_amount(
    text: str, maximum: int = MAX_COLORED_AMOUNT, decimals: int | None = None
) -> int | None:
    """
    Parse a user-entered amount into smallest units.

    With ``decimals`` set, "10.5" and decimals=2 gives 1050. More fractional
    digits than ``decimals`` is rejected rather than rounded.
    """
    trimmed = text.strip()
    if not trimmed:
        return None

    if decimals:
        if not re.fullmatch(r"\d+(\.\d+)?", trimmed):
            return None
        _, _, frac = trimmed.partition(".")
        if len(frac) > decimals:
            return None
        try:
            parsed = int(Decimal(trimmed).scaleb(decimals))
        except InvalidOperation:
            return None
    else:
        if not re.fullmatch(r"\d+", trimmed):
            return None
        parsed = int(trimmed)

    if not is_valid_amount(parsed, maximum):
        return None
    return parsed


def sanitize_url(url: str | None) -> str | None:
    """Allow http(s) and ipfs URLs; bare hosts get https://. Script schemes are dropped."""
    if not url:
        return None

    stripped = url.strip()
    lowered = stripped.lower()

    if lowered.startswith(("javascript:", "data:", "vbscript:")):
        return None

    if not lowered.startswith(("http://", "https://", "ipfs://")):
        if "://" not in lowered:
            return f"https://{stripped}"
        return None

    return stripped


def sanitize_image_url(url: str | None) -> str | None:
    """Like sanitize_url, but data: URIs with a safe image mime type are kept."""
    if not url:
        return None

    stripped = url.strip()
    lowered = stripped.lower()
    if lowered.startswith("data:image/"):
        return stripped if SAFE_IMAGE_DATA_RE.match(lowered) else None

    return sanitize_url(url)

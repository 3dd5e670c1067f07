"""
Token metadata registry client with an injectable TTL cache.

Metadata lives in a static registry keyed by network id and color id:

    {registry_url}/tokens/{network_id}/{color_id}.json

Lookups that find nothing are cached too, so unknown tokens are not
re-fetched on every balance refresh.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger

from tapwallet.constants import DEFAULT_NETWORK_ID, DEFAULT_REGISTRY_URL
from tapwallet.errors import InvalidMetadataError
from tapwallet.wallet.color import Metadata, parse_metadata


@dataclass
class TTLCache:
    """
    Bounded cache whose entries expire ``ttl`` seconds after insertion.

    When full, the least recently used entry is evicted. ``None`` is a
    valid cached value (a negative result).
    """

    max_entries: int = 256
    ttl: float = 600.0
    clock: Callable[[], float] = time.monotonic
    _entries: OrderedDict[str, tuple[Any, float]] = field(init=False, default_factory=OrderedDict)

    def lookup(self, key: str) -> tuple[bool, Any]:
        """Returns (hit, value). Expired entries are removed and count as misses."""
        entry = self._entries.get(key)
        if entry is None:
            return False, None

        value, expires_at = entry
        if self.clock() >= expires_at:
            del self._entries[key]
            return False, None

        self._entries.move_to_end(key)
        return True, value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (value, self.clock() + self.ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        # An empty cache is still a cache
        return True


class TokenRegistry:
    """Fetches and validates token metadata. The cache is owned by the caller."""

    def __init__(
        self,
        cache: TTLCache,
        base_url: str = DEFAULT_REGISTRY_URL,
        network_id: int = DEFAULT_NETWORK_ID,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self.network_id = network_id
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def _url(self, color_id: str) -> str:
        return f"{self.base_url}/tokens/{self.network_id}/{color_id}.json"

    async def get_metadata(self, color_id: str) -> Metadata | None:
        color_id = color_id.lower()
        hit, cached = self.cache.lookup(color_id)
        if hit:
            return cached

        try:
            response = await self.client.get(self._url(color_id))
        except httpx.HTTPError as e:
            # Not cached: transport failures are retried on the next lookup
            logger.warning(f"Registry lookup for {color_id[:8]}... failed: {e}")
            return None

        metadata: Metadata | None = None
        if response.status_code == 200:
            metadata = self._parse(color_id, response)
        elif response.status_code != 404:
            logger.warning(
                f"Registry lookup for {color_id[:8]}... returned HTTP {response.status_code}"
            )
            return None

        self.cache.set(color_id, metadata)
        return metadata

    @staticmethod
    def _parse(color_id: str, response: httpx.Response) -> Metadata | None:
        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Registry entry for {color_id[:8]}... is not JSON")
            return None

        # Registry entries wrap the metadata; bare metadata is accepted too
        if isinstance(data, dict) and isinstance(data.get("metadata"), dict):
            data = data["metadata"]
        if not isinstance(data, dict):
            logger.warning(f"Registry entry for {color_id[:8]}... is not an object")
            return None

        try:
            return parse_metadata(data)
        except InvalidMetadataError as e:
            logger.warning(f"Registry entry for {color_id[:8]}... is invalid: {e}")
            return None

    async def get_metadata_batch(self, color_ids: Iterable[str]) -> dict[str, Metadata]:
        """Metadata for every color id that has a valid registry entry."""
        unique = list(dict.fromkeys(c.lower() for c in color_ids))
        results = await asyncio.gather(*(self.get_metadata(c) for c in unique))
        return {c: m for c, m in zip(unique, results) if m is not None}

    async def close(self) -> None:
        await self.client.aclose()

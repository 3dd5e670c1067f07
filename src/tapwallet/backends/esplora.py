"""
Esplora REST API backend for Tapyrus.

Endpoints used:
- GET  /address/{address}/utxo
- POST /tx               (raw hex body, returns the txid as text)
- GET  /tx/{txid}/status

Every response passes through a pydantic schema before it reaches the
wallet. UTXO entries that fail validation are dropped with a warning;
any other malformed response is a NetworkError.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from tapwallet.backends.base import UtxoSource
from tapwallet.constants import DEFAULT_EXPLORER_URL, MAX_AMOUNT, MAX_COLORED_AMOUNT
from tapwallet.errors import NetworkError
from tapwallet.validation import is_hex, is_native_color_id, is_valid_txid
from tapwallet.wallet.models import TransactionStatus, Utxo


class StatusPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    confirmed: bool = Field(strict=True)
    block_height: int | None = Field(default=None, ge=0)
    block_hash: str | None = None
    block_time: int | None = Field(default=None, ge=0)


class UtxoPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    txid: str = Field(pattern=r"^[0-9a-fA-F]{64}$")
    vout: int = Field(ge=0, le=0xFFFFFFFF, strict=True)
    value: int = Field(ge=0, strict=True)
    status: StatusPayload
    color_id: str | None = Field(
        default=None, validation_alias=AliasChoices("colorId", "color_id")
    )

    @field_validator("color_id")
    @classmethod
    def validate_color_id(cls, v: str | None) -> str | None:
        if v is None or v == "":
            return None
        if not is_hex(v) or len(v) != 66:
            raise ValueError(f"Invalid color id: {v!r}")
        return v.lower()

    @model_validator(mode="after")
    def check_value_bound(self) -> UtxoPayload:
        limit = MAX_AMOUNT if is_native_color_id(self.color_id) else MAX_COLORED_AMOUNT
        if self.value > limit:
            raise ValueError(f"Value {self.value} exceeds {limit}")
        return self

    def to_utxo(self) -> Utxo:
        return Utxo(
            txid=self.txid.lower(),
            vout=self.vout,
            value=self.value,
            confirmed=self.status.confirmed,
            color_id=None if is_native_color_id(self.color_id) else self.color_id,
            block_height=self.status.block_height,
        )


class EsploraBackend(UtxoSource):
    """
    UTXO source backed by a Tapyrus Esplora instance.

    The HTTP client can be injected (e.g. with an httpx.MockTransport in tests);
    otherwise one is created and owned by the backend.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_EXPLORER_URL,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def _request(
        self, method: str, endpoint: str, content: str | None = None, allow_missing: bool = False
    ) -> httpx.Response | None:
        url = f"{self.base_url}/{endpoint}"
        try:
            response = await self.client.request(method, url, content=content)
            if allow_missing and response.status_code == 404:
                return None
            response.raise_for_status()
            return response

        except httpx.TimeoutException as e:
            logger.error(f"Esplora request timed out: {method} {endpoint}")
            raise NetworkError(f"Request to {endpoint} timed out") from e
        except httpx.HTTPStatusError as e:
            body = e.response.text[:200]
            logger.error(f"Esplora request failed: {method} {endpoint} - {e.response.status_code}")
            raise NetworkError(
                f"{method} {endpoint} failed with HTTP {e.response.status_code}: {body}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Esplora request failed: {method} {endpoint} - {e}")
            raise NetworkError(f"{method} {endpoint} failed: {e}") from e

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"Invalid JSON from {response.request.url}") from e

    async def get_utxos(self, address: str) -> list[Utxo]:
        response = await self._request("GET", f"address/{address}/utxo")
        assert response is not None
        data = self._json(response)
        if not isinstance(data, list):
            raise NetworkError(f"Unexpected UTXO response for {address}: {type(data).__name__}")

        utxos: list[Utxo] = []
        for item in data:
            try:
                utxos.append(UtxoPayload.model_validate(item).to_utxo())
            except ValidationError as e:
                logger.warning(f"Dropping malformed UTXO entry for {address}: {e.errors()[0]}")

        logger.debug(f"Fetched {len(utxos)} UTXOs for {address}")
        return utxos

    async def broadcast_transaction(self, tx_hex: str) -> str:
        response = await self._request("POST", "tx", content=tx_hex)
        assert response is not None
        txid = response.text.strip()
        if not is_valid_txid(txid):
            raise NetworkError(f"Broadcast returned an invalid txid: {txid[:80]!r}")

        logger.info(f"Broadcast transaction: {txid}")
        return txid.lower()

    async def get_transaction_status(self, txid: str) -> TransactionStatus | None:
        response = await self._request("GET", f"tx/{txid}/status", allow_missing=True)
        if response is None:
            return None

        try:
            status = StatusPayload.model_validate(self._json(response))
        except ValidationError as e:
            raise NetworkError(f"Malformed status for {txid}: {e.errors()[0]}") from e

        return TransactionStatus(
            txid=txid,
            confirmed=status.confirmed,
            block_height=status.block_height,
            block_hash=status.block_hash,
            block_time=status.block_time,
        )

    async def close(self) -> None:
        """Close the HTTP client connection."""
        await self.client.aclose()

"""
Tests for the Esplora backend using httpx.MockTransport.
"""

import httpx
import pytest

from tapwallet.backends.esplora import EsploraBackend
from tapwallet.constants import TPC_COLOR_ID
from tapwallet.errors import NetworkError

from conftest import make_color_id, make_txid

BASE_URL = "https://explorer.test/api"
ADDRESS = "mkKNgkBJ6bkWBKDgQaAuQ2XrS6vPmxJQAK"


def _backend(handler) -> EsploraBackend:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EsploraBackend(BASE_URL, client=client)


def _utxo_entry(label: str, value: int, confirmed: bool = True, **extra) -> dict:
    entry = {
        "txid": make_txid(label),
        "vout": 0,
        "value": value,
        "status": {"confirmed": confirmed, "block_height": 10 if confirmed else None},
    }
    entry.update(extra)
    return entry


class TestGetUtxos:
    @pytest.mark.asyncio
    async def test_parses_native_and_colored(self):
        color_id = make_color_id()
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json=[
                    _utxo_entry("a", 5_000),
                    _utxo_entry("b", 10, confirmed=False, colorId=color_id.upper()),
                    _utxo_entry("c", 7, color_id=color_id),
                    _utxo_entry("d", 600, colorId=TPC_COLOR_ID),
                ],
            )

        backend = _backend(handler)
        utxos = await backend.get_utxos(ADDRESS)
        await backend.close()

        assert str(requests[0].url) == f"{BASE_URL}/address/{ADDRESS}/utxo"
        assert [u.value for u in utxos] == [5_000, 10, 7, 600]
        assert utxos[0].color_id is None
        assert utxos[0].block_height == 10
        assert utxos[1].color_id == color_id
        assert not utxos[1].confirmed
        assert utxos[2].color_id == color_id
        assert utxos[3].color_id is None

    @pytest.mark.asyncio
    async def test_drops_malformed_entries(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json=[
                    _utxo_entry("ok", 1_000),
                    {"txid": "xyz", "vout": 0, "value": 1, "status": {"confirmed": True}},
                    _utxo_entry("neg", -1),
                    _utxo_entry("str", "1000"),
                    _utxo_entry("color", 1, colorId="c1zz"),
                    {"txid": make_txid("nostatus"), "vout": 0, "value": 1},
                ],
            )

        utxos = await _backend(handler).get_utxos(ADDRESS)
        assert [u.txid for u in utxos] == [make_txid("ok")]

    @pytest.mark.asyncio
    async def test_non_list_response(self):
        backend = _backend(lambda request: httpx.Response(200, json={"error": "nope"}))
        with pytest.raises(NetworkError):
            await backend.get_utxos(ADDRESS)

    @pytest.mark.asyncio
    async def test_http_error(self):
        backend = _backend(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(NetworkError, match="500"):
            await backend.get_utxos(ADDRESS)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(NetworkError, match="timed out"):
            await _backend(handler).get_utxos(ADDRESS)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkError):
            await _backend(handler).get_utxos(ADDRESS)


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_posts_raw_hex(self):
        txid = make_txid("broadcast")
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = request.content.decode()
            return httpx.Response(200, text=txid.upper() + "\n")

        result = await _backend(handler).broadcast_transaction("0100abcd")

        assert result == txid
        assert seen == {"method": "POST", "path": "/api/tx", "body": "0100abcd"}

    @pytest.mark.asyncio
    async def test_invalid_txid_response(self):
        backend = _backend(lambda request: httpx.Response(200, text="<html>ok</html>"))
        with pytest.raises(NetworkError):
            await backend.broadcast_transaction("00")

    @pytest.mark.asyncio
    async def test_rejected(self):
        backend = _backend(lambda request: httpx.Response(400, text="bad-txns-inputs-missing"))
        with pytest.raises(NetworkError, match="bad-txns-inputs-missing"):
            await backend.broadcast_transaction("00")


class TestStatus:
    @pytest.mark.asyncio
    async def test_confirmed(self):
        txid = make_txid("status")

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"/api/tx/{txid}/status"
            return httpx.Response(
                200,
                json={
                    "confirmed": True,
                    "block_height": 120,
                    "block_hash": "ab" * 32,
                    "block_time": 1_700_000_000,
                },
            )

        status = await _backend(handler).get_transaction_status(txid)
        assert status is not None
        assert status.confirmed
        assert status.block_height == 120
        assert status.block_time == 1_700_000_000

    @pytest.mark.asyncio
    async def test_unconfirmed(self):
        backend = _backend(lambda request: httpx.Response(200, json={"confirmed": False}))
        status = await backend.get_transaction_status(make_txid("pending"))
        assert status is not None
        assert not status.confirmed
        assert status.block_height is None

    @pytest.mark.asyncio
    async def test_unknown(self):
        backend = _backend(lambda request: httpx.Response(404, text="Transaction not found"))
        assert await backend.get_transaction_status(make_txid("missing")) is None

    @pytest.mark.asyncio
    async def test_malformed(self):
        backend = _backend(lambda request: httpx.Response(200, json={"confirmed": "yes"}))
        with pytest.raises(NetworkError):
            await backend.get_transaction_status(make_txid("odd"))

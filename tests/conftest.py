"""
Shared fixtures: a deterministic wallet key and an in-memory UTXO source.
"""

from __future__ import annotations

import pytest

from tapwallet.backends.base import UtxoSource
from tapwallet.crypto import sha256
from tapwallet.errors import NetworkError
from tapwallet.wallet.bip32 import KeyMaterial, derive_key_material
from tapwallet.wallet.color import ColorId, Metadata
from tapwallet.wallet.models import TransactionStatus, Utxo
from tapwallet.wallet.signing import deserialize_transaction

TEST_MNEMONIC = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)


def make_txid(label: str) -> str:
    return sha256(label.encode()).hex()


def make_color_id(label: str = "token") -> str:
    return ColorId.reissuable(label.encode()).hex()


class FakeUtxoSource(UtxoSource):
    """
    In-memory UTXO source.

    Broadcasts are recorded and answered with the transaction's own txid.
    ``fail_broadcasts`` holds the 0-based broadcast attempts that should fail.
    ``hidden_checks`` is how many status lookups return None before a
    broadcast transaction becomes visible.

    ``utxos`` are returned for every address unless ``owner`` is set, in
    which case other addresses hold nothing. ``by_address`` gives specific
    addresses their own coins.
    """

    def __init__(
        self,
        utxos: list[Utxo] | None = None,
        fail_broadcasts: set[int] | None = None,
        hidden_checks: int = 0,
        owner: str | None = None,
        by_address: dict[str, list[Utxo]] | None = None,
    ):
        self.utxos = list(utxos or [])
        self.owner = owner
        self.by_address = by_address or {}
        self.fail_broadcasts = fail_broadcasts or set()
        self.hidden_checks = hidden_checks
        self.broadcasts: list[str] = []
        self.broadcast_attempts = 0
        self.get_utxos_calls: list[str] = []
        self.status_calls: list[str] = []
        self.confirmed: set[str] = set()
        self.closed = False

    @property
    def broadcast_txids(self) -> list[str]:
        return [deserialize_transaction(bytes.fromhex(h)).txid() for h in self.broadcasts]

    async def get_utxos(self, address: str) -> list[Utxo]:
        self.get_utxos_calls.append(address)
        if address in self.by_address:
            return list(self.by_address[address])
        if self.owner is not None and address != self.owner:
            return []
        return list(self.utxos)

    async def broadcast_transaction(self, tx_hex: str) -> str:
        attempt = self.broadcast_attempts
        self.broadcast_attempts += 1
        if attempt in self.fail_broadcasts:
            raise NetworkError("broadcast rejected")
        self.broadcasts.append(tx_hex)
        return deserialize_transaction(bytes.fromhex(tx_hex)).txid()

    async def get_transaction_status(self, txid: str) -> TransactionStatus | None:
        self.status_calls.append(txid)
        if len(self.status_calls) <= self.hidden_checks:
            return None
        if txid in self.confirmed:
            return TransactionStatus(txid=txid, confirmed=True, block_height=100)
        if txid in self.broadcast_txids:
            return TransactionStatus(txid=txid, confirmed=False)
        return None

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def mnemonic() -> str:
    return TEST_MNEMONIC


@pytest.fixture
def keys() -> KeyMaterial:
    return derive_key_material(TEST_MNEMONIC, network="dev")


@pytest.fixture
def recipient() -> str:
    keys = derive_key_material(TEST_MNEMONIC, network="dev", index=1)
    keys.wipe()
    return keys.address


@pytest.fixture
def color_id() -> str:
    return make_color_id()


@pytest.fixture
def native_utxo() -> Utxo:
    return Utxo(txid=make_txid("native-0"), vout=0, value=100_000_000, confirmed=True)


@pytest.fixture
def reissuable_metadata() -> Metadata:
    return Metadata(name="Test Token", symbol="tst", token_type="reissuable", decimals=2)


@pytest.fixture
def non_reissuable_metadata() -> Metadata:
    return Metadata(name="Fixed Token", symbol="FIX", token_type="non_reissuable")


@pytest.fixture
def nft_metadata() -> Metadata:
    return Metadata(
        name="Art #1",
        symbol="ART",
        token_type="nft",
        image="https://example.com/art1.png",
        attributes=[{"trait_type": "rarity", "value": "rare"}],
    )


@pytest.fixture
def fake_source(native_utxo: Utxo, keys: KeyMaterial) -> FakeUtxoSource:
    return FakeUtxoSource([native_utxo], owner=keys.address)

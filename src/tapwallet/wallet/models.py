"""
Wallet data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from tapwallet.validation import is_native_color_id


@dataclass(frozen=True)
class Utxo:
    """Unspent output as reported by the UTXO source"""

    txid: str
    vout: int
    value: int
    confirmed: bool
    color_id: str | None = None
    block_height: int | None = None

    @property
    def is_native(self) -> bool:
        return is_native_color_id(self.color_id)

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True)
class BalanceDetails:
    confirmed: int = 0
    unconfirmed: int = 0

    @property
    def total(self) -> int:
        return self.confirmed + self.unconfirmed


@dataclass(frozen=True)
class AssetBalance:
    color_id: str
    confirmed: int = 0
    unconfirmed: int = 0

    @property
    def total(self) -> int:
        return self.confirmed + self.unconfirmed


@dataclass
class CoinSelection:
    """Result of coin selection"""

    utxos: list[Utxo]
    total_value: int
    fee: int = 0

    @property
    def count(self) -> int:
        return len(self.utxos)


@dataclass(frozen=True)
class TransactionStatus:
    txid: str
    confirmed: bool
    block_height: int | None = None
    block_hash: str | None = None
    block_time: int | None = None


@dataclass(frozen=True)
class SendResult:
    txid: str
    tx_hex: str
    fee: int
    color_id: str | None = None


@dataclass(frozen=True)
class IssuanceResult:
    """Durable receipt of a completed issuance"""

    txid: str
    color_id: str
    payment_base: str
    out_point: str | None = None
    funding_txid: str | None = None
    broadcasts: list[str] = field(default_factory=list)

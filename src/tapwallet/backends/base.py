"""
Base UTXO source interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from tapwallet.wallet.models import TransactionStatus, Utxo


class UtxoSource(ABC):
    """
    Abstract source of UTXOs and transaction status, and broadcast sink.

    Implementations validate remote payloads before returning them and
    raise NetworkError for any transport or protocol failure.
    """

    @abstractmethod
    async def get_utxos(self, address: str) -> list[Utxo]:
        """Get all unspent outputs (native and colored) for an address"""

    @abstractmethod
    async def broadcast_transaction(self, tx_hex: str) -> str:
        """Broadcast transaction, returns txid"""

    @abstractmethod
    async def get_transaction_status(self, txid: str) -> TransactionStatus | None:
        """Get confirmation status, or None if the transaction is unknown"""

    async def close(self) -> None:
        """Close backend connection"""
        pass

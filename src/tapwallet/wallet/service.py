"""
Tapyrus colored-coin wallet service.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from loguru import logger

from tapwallet.backends.base import UtxoSource
from tapwallet.config import FundingPolicy, Settings
from tapwallet.constants import DEFAULT_FEE_RATE, DEFAULT_NETWORK_ID, DUST_THRESHOLD
from tapwallet.errors import KeyDerivationError, NoUtxosAvailableError
from tapwallet.wallet.balance import aggregate_balances
from tapwallet.wallet.bip32 import KeyMaterial, derive_key_material, unlocked_key
from tapwallet.wallet.color import ColorId, Metadata, TokenType, parse_metadata
from tapwallet.wallet.issuance import IssuanceOrchestrator, PartialIssuance
from tapwallet.wallet.mnemonic import validate_mnemonic
from tapwallet.wallet.models import (
    AssetBalance,
    BalanceDetails,
    IssuanceResult,
    SendResult,
    TransactionStatus,
    Utxo,
)
from tapwallet.wallet.selection import filter_utxos_by_color, select_utxos
from tapwallet.wallet.transaction import (
    TransactionAssembler,
    validate_colored_amount,
    validate_send_amount,
)


class WalletService:
    """
    Single-key Tapyrus wallet.

    The mnemonic is passed to each signing operation and never stored.
    Every operation fetches a fresh UTXO snapshot right before selection.

    Derivation path: m/44'/{network_id}'/0'/0/{key_index}
    """

    def __init__(
        self,
        backend: UtxoSource,
        network: str = "dev",
        network_id: int = DEFAULT_NETWORK_ID,
        key_index: int = 0,
        fee_rate: int = DEFAULT_FEE_RATE,
        dust_threshold: int = DUST_THRESHOLD,
        funding_policy: FundingPolicy = FundingPolicy.IMMEDIATE,
        funding_poll_interval: float = 2.0,
        funding_poll_attempts: int = 15,
    ):
        self.backend = backend
        self.network = network
        self.network_id = network_id
        self.key_index = key_index

        self.assembler = TransactionAssembler(
            network=network, fee_rate=fee_rate, dust_threshold=dust_threshold
        )
        self.issuer = IssuanceOrchestrator(
            backend,
            self.assembler,
            funding_policy=funding_policy,
            poll_interval=funding_poll_interval,
            poll_attempts=funding_poll_attempts,
        )

    @classmethod
    def from_settings(cls, backend: UtxoSource, settings: Settings) -> WalletService:
        return cls(
            backend,
            network=settings.network,
            network_id=settings.network_id,
            key_index=settings.key_index,
            fee_rate=settings.fee_rate,
            dust_threshold=settings.dust_threshold,
            funding_policy=settings.funding_policy,
            funding_poll_interval=settings.funding_poll_interval,
            funding_poll_attempts=settings.funding_poll_attempts,
        )

    @property
    def fee_rate(self) -> int:
        return self.assembler.fee_rate

    @property
    def dust_threshold(self) -> int:
        return self.assembler.dust_threshold

    @contextmanager
    def _unlock(self, mnemonic: str) -> Iterator[KeyMaterial]:
        if not validate_mnemonic(mnemonic):
            raise KeyDerivationError("Invalid mnemonic")
        with unlocked_key(mnemonic, self.network, self.network_id, self.key_index) as keys:
            yield keys

    def get_address(self, mnemonic: str) -> str:
        """Receive address for the wallet key"""
        if not validate_mnemonic(mnemonic):
            raise KeyDerivationError("Invalid mnemonic")
        keys = derive_key_material(mnemonic, self.network, self.network_id, self.key_index)
        try:
            return keys.address
        finally:
            keys.wipe()

    async def get_utxos(self, address: str) -> list[Utxo]:
        return await self.backend.get_utxos(address)

    async def get_balances(self, address: str) -> tuple[BalanceDetails, list[AssetBalance]]:
        utxos = await self.backend.get_utxos(address)
        native, assets = aggregate_balances(utxos)
        logger.debug(f"Balance for {address}: {native.total} TPC, {len(assets)} assets")
        return native, assets

    async def _broadcast(self, tx_hex: str) -> str:
        txid = await self.backend.broadcast_transaction(tx_hex)
        logger.info(f"Broadcast {txid}")
        return txid

    async def send(self, mnemonic: str, to_address: str, amount: int) -> SendResult:
        """Send native TPC."""
        validate_send_amount(amount, self.dust_threshold)
        self.assembler.check_recipient(to_address)

        with self._unlock(mnemonic) as keys:
            utxos = await self.backend.get_utxos(keys.address)
            built = self.assembler.build_transfer(utxos, to_address, amount, keys)

        txid = await self._broadcast(built.hex)
        return SendResult(txid=txid, tx_hex=built.hex, fee=built.fee)

    async def send_asset(
        self, mnemonic: str, color_id: str, to_address: str, amount: int
    ) -> SendResult:
        """Transfer a colored asset. Fees are paid from native UTXOs."""
        validate_colored_amount(amount)
        color = ColorId.from_hex(color_id.lower())
        self.assembler.check_recipient(to_address, color)

        with self._unlock(mnemonic) as keys:
            utxos = await self.backend.get_utxos(keys.address)
            built = self.assembler.build_asset_transfer(
                utxos, color.hex(), to_address, amount, keys
            )

        txid = await self._broadcast(built.hex)
        return SendResult(txid=txid, tx_hex=built.hex, fee=built.fee, color_id=color.hex())

    async def burn_asset(self, mnemonic: str, color_id: str, amount: int) -> SendResult:
        """Destroy ``amount`` units of a colored asset."""
        validate_colored_amount(amount)
        color = ColorId.from_hex(color_id.lower())

        with self._unlock(mnemonic) as keys:
            utxos = await self.backend.get_utxos(keys.address)
            built = self.assembler.build_burn(utxos, color.hex(), amount, keys)

        txid = await self._broadcast(built.hex)
        logger.info(f"Burned {amount} of {color.hex()}")
        return SendResult(txid=txid, tx_hex=built.hex, fee=built.fee, color_id=color.hex())

    async def issue_token(
        self,
        mnemonic: str,
        metadata: Metadata | dict[str, Any],
        token_type: TokenType | str,
        amount: int | None = None,
    ) -> IssuanceResult:
        """
        Issue a new token.

        Raises:
            PartialIssuanceError: The funding transaction of a c2/c3 issuance was
                broadcast but the issue transaction was not. Pass its ``partial``
                to resume_issuance.
        """
        if not isinstance(metadata, Metadata):
            metadata = parse_metadata(metadata)
        token_type, amount = self.issuer.validate_request(metadata, token_type, amount)

        with self._unlock(mnemonic) as keys:
            utxos = await self.backend.get_utxos(keys.address)
            p2c_utxos = None
            if token_type is TokenType.REISSUABLE:
                p2c_utxos = await self.backend.get_utxos(
                    self.issuer.p2c_address(keys.public_key, metadata)
                )
            return await self.issuer.issue(
                utxos, keys, metadata, token_type, amount, p2c_utxos=p2c_utxos
            )

    def get_p2c_address(self, mnemonic: str, metadata: Metadata | dict[str, Any]) -> str:
        """
        Address whose coins a reissuable issuance of ``metadata`` spends.

        Fund it before issuing a c1 token.
        """
        if not isinstance(metadata, Metadata):
            metadata = parse_metadata(metadata)
        with self._unlock(mnemonic) as keys:
            return self.issuer.p2c_address(keys.public_key, metadata)

    async def resume_issuance(self, mnemonic: str, partial: PartialIssuance) -> IssuanceResult:
        with self._unlock(mnemonic) as keys:
            return await self.issuer.resume(partial, keys)

    async def estimate_fee(self, address: str, amount: int) -> int:
        """Fee of a native transfer of ``amount`` from ``address`` at the current rate."""
        validate_send_amount(amount, self.dust_threshold)
        native = filter_utxos_by_color(await self.backend.get_utxos(address))
        if not native:
            raise NoUtxosAvailableError("No TPC UTXOs available")
        return select_utxos(native, amount, self.fee_rate).fee

    async def get_transaction_status(self, txid: str) -> TransactionStatus | None:
        return await self.backend.get_transaction_status(txid)

    async def is_confirmed(self, txid: str) -> bool:
        status = await self.backend.get_transaction_status(txid)
        return status is not None and status.confirmed

    async def poll_until_confirmed(
        self, txid: str, interval: float = 10.0, max_attempts: int = 30
    ) -> bool:
        """
        Poll until ``txid`` confirms.

        Returns:
            True once confirmed, False if still unconfirmed after ``max_attempts``
        """
        for attempt in range(1, max_attempts + 1):
            if await self.is_confirmed(txid):
                logger.info(f"{txid} confirmed")
                return True
            logger.debug(f"{txid} unconfirmed (check {attempt}/{max_attempts})")
            if attempt < max_attempts:
                await asyncio.sleep(interval)
        return False

    async def close(self) -> None:
        await self.backend.close()

"""
Token issuance.

Reissuable tokens (c1) are issued in one transaction: the color id only
depends on the base key and the metadata, so native UTXOs can go straight
into a colored output. Nodes accept a c1 issue only when one input's
scriptPubKey is the P2C script, so a coin already sitting at the P2C
address is spent as input 0 whenever there is one.

Non-reissuable tokens and NFTs (c2/c3) need two transactions because the
color id is derived from the outpoint that the issue transaction spends:

1. Funding: pay ``dust`` to the P2C address (output 0) and return change to
   the base address (output 1). The change is sized to pay the second fee.
2. Issue: spend output 0 with the P2C private key and output 1 with the
   base key into the colored output.

Every check that can fail runs before the funding broadcast. If the issue
leg fails after that, PartialIssuanceError carries a PartialIssuance that
``resume`` can finish.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from loguru import logger

from tapwallet.config import FundingPolicy
from tapwallet.constants import P2C_OUTPUT_INDEX
from tapwallet.errors import (
    InsufficientFundsError,
    InvalidAmountError,
    InvalidMetadataError,
    KeyDerivationError,
    NetworkError,
    NoUtxosAvailableError,
    PartialIssuanceError,
    WalletError,
)
from tapwallet.wallet.address import pubkey_to_p2pkh_address
from tapwallet.wallet.bip32 import KeyMaterial
from tapwallet.wallet.color import (
    Metadata,
    OutPoint,
    TokenType,
    commitment,
    derive_color_id,
    p2c_private_key,
    p2c_public_key,
    parse_metadata,
)
from tapwallet.wallet.models import CoinSelection, IssuanceResult, Utxo
from tapwallet.wallet.selection import estimate_fee, filter_utxos_by_color, select_utxos
from tapwallet.wallet.transaction import (
    ISSUE_TX_INPUTS,
    ISSUE_TX_OUTPUTS,
    TransactionAssembler,
    validate_colored_amount,
)

if TYPE_CHECKING:
    from tapwallet.backends.base import UtxoSource

# Funding transaction: P2C output + change
FUNDING_TX_OUTPUTS = 2


@dataclass
class FundingPlan:
    """Coins and amounts for the funding leg, fixed before anything is broadcast"""

    selection: CoinSelection
    p2c_amount: int
    funding_fee: int
    funding_change: int
    issue_fee: int


@dataclass
class PartialIssuance:
    """
    A funding transaction that is on the network without its issue transaction.

    Holds no secrets: the P2C private key is re-derived from the base key,
    the metadata and the recorded commitment when resuming.
    """

    funding_txid: str
    output_index: int
    commitment: str
    p2c_address: str
    p2c_amount: int
    funding_change: int
    token_type: TokenType
    amount: int
    metadata: dict[str, Any]
    fee_rate: int

    @property
    def out_point(self) -> OutPoint:
        return OutPoint(self.funding_txid, self.output_index)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["token_type"] = self.token_type.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PartialIssuance:
        try:
            return cls(
                funding_txid=str(data["funding_txid"]),
                output_index=int(data["output_index"]),
                commitment=str(data["commitment"]),
                p2c_address=str(data["p2c_address"]),
                p2c_amount=int(data["p2c_amount"]),
                funding_change=int(data["funding_change"]),
                token_type=TokenType(data["token_type"]),
                amount=int(data["amount"]),
                metadata=dict(data["metadata"]),
                fee_rate=int(data["fee_rate"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid partial issuance record: {e}") from e


def resolve_issue_amount(token_type: TokenType, amount: int | None) -> int:
    """NFTs always issue exactly 1. Other classes need an explicit amount."""
    if token_type is TokenType.NFT:
        if amount not in (None, 1):
            raise InvalidAmountError(f"NFT amount must be 1 (got {amount})")
        return 1
    if amount is None:
        raise InvalidAmountError("Amount is required")
    validate_colored_amount(amount)
    return amount


class IssuanceOrchestrator:
    """Sequences and broadcasts the transactions of one issuance."""

    def __init__(
        self,
        backend: UtxoSource,
        assembler: TransactionAssembler,
        funding_policy: FundingPolicy = FundingPolicy.IMMEDIATE,
        poll_interval: float = 2.0,
        poll_attempts: int = 15,
    ):
        self.backend = backend
        self.assembler = assembler
        self.funding_policy = funding_policy
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts

    @property
    def fee_rate(self) -> int:
        return self.assembler.fee_rate

    @property
    def dust_threshold(self) -> int:
        return self.assembler.dust_threshold

    def plan_funding(self, utxos: list[Utxo]) -> FundingPlan:
        """
        Select coins for the funding leg.

        The selection covers the P2C output, the funding fee and a reserve
        of max(issue fee, dust) that comes back as output 1 and pays the
        issue leg.

        Raises:
            NoUtxosAvailableError: No native UTXOs
            InsufficientFundsError: Native UTXOs cannot cover both legs
        """
        native = filter_utxos_by_color(utxos)
        if not native:
            raise NoUtxosAvailableError("No TPC UTXOs available")

        p2c_amount = self.dust_threshold
        issue_fee = estimate_fee(ISSUE_TX_INPUTS, ISSUE_TX_OUTPUTS, self.fee_rate)
        reserve = max(issue_fee, self.dust_threshold)

        selection = select_utxos(
            native, p2c_amount + reserve, self.fee_rate, output_count=FUNDING_TX_OUTPUTS
        )
        funding_change = selection.total_value - p2c_amount - selection.fee

        if funding_change < issue_fee:
            raise InsufficientFundsError(
                f"Funding change {funding_change} cannot pay issue fee {issue_fee}",
                required=p2c_amount + selection.fee + issue_fee,
                available=selection.total_value,
            )

        logger.debug(
            f"Funding plan: {selection.count} inputs, P2C {p2c_amount}, "
            f"fee {selection.fee}, change {funding_change}, issue fee {issue_fee}"
        )
        return FundingPlan(
            selection=selection,
            p2c_amount=p2c_amount,
            funding_fee=selection.fee,
            funding_change=funding_change,
            issue_fee=issue_fee,
        )

    @staticmethod
    def validate_request(
        metadata: Metadata, token_type: TokenType | str, amount: int | None
    ) -> tuple[TokenType, int]:
        """Checks that need no UTXOs. Returns the token type and the amount to issue."""
        try:
            token_type = TokenType(token_type)
        except ValueError as e:
            raise InvalidMetadataError(f"Unknown token type: {token_type!r}") from e
        if metadata.token_type is not token_type:
            raise InvalidMetadataError(
                f"Metadata declares {metadata.token_type.value}, issuing {token_type.value}"
            )
        return token_type, resolve_issue_amount(token_type, amount)

    def p2c_address(self, public_key: bytes, metadata: Metadata) -> str:
        """Address of the P2C key committed to ``metadata``"""
        return pubkey_to_p2pkh_address(p2c_public_key(public_key, metadata), self.assembler.network)

    async def issue(
        self,
        utxos: list[Utxo],
        keys: KeyMaterial,
        metadata: Metadata,
        token_type: TokenType | str,
        amount: int | None = None,
        p2c_utxos: list[Utxo] | None = None,
    ) -> IssuanceResult:
        """
        Issue ``amount`` of a new token.

        ``p2c_utxos`` are coins held at the P2C address. A reissuable issuance
        spends the largest uncolored one, which is what lets nodes tie the
        c1 color id to one of the transaction's inputs.
        """
        token_type, amount = self.validate_request(metadata, token_type, amount)

        if token_type is TokenType.REISSUABLE:
            return await self._issue_reissuable(utxos, keys, metadata, amount, p2c_utxos or [])
        return await self._issue_with_funding(utxos, keys, metadata, token_type, amount)

    async def _issue_reissuable(
        self,
        utxos: list[Utxo],
        keys: KeyMaterial,
        metadata: Metadata,
        amount: int,
        p2c_utxos: list[Utxo],
    ) -> IssuanceResult:
        color = derive_color_id(TokenType.REISSUABLE, metadata, keys.public_key)
        p2c_utxo = max(filter_utxos_by_color(p2c_utxos), key=lambda u: u.value, default=None)

        if p2c_utxo is None:
            logger.warning(
                f"No coins at P2C address {self.p2c_address(keys.public_key, metadata)}; "
                "the issue transaction spends base-key inputs only"
            )
            built = self.assembler.build_issuance(utxos, color, amount, keys)
        else:
            p2c_priv = p2c_private_key(keys.private_key, metadata)
            try:
                built = self.assembler.build_issuance(
                    utxos,
                    color,
                    amount,
                    keys,
                    p2c_utxo=p2c_utxo,
                    p2c_private_key=p2c_priv,
                    p2c_public_key=p2c_public_key(keys.public_key, metadata),
                )
            finally:
                for i in range(len(p2c_priv)):
                    p2c_priv[i] = 0

        txid = await self.backend.broadcast_transaction(built.hex)
        logger.info(f"Issued {amount} of {color.hex()} in {txid}")

        return IssuanceResult(
            txid=txid,
            color_id=color.hex(),
            payment_base=keys.public_key.hex(),
            broadcasts=[txid],
        )

    async def _issue_with_funding(
        self,
        utxos: list[Utxo],
        keys: KeyMaterial,
        metadata: Metadata,
        token_type: TokenType,
        amount: int,
    ) -> IssuanceResult:
        plan = self.plan_funding(utxos)

        p2c_pub = p2c_public_key(keys.public_key, metadata)
        funding = self.assembler.build_funding(
            plan.selection, keys, p2c_pub, plan.p2c_amount, plan.funding_change
        )

        funding_txid = await self.backend.broadcast_transaction(funding.hex)
        if funding_txid != funding.txid:
            logger.warning(
                f"Broadcast returned txid {funding_txid}, expected {funding.txid}; "
                "using the returned id"
            )
        logger.info(f"Broadcast funding transaction {funding_txid}")

        partial = PartialIssuance(
            funding_txid=funding_txid,
            output_index=P2C_OUTPUT_INDEX,
            commitment=commitment(keys.public_key, metadata).hex(),
            p2c_address=self.p2c_address(keys.public_key, metadata),
            p2c_amount=plan.p2c_amount,
            funding_change=plan.funding_change,
            token_type=token_type,
            amount=amount,
            metadata=metadata.model_dump(mode="json", exclude_none=True),
            fee_rate=self.fee_rate,
        )
        return await self._complete(partial, keys, metadata)

    async def resume(self, partial: PartialIssuance, keys: KeyMaterial) -> IssuanceResult:
        """Build and broadcast the issue leg for an already-broadcast funding leg."""
        metadata = parse_metadata(partial.metadata)
        if commitment(keys.public_key, metadata).hex() != partial.commitment:
            raise KeyDerivationError("Key and metadata do not match the recorded commitment")

        logger.info(f"Resuming issuance from funding transaction {partial.funding_txid}")
        return await self._complete(partial, keys, metadata)

    async def _complete(
        self, partial: PartialIssuance, keys: KeyMaterial, metadata: Metadata
    ) -> IssuanceResult:
        try:
            if self.funding_policy is FundingPolicy.WAIT:
                await self._wait_for_funding(partial.funding_txid)

            out_point = partial.out_point
            color = derive_color_id(partial.token_type, out_point=out_point)
            p2c_pub = p2c_public_key(keys.public_key, metadata)

            p2c_priv = p2c_private_key(keys.private_key, metadata)
            try:
                built = self.assembler.build_issue_from_funding(
                    partial.funding_txid,
                    partial.p2c_amount,
                    partial.funding_change,
                    keys,
                    p2c_priv,
                    p2c_pub,
                    color,
                    partial.amount,
                    fee_rate=partial.fee_rate,
                )
            finally:
                for i in range(len(p2c_priv)):
                    p2c_priv[i] = 0

            txid = await self.backend.broadcast_transaction(built.hex)
        except WalletError as e:
            logger.error(f"Issue transaction failed after funding {partial.funding_txid}: {e}")
            raise PartialIssuanceError(partial, e) from e

        logger.info(f"Issued {partial.amount} of {color.hex()} in {txid}")
        return IssuanceResult(
            txid=txid,
            color_id=color.hex(),
            payment_base=keys.public_key.hex(),
            out_point=str(out_point),
            funding_txid=partial.funding_txid,
            broadcasts=[partial.funding_txid, txid],
        )

    async def _wait_for_funding(self, txid: str) -> None:
        for attempt in range(1, self.poll_attempts + 1):
            status = await self.backend.get_transaction_status(txid)
            if status is not None:
                logger.debug(f"Funding transaction {txid} visible after {attempt} checks")
                return
            if attempt < self.poll_attempts:
                await asyncio.sleep(self.poll_interval)

        raise NetworkError(
            f"Funding transaction {txid} not visible after {self.poll_attempts} checks"
        )

"""
Transaction assembly for native transfers, colored transfers, burns and issuance.

Builds fully signed transactions from a UTXO snapshot and key material.
Nothing here touches the network; broadcasting is the caller's job.

Colored transfer and burn share one recipe. A burn simply omits the
recipient's colored output:
- inputs: selected colored UTXOs, then native UTXOs for the fee
- outputs: [recipient colored output] + [asset change] + [native change]
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from tapwallet.constants import (
    DEFAULT_FEE_RATE,
    DUST_THRESHOLD,
    MAX_AMOUNT,
    MAX_COLORED_AMOUNT,
    P2C_OUTPUT_INDEX,
)
from tapwallet.crypto import hash160
from tapwallet.errors import (
    AmountMustBePositiveError,
    DustAmountError,
    InvalidAddressError,
    InvalidAmountError,
    NoFeeUtxosError,
    NoUtxosAvailableError,
    TransactionBuildError,
)
from tapwallet.validation import is_valid_amount
from tapwallet.wallet.address import (
    address_to_script,
    cp2pkh_script,
    decode_address,
    pubkey_to_p2pkh_script,
)
from tapwallet.wallet.bip32 import KeyMaterial
from tapwallet.wallet.color import ColorId
from tapwallet.wallet.models import CoinSelection, Utxo
from tapwallet.wallet.selection import (
    estimate_fee,
    filter_utxos_by_color,
    select_asset_utxos,
    select_utxos,
)
from tapwallet.wallet.signing import Transaction, TxInput, TxOutput, sign_input

# Outputs assumed when sizing the fee of a colored transfer:
# recipient + asset change + native change
TRANSFER_OUTPUT_ESTIMATE = 3

# Issue leg of a two-transaction issuance: P2C input + funding change input,
# colored output + native change
ISSUE_TX_INPUTS = 2
ISSUE_TX_OUTPUTS = 2


@dataclass
class BuiltTransaction:
    tx: Transaction
    fee: int
    native_change: int = 0
    asset_change: int = 0

    @property
    def hex(self) -> str:
        return self.tx.to_hex()

    @property
    def txid(self) -> str:
        return self.tx.txid()

    @property
    def inputs(self) -> list[TxInput]:
        return self.tx.inputs

    @property
    def outputs(self) -> list[TxOutput]:
        return self.tx.outputs

    def colored_outputs(self) -> list[TxOutput]:
        return [out for out in self.tx.outputs if out.script[:1] == b"\x21"]

    def native_outputs(self) -> list[TxOutput]:
        return [out for out in self.tx.outputs if out.script[:1] != b"\x21"]


def validate_send_amount(amount: int, dust_threshold: int = DUST_THRESHOLD) -> None:
    """Native amount checks that must pass before any UTXO is fetched."""
    if not is_valid_amount(amount, MAX_AMOUNT) or amount == 0:
        raise InvalidAmountError(f"Invalid amount: {amount!r}")
    if amount < dust_threshold:
        raise DustAmountError(amount, dust_threshold)


def validate_colored_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(f"Invalid amount: {amount!r}")
    if amount <= 0:
        raise AmountMustBePositiveError("Amount must be greater than 0")
    if amount > MAX_COLORED_AMOUNT:
        raise InvalidAmountError(f"Amount {amount} exceeds maximum {MAX_COLORED_AMOUNT}")


class TransactionAssembler:
    """Builds and signs Tapyrus transactions for one network and fee policy."""

    def __init__(
        self,
        network: str = "dev",
        fee_rate: int = DEFAULT_FEE_RATE,
        dust_threshold: int = DUST_THRESHOLD,
    ):
        self.network = network
        self.fee_rate = fee_rate
        self.dust_threshold = dust_threshold

    def check_recipient(self, address: str, color: ColorId | None = None) -> bytes:
        """
        Validate a recipient without touching any UTXO. Returns its pubkey hash.

        Native payments (no ``color``) refuse colored addresses; a colored
        address receiving ``color`` must carry that same color id.
        """
        decoded = decode_address(address)
        if decoded.network != self.network:
            raise InvalidAddressError(f"Address {address} is not a {self.network} address")
        if decoded.color_id is not None:
            if color is None:
                raise InvalidAddressError("Native payments cannot go to a colored address")
            if decoded.color_id != color.raw:
                raise InvalidAddressError(f"Address {address} is for a different color")
        return decoded.pubkey_hash

    def _native_input(self, utxo: Utxo, keys: KeyMaterial) -> TxInput:
        return TxInput(
            txid=utxo.txid,
            vout=utxo.vout,
            prev_script=pubkey_to_p2pkh_script(keys.public_key),
            value=utxo.value,
        )

    def _sign_all(self, tx: Transaction, keys: KeyMaterial) -> None:
        for i in range(len(tx.inputs)):
            sign_input(tx, i, keys.private_key, keys.public_key)

    def build_transfer(
        self, utxos: list[Utxo], to_address: str, amount: int, keys: KeyMaterial
    ) -> BuiltTransaction:
        """Native TPC payment with change back to the sender."""
        validate_send_amount(amount, self.dust_threshold)

        self.check_recipient(to_address)

        native = filter_utxos_by_color(utxos)
        if not native:
            raise NoUtxosAvailableError("No TPC UTXOs available")

        selection = select_utxos(native, amount, self.fee_rate)

        tx = Transaction(inputs=[self._native_input(u, keys) for u in selection.utxos])
        tx.outputs.append(TxOutput(amount, address_to_script(to_address)))

        change = selection.total_value - amount - selection.fee
        if change >= self.dust_threshold:
            tx.outputs.append(TxOutput(change, pubkey_to_p2pkh_script(keys.public_key)))
        else:
            change = 0

        self._sign_all(tx, keys)

        fee = selection.total_value - amount - change
        logger.debug(
            f"Built transfer: {len(tx.inputs)} inputs, {len(tx.outputs)} outputs, fee {fee}"
        )
        return BuiltTransaction(tx=tx, fee=fee, native_change=change)

    def build_asset_transfer(
        self,
        utxos: list[Utxo],
        color_id: str,
        to_address: str,
        amount: int,
        keys: KeyMaterial,
    ) -> BuiltTransaction:
        return self._build_colored(utxos, color_id, amount, keys, to_address=to_address)

    def build_burn(
        self, utxos: list[Utxo], color_id: str, amount: int, keys: KeyMaterial
    ) -> BuiltTransaction:
        return self._build_colored(utxos, color_id, amount, keys, to_address=None)

    def _build_colored(
        self,
        utxos: list[Utxo],
        color_id: str,
        amount: int,
        keys: KeyMaterial,
        to_address: str | None,
    ) -> BuiltTransaction:
        is_burn = to_address is None
        validate_colored_amount(amount)
        color = ColorId.from_hex(color_id.lower())

        recipient_hash: bytes | None = None
        if to_address is not None:
            recipient_hash = self.check_recipient(to_address, color)

        asset_utxos = filter_utxos_by_color(utxos, color.hex())
        if not asset_utxos:
            raise NoUtxosAvailableError("No asset UTXOs available")

        native = filter_utxos_by_color(utxos)
        if not native:
            raise NoFeeUtxosError("No TPC UTXOs available for fee")

        asset_selection = select_asset_utxos(asset_utxos, amount)
        asset_change = asset_selection.total_value - amount

        if is_burn:
            output_count = (1 if asset_change > 0 else 0) + 1
        else:
            output_count = TRANSFER_OUTPUT_ESTIMATE

        # A full burn leaves native change as the only output, so it must clear dust
        native_target = self.dust_threshold if is_burn and asset_change == 0 else 0
        native_selection = select_utxos(
            native,
            native_target,
            self.fee_rate,
            output_count=output_count,
            extra_inputs=asset_selection.count,
        )

        base_hash = hash160(keys.public_key)
        own_colored_script = cp2pkh_script(color.raw, base_hash)

        tx = Transaction()
        for utxo in asset_selection.utxos:
            tx.inputs.append(
                TxInput(utxo.txid, utxo.vout, prev_script=own_colored_script, value=utxo.value)
            )
        for utxo in native_selection.utxos:
            tx.inputs.append(self._native_input(utxo, keys))

        if recipient_hash is not None:
            tx.outputs.append(TxOutput(amount, cp2pkh_script(color.raw, recipient_hash)))
        if asset_change > 0:
            tx.outputs.append(TxOutput(asset_change, own_colored_script))

        native_change = native_selection.total_value - native_selection.fee
        if native_change >= self.dust_threshold:
            tx.outputs.append(TxOutput(native_change, pubkey_to_p2pkh_script(keys.public_key)))
        else:
            native_change = 0

        if not tx.outputs:
            raise TransactionBuildError("Transaction would have no outputs")

        self._sign_all(tx, keys)

        fee = native_selection.total_value - native_change
        logger.debug(
            f"Built {'burn' if is_burn else 'asset transfer'} of {amount} {color.hex()[:8]}...: "
            f"{asset_selection.count} colored + {native_selection.count} native inputs, "
            f"{len(tx.outputs)} outputs, fee {fee}"
        )
        return BuiltTransaction(
            tx=tx, fee=fee, native_change=native_change, asset_change=asset_change
        )

    def build_issuance(
        self,
        utxos: list[Utxo],
        color: ColorId,
        amount: int,
        keys: KeyMaterial,
        p2c_utxo: Utxo | None = None,
        p2c_private_key: bytes | bytearray | None = None,
        p2c_public_key: bytes | None = None,
    ) -> BuiltTransaction:
        """
        Single-transaction issuance to the base address's colored form.

        With ``p2c_utxo`` the transaction spends that coin (held by the P2C
        key) as input 0, so one input's scriptPubKey hashes to the color
        payload. Native UTXOs of the base key pay the fee either way.
        """
        validate_colored_amount(amount)

        native = filter_utxos_by_color(utxos)
        if not native:
            raise NoUtxosAvailableError("No TPC UTXOs available")

        tx = Transaction()
        p2c_value = 0
        if p2c_utxo is not None:
            if p2c_private_key is None or p2c_public_key is None:
                raise TransactionBuildError("Spending a P2C UTXO needs the P2C key pair")
            if p2c_utxo.color_id is not None:
                raise TransactionBuildError("P2C UTXO must be uncolored")
            tx.inputs.append(
                TxInput(
                    p2c_utxo.txid,
                    p2c_utxo.vout,
                    prev_script=pubkey_to_p2pkh_script(p2c_public_key),
                    value=p2c_utxo.value,
                )
            )
            p2c_value = p2c_utxo.value

        selection = select_utxos(
            native, 0, self.fee_rate, output_count=2, extra_inputs=len(tx.inputs)
        )
        tx.inputs.extend(self._native_input(u, keys) for u in selection.utxos)
        tx.outputs.append(TxOutput(amount, cp2pkh_script(color.raw, hash160(keys.public_key))))

        total_in = selection.total_value + p2c_value
        change = total_in - selection.fee
        if change >= self.dust_threshold:
            tx.outputs.append(TxOutput(change, pubkey_to_p2pkh_script(keys.public_key)))
        else:
            change = 0

        first_base_input = 0
        if p2c_utxo is not None:
            assert p2c_private_key is not None and p2c_public_key is not None
            sign_input(tx, 0, p2c_private_key, p2c_public_key)
            first_base_input = 1
        for i in range(first_base_input, len(tx.inputs)):
            sign_input(tx, i, keys.private_key, keys.public_key)

        return BuiltTransaction(tx=tx, fee=total_in - change, native_change=change)

    def build_funding(
        self,
        selection: CoinSelection,
        keys: KeyMaterial,
        p2c_public_key: bytes,
        p2c_amount: int,
        change: int,
    ) -> BuiltTransaction:
        """
        First leg of a two-transaction issuance.

        Output 0 pays ``p2c_amount`` to the P2C key, output 1 returns ``change``
        to the base key so the issue leg can spend it for its fee.
        """
        if change < self.dust_threshold:
            raise TransactionBuildError(f"Funding change {change} is below dust")

        tx = Transaction(inputs=[self._native_input(u, keys) for u in selection.utxos])
        tx.outputs.append(TxOutput(p2c_amount, pubkey_to_p2pkh_script(p2c_public_key)))
        tx.outputs.append(TxOutput(change, pubkey_to_p2pkh_script(keys.public_key)))

        self._sign_all(tx, keys)
        fee = selection.total_value - p2c_amount - change
        return BuiltTransaction(tx=tx, fee=fee, native_change=change)

    def build_issue_from_funding(
        self,
        funding_txid: str,
        p2c_amount: int,
        funding_change: int,
        keys: KeyMaterial,
        p2c_private_key: bytes | bytearray,
        p2c_public_key: bytes,
        color: ColorId,
        amount: int,
        fee_rate: int | None = None,
    ) -> BuiltTransaction:
        """
        Second leg: spend the P2C output (signed with the tweaked key) and the
        funding change (signed with the base key) into the colored output.

        ``fee_rate`` is the rate the funding leg reserved for this fee; it
        defaults to the assembler's own rate.
        """
        if fee_rate is None:
            fee_rate = self.fee_rate
        validate_colored_amount(amount)

        tx = Transaction()
        tx.inputs.append(
            TxInput(
                funding_txid,
                P2C_OUTPUT_INDEX,
                prev_script=pubkey_to_p2pkh_script(p2c_public_key),
                value=p2c_amount,
            )
        )
        if funding_change > 0:
            tx.inputs.append(
                TxInput(
                    funding_txid,
                    P2C_OUTPUT_INDEX + 1,
                    prev_script=pubkey_to_p2pkh_script(keys.public_key),
                    value=funding_change,
                )
            )

        total_in = p2c_amount + funding_change
        fee = estimate_fee(len(tx.inputs), ISSUE_TX_OUTPUTS, fee_rate)
        if total_in < fee:
            raise TransactionBuildError(
                f"Issue transaction inputs ({total_in}) do not cover its fee ({fee})"
            )

        tx.outputs.append(TxOutput(amount, cp2pkh_script(color.raw, hash160(keys.public_key))))
        change = total_in - fee
        if change >= self.dust_threshold:
            tx.outputs.append(TxOutput(change, pubkey_to_p2pkh_script(keys.public_key)))
        else:
            change = 0

        sign_input(tx, 0, p2c_private_key, p2c_public_key)
        if len(tx.inputs) > 1:
            sign_input(tx, 1, keys.private_key, keys.public_key)

        return BuiltTransaction(tx=tx, fee=total_in - change, native_change=change)

"""
Greedy largest-first coin selection with size-based fee estimation.

Selection never backtracks: candidates are sorted by value descending and
the shortest prefix that covers target + fee is returned.
"""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from tapwallet.constants import BASE_TX_SIZE, INPUT_SIZE, OUTPUT_SIZE
from tapwallet.errors import InsufficientAssetBalanceError, InsufficientFundsError
from tapwallet.validation import is_native_color_id
from tapwallet.wallet.models import CoinSelection, Utxo

# Plain transfer: recipient + change
DEFAULT_OUTPUT_COUNT = 2


def estimate_tx_size(input_count: int, output_count: int) -> int:
    """Estimated serialized size in bytes for P2PKH-style inputs and outputs."""
    return BASE_TX_SIZE + INPUT_SIZE * input_count + OUTPUT_SIZE * output_count


def estimate_fee(input_count: int, output_count: int, fee_rate: int) -> int:
    return estimate_tx_size(input_count, output_count) * fee_rate


def filter_utxos_by_color(utxos: Iterable[Utxo], color_id: str | None = None) -> list[Utxo]:
    """Native UTXOs when ``color_id`` is empty or all-zero, else UTXOs of that color."""
    if is_native_color_id(color_id):
        return [u for u in utxos if u.is_native]
    assert color_id is not None
    wanted = color_id.lower()
    return [u for u in utxos if u.color_id is not None and u.color_id.lower() == wanted]


def _sorted_by_value(utxos: Iterable[Utxo]) -> list[Utxo]:
    # Stable sort keeps source order between equal values
    return sorted(utxos, key=lambda u: u.value, reverse=True)


def select_utxos(
    utxos: Iterable[Utxo],
    target_amount: int,
    fee_rate: int,
    output_count: int = DEFAULT_OUTPUT_COUNT,
    extra_inputs: int = 0,
) -> CoinSelection:
    """
    Select native UTXOs covering ``target_amount`` plus the fee.

    Args:
        utxos: Candidates, already filtered to the native bucket
        target_amount: Amount the outputs need, excluding fee
        fee_rate: tapyrus per byte
        output_count: Outputs the built transaction is sized for
        extra_inputs: Inputs from another bucket (e.g. colored) that the
            same transaction spends and whose size the fee must cover

    Raises:
        InsufficientFundsError: No prefix of the sorted candidates suffices
    """
    selected: list[Utxo] = []
    total = 0

    for utxo in _sorted_by_value(utxos):
        selected.append(utxo)
        total += utxo.value

        fee = estimate_fee(len(selected) + extra_inputs, output_count, fee_rate)
        if total >= target_amount + fee:
            logger.debug(
                f"Selected {len(selected)} UTXOs totalling {total} for target "
                f"{target_amount} (fee {fee})"
            )
            return CoinSelection(utxos=selected, total_value=total, fee=fee)

    required = target_amount + estimate_fee(
        max(len(selected), 1) + extra_inputs, output_count, fee_rate
    )
    raise InsufficientFundsError(required=required, available=total)


def select_asset_utxos(utxos: Iterable[Utxo], target_amount: int) -> CoinSelection:
    """
    Select colored UTXOs covering ``target_amount``. Colored inputs pay no fee.

    Raises:
        InsufficientAssetBalanceError: The candidates do not add up to the target
    """
    selected: list[Utxo] = []
    total = 0

    for utxo in _sorted_by_value(utxos):
        selected.append(utxo)
        total += utxo.value
        if total >= target_amount:
            return CoinSelection(utxos=selected, total_value=total)

    raise InsufficientAssetBalanceError(required=target_amount, available=total)

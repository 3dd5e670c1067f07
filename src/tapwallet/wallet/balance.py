"""
Balance aggregation over a UTXO snapshot.

Assets are returned sorted by color id so list order is stable across
refreshes.
"""

from __future__ import annotations

from collections.abc import Iterable

from tapwallet.wallet.models import AssetBalance, BalanceDetails, Utxo


def _bucket_key(utxo: Utxo) -> str | None:
    return None if utxo.is_native else utxo.color_id.lower()  # type: ignore[union-attr]


def aggregate_balances(utxos: Iterable[Utxo]) -> tuple[BalanceDetails, list[AssetBalance]]:
    """Split a UTXO set into the native balance and one balance per asset color."""
    buckets: dict[str | None, list[int]] = {}

    for utxo in utxos:
        confirmed_unconfirmed = buckets.setdefault(_bucket_key(utxo), [0, 0])
        if utxo.confirmed:
            confirmed_unconfirmed[0] += utxo.value
        else:
            confirmed_unconfirmed[1] += utxo.value

    native_sums = buckets.pop(None, [0, 0])
    native = BalanceDetails(confirmed=native_sums[0], unconfirmed=native_sums[1])

    assets = [
        AssetBalance(color_id=color_id, confirmed=sums[0], unconfirmed=sums[1])
        for color_id, sums in sorted(buckets.items(), key=lambda item: item[0])
    ]
    return native, assets


def native_balance(utxos: Iterable[Utxo]) -> BalanceDetails:
    return aggregate_balances(utxos)[0]


def asset_balances(utxos: Iterable[Utxo]) -> list[AssetBalance]:
    return aggregate_balances(utxos)[1]


def find_asset_balance(assets: Iterable[AssetBalance], color_id: str) -> AssetBalance | None:
    color_id = color_id.lower()
    for asset in assets:
        if asset.color_id == color_id:
            return asset
    return None

"""
Tests for balance aggregation.
"""

from tapwallet.constants import TPC_COLOR_ID
from tapwallet.wallet.balance import (
    aggregate_balances,
    asset_balances,
    find_asset_balance,
    native_balance,
)
from tapwallet.wallet.models import Utxo

from conftest import make_color_id, make_txid

COLOR_A = make_color_id("a")
COLOR_B = make_color_id("b")


def _utxo(n: int, value: int, confirmed: bool = True, color_id: str | None = None) -> Utxo:
    return Utxo(
        txid=make_txid(f"utxo-{n}"), vout=n, value=value, confirmed=confirmed, color_id=color_id
    )


def test_empty():
    native, assets = aggregate_balances([])
    assert native.total == 0
    assert assets == []


def test_native_split_by_confirmation():
    native = native_balance([_utxo(0, 1000), _utxo(1, 500, confirmed=False), _utxo(2, 250)])
    assert native.confirmed == 1250
    assert native.unconfirmed == 500
    assert native.total == 1750


def test_zero_color_id_is_native():
    native, assets = aggregate_balances([_utxo(0, 700, color_id=TPC_COLOR_ID), _utxo(1, 300)])
    assert native.total == 1000
    assert assets == []


def test_assets_sorted_by_color_id():
    utxos = [
        _utxo(0, 5, color_id=max(COLOR_A, COLOR_B)),
        _utxo(1, 7, color_id=min(COLOR_A, COLOR_B)),
        _utxo(2, 1000),
    ]
    assets = asset_balances(utxos)
    assert [a.color_id for a in assets] == sorted([COLOR_A, COLOR_B])


def test_conservation_per_color():
    utxos = [
        _utxo(0, 10, color_id=COLOR_A),
        _utxo(1, 20, confirmed=False, color_id=COLOR_A),
        _utxo(2, 30, color_id=COLOR_B),
        _utxo(3, 40, color_id=COLOR_A.upper()),
        _utxo(4, 50_000),
    ]
    native, assets = aggregate_balances(utxos)

    a = find_asset_balance(assets, COLOR_A)
    assert a is not None
    assert (a.confirmed, a.unconfirmed, a.total) == (50, 20, 70)

    b = find_asset_balance(assets, COLOR_B.upper())
    assert b is not None
    assert b.total == 30

    assert native.total == 50_000
    assert native.total + sum(x.total for x in assets) == sum(u.value for u in utxos)


def test_find_missing_asset():
    assert find_asset_balance([], COLOR_A) is None

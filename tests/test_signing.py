"""
Tests for Tapyrus transaction serialization and signing.
"""

import pytest

from tapwallet.crypto import hash160, hash256
from tapwallet.wallet.address import cp2pkh_script, pubkey_to_p2pkh_script
from tapwallet.wallet.bip32 import derive_key_material
from tapwallet.wallet.signing import (
    Transaction,
    TransactionSigningError,
    TxInput,
    TxOutput,
    deserialize_transaction,
    encode_varint,
    parse_script_sig,
    read_varint,
    sign_input,
    verify_input,
)

from conftest import TEST_MNEMONIC, make_color_id, make_txid


def _tx(keys, prev_script: bytes | None = None) -> Transaction:
    script = prev_script or pubkey_to_p2pkh_script(keys.public_key)
    return Transaction(
        inputs=[
            TxInput(make_txid("a"), 0, prev_script=script, value=50_000),
            TxInput(make_txid("b"), 3, prev_script=script, value=20_000),
        ],
        outputs=[TxOutput(60_000, pubkey_to_p2pkh_script(keys.public_key))],
    )


class TestHash256:
    def test_empty_input(self):
        expected = bytes.fromhex("5df6e0e2761359d30a8275058e299fcc0381534545f55cf43e41983f5d4c9456")
        assert hash256(b"") == expected


class TestVarint:
    def test_encode(self):
        assert encode_varint(5) == bytes([5])
        assert encode_varint(0x100) == bytes([0xFD, 0x00, 0x01])
        assert encode_varint(0x10000) == bytes([0xFE, 0x00, 0x00, 0x01, 0x00])

    def test_read(self):
        assert read_varint(bytes([0xFD, 0x01, 0x00]), 0) == (1, 3)
        assert read_varint(bytes([0x05, 0xFF]), 0) == (5, 1)


class TestSerialization:
    def test_features_and_layout(self, keys):
        raw = _tx(keys).serialize()
        assert raw[:4] == b"\x01\x00\x00\x00"
        assert raw[4] == 2
        assert raw[-4:] == b"\x00\x00\x00\x00"

    def test_deserialize(self, keys):
        tx = _tx(keys)
        sign_input(tx, 0, keys.private_key, keys.public_key)
        parsed = deserialize_transaction(tx.serialize())
        assert parsed.to_hex() == tx.to_hex()
        assert parsed.inputs[1].txid == make_txid("b")
        assert parsed.inputs[1].vout == 3
        assert parsed.outputs[0].value == 60_000

    def test_deserialize_trailing_bytes(self, keys):
        with pytest.raises(TransactionSigningError):
            deserialize_transaction(_tx(keys).serialize() + b"\x00")

    def test_deserialize_truncated(self, keys):
        with pytest.raises(TransactionSigningError):
            deserialize_transaction(_tx(keys).serialize()[:20])

    def test_txid_ignores_script_sig(self, keys):
        tx = _tx(keys)
        txid_before = tx.txid()
        hash_before = tx.tx_hash()
        sign_input(tx, 0, keys.private_key, keys.public_key)
        sign_input(tx, 1, keys.private_key, keys.public_key)
        assert tx.txid() == txid_before
        assert tx.tx_hash() != hash_before


class TestSigning:
    def test_sign_and_verify(self, keys):
        tx = _tx(keys)
        for i in range(2):
            sign_input(tx, i, keys.private_key, keys.public_key)
        assert verify_input(tx, 0)
        assert verify_input(tx, 1)

    def test_script_sig_layout(self, keys):
        tx = _tx(keys)
        script_sig = sign_input(tx, 0, keys.private_key, keys.public_key)
        signature, pubkey = parse_script_sig(script_sig)
        assert signature[-1] == 0x01
        assert signature[0] == 0x30
        assert pubkey == keys.public_key

    def test_tampered_output_fails(self, keys):
        tx = _tx(keys)
        sign_input(tx, 0, keys.private_key, keys.public_key)
        tx.outputs[0].value -= 1
        assert not verify_input(tx, 0)

    def test_unsigned_input_fails(self, keys):
        assert not verify_input(_tx(keys), 0)

    def test_colored_input(self, keys):
        color = bytes.fromhex(make_color_id())
        colored = cp2pkh_script(color, hash160(keys.public_key))
        tx = _tx(keys, prev_script=colored)
        sign_input(tx, 0, keys.private_key, keys.public_key)
        assert verify_input(tx, 0)

        # A signature over the colored script code does not verify as plain P2PKH
        tx.inputs[0].prev_script = pubkey_to_p2pkh_script(keys.public_key)
        assert not verify_input(tx, 0)

    def test_wrong_key_fails(self, keys):
        other = derive_key_material(TEST_MNEMONIC, index=1)
        tx = _tx(keys)
        sign_input(tx, 0, other.private_key, other.public_key)
        assert not verify_input(tx, 0)

    def test_missing_prev_script(self, keys):
        tx = Transaction(inputs=[TxInput(make_txid("a"), 0)], outputs=[])
        with pytest.raises(TransactionSigningError):
            sign_input(tx, 0, keys.private_key, keys.public_key)

    def test_index_out_of_range(self, keys):
        with pytest.raises((TransactionSigningError, IndexError)):
            sign_input(_tx(keys), 5, keys.private_key, keys.public_key)

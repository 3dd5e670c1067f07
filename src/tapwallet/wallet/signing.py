"""
Tapyrus transaction serialization and signing for P2PKH and CP2PKH inputs.

Tapyrus transactions use the legacy (non-witness) layout with a
``features`` field in place of the version. The txid is malleability
fixed: it is computed over the transaction with every scriptSig emptied.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from tapwallet.constants import SIGHASH_ALL, TX_FEATURES
from tapwallet.crypto import hash256, sign, verify
from tapwallet.errors import TransactionBuildError
from tapwallet.wallet.address import pubkey_to_p2pkh_script


class TransactionSigningError(TransactionBuildError):
    code = "TRANSACTION_SIGNING_FAILURE"


@dataclass
class TxInput:
    txid: str
    vout: int
    prev_script: bytes = b""
    value: int = 0
    script_sig: bytes = b""
    sequence: int = 0xFFFFFFFF

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass
class TxOutput:
    value: int
    script: bytes


@dataclass
class Transaction:
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    features: int = TX_FEATURES
    locktime: int = 0

    def serialize(self, include_script_sig: bool = True) -> bytes:
        result = self.features.to_bytes(4, "little")

        result += encode_varint(len(self.inputs))
        for inp in self.inputs:
            result += serialize_outpoint(inp.txid, inp.vout)
            script = inp.script_sig if include_script_sig else b""
            result += encode_varint(len(script)) + script
            result += inp.sequence.to_bytes(4, "little")

        result += encode_varint(len(self.outputs))
        for out in self.outputs:
            result += out.value.to_bytes(8, "little")
            result += encode_varint(len(out.script)) + out.script

        result += self.locktime.to_bytes(4, "little")
        return result

    def to_hex(self) -> str:
        return self.serialize().hex()

    def txid(self) -> str:
        """Malleability-fixed id (scriptSigs excluded), in display byte order."""
        return hash256(self.serialize(include_script_sig=False))[::-1].hex()

    def tx_hash(self) -> str:
        """Hash over the full serialization, scriptSigs included."""
        return hash256(self.serialize())[::-1].hex()


def encode_varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + value.to_bytes(2, "little")
    if value <= 0xFFFFFFFF:
        return b"\xfe" + value.to_bytes(4, "little")
    return b"\xff" + value.to_bytes(8, "little")


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    first = data[offset]
    offset += 1

    if first < 0xFD:
        return first, offset
    if first == 0xFD:
        return int.from_bytes(data[offset : offset + 2], "little"), offset + 2
    if first == 0xFE:
        return int.from_bytes(data[offset : offset + 4], "little"), offset + 4
    return int.from_bytes(data[offset : offset + 8], "little"), offset + 8


def serialize_outpoint(txid: str, vout: int) -> bytes:
    # txid is displayed big-endian, serialized little-endian
    return bytes.fromhex(txid)[::-1] + vout.to_bytes(4, "little")


def push_data(data: bytes) -> bytes:
    if len(data) < 0x4C:
        return bytes([len(data)]) + data
    if len(data) <= 0xFF:
        return b"\x4c" + bytes([len(data)]) + data
    return b"\x4d" + len(data).to_bytes(2, "little") + data


def deserialize_transaction(tx_bytes: bytes) -> Transaction:
    """Parse a serialized transaction. Input values and prev scripts are unknown."""
    try:
        offset = 0
        features = int.from_bytes(tx_bytes[offset : offset + 4], "little")
        offset += 4

        input_count, offset = read_varint(tx_bytes, offset)
        inputs: list[TxInput] = []
        for _ in range(input_count):
            txid = tx_bytes[offset : offset + 32][::-1].hex()
            offset += 32
            vout = int.from_bytes(tx_bytes[offset : offset + 4], "little")
            offset += 4
            script_len, offset = read_varint(tx_bytes, offset)
            script_sig = tx_bytes[offset : offset + script_len]
            offset += script_len
            sequence = int.from_bytes(tx_bytes[offset : offset + 4], "little")
            offset += 4
            inputs.append(TxInput(txid, vout, script_sig=script_sig, sequence=sequence))

        output_count, offset = read_varint(tx_bytes, offset)
        outputs: list[TxOutput] = []
        for _ in range(output_count):
            value = int.from_bytes(tx_bytes[offset : offset + 8], "little")
            offset += 8
            script_len, offset = read_varint(tx_bytes, offset)
            outputs.append(TxOutput(value, tx_bytes[offset : offset + script_len]))
            offset += script_len

        if offset + 4 != len(tx_bytes):
            raise ValueError(f"{len(tx_bytes) - offset - 4} trailing bytes")
        locktime = int.from_bytes(tx_bytes[offset : offset + 4], "little")
        return Transaction(inputs, outputs, features=features, locktime=locktime)

    except (IndexError, ValueError) as e:
        raise TransactionSigningError(f"Failed to parse transaction: {e}") from e


def compute_sighash(
    tx: Transaction, input_index: int, script_code: bytes, sighash_type: int = SIGHASH_ALL
) -> bytes:
    """Legacy signature hash: every scriptSig emptied except the signed input's script code."""
    if input_index >= len(tx.inputs):
        raise TransactionSigningError("Input index out of range")

    stripped = Transaction(
        inputs=[
            replace(inp, script_sig=script_code if i == input_index else b"")
            for i, inp in enumerate(tx.inputs)
        ],
        outputs=tx.outputs,
        features=tx.features,
        locktime=tx.locktime,
    )
    return hash256(stripped.serialize() + sighash_type.to_bytes(4, "little"))


def sign_input(
    tx: Transaction,
    input_index: int,
    private_key: bytes | bytearray,
    public_key: bytes,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """
    Sign a P2PKH or CP2PKH input in place.

    The input's ``prev_script`` is the script code, so colored inputs are
    signed against their CP2PKH script and plain inputs against P2PKH.

    Returns:
        The scriptSig: <DER signature + sighash byte> <compressed pubkey>
    """
    inp = tx.inputs[input_index]
    if not inp.prev_script:
        raise TransactionSigningError(f"Input {input_index} has no previous output script")

    sighash = compute_sighash(tx, input_index, inp.prev_script, sighash_type)
    signature = sign(sighash, bytes(private_key))
    if signature is None:
        raise TransactionSigningError(f"Failed to sign input {input_index}")

    inp.script_sig = push_data(signature + bytes([sighash_type])) + push_data(public_key)
    return inp.script_sig


def parse_script_sig(script_sig: bytes) -> tuple[bytes, bytes]:
    """Split a P2PKH scriptSig into (signature with sighash byte, pubkey)."""
    items: list[bytes] = []
    offset = 0
    while offset < len(script_sig):
        length = script_sig[offset]
        offset += 1
        if length == 0x4C:
            length = script_sig[offset]
            offset += 1
        items.append(script_sig[offset : offset + length])
        offset += length

    if len(items) != 2:
        raise TransactionSigningError(f"Expected 2 scriptSig pushes, got {len(items)}")
    return items[0], items[1]


def verify_input(tx: Transaction, input_index: int) -> bool:
    """Check the scriptSig of a signed input against its prev script."""
    inp = tx.inputs[input_index]
    try:
        signature, public_key = parse_script_sig(inp.script_sig)
    except (TransactionSigningError, IndexError):
        return False
    if not signature:
        return False
    if not inp.prev_script.endswith(pubkey_to_p2pkh_script(public_key)):
        return False

    sighash = compute_sighash(tx, input_index, inp.prev_script, signature[-1])
    return verify(signature[:-1], sighash, public_key)

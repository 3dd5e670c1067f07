"""
Tapyrus ledger and wallet policy constants.

Fee sizing follows a single-signature P2PKH model:
- BASE_TX_SIZE: version, locktime and count prefixes
- INPUT_SIZE: outpoint + scriptSig (signature and compressed pubkey) + sequence
- OUTPUT_SIZE: value + P2PKH scriptPubKey
"""

from __future__ import annotations

# Minimum output value relayed by the network (tapyrus units)
DUST_THRESHOLD = 546

# Static fee rate in tapyrus per byte
DEFAULT_FEE_RATE = 10

BASE_TX_SIZE = 10
INPUT_SIZE = 148
OUTPUT_SIZE = 34

# 21 million TPC in tapyrus units
MAX_AMOUNT = 2_100_000_000_000_000

# Largest colored amount accepted by wallets and explorers
MAX_COLORED_AMOUNT = 2**53 - 1

# Transaction "features" field (the Tapyrus name for version)
TX_FEATURES = 1
SIGHASH_ALL = 0x01

# Color identifier type bytes (TIP-0020)
COLOR_TYPE_REISSUABLE = 0xC1
COLOR_TYPE_NON_REISSUABLE = 0xC2
COLOR_TYPE_NFT = 0xC3
COLOR_ID_LENGTH = 33

# Native TPC is reported by explorers with an all-zero color id
TPC_COLOR_ID = "00" * COLOR_ID_LENGTH

OP_COLOR = 0xBC

# Output index of the P2C output in a funding transaction
P2C_OUTPUT_INDEX = 0

# Base58check version bytes by network
NETWORK_VERSIONS: dict[str, dict[str, int]] = {
    "prod": {"p2pkh": 0x00, "p2sh": 0x05, "cp2pkh": 0x01, "cp2sh": 0x06, "wif": 0x80},
    "dev": {"p2pkh": 0x6F, "p2sh": 0xC4, "cp2pkh": 0x70, "cp2sh": 0xC5, "wif": 0xEF},
}

# Tapyrus network ids, used as the BIP44 coin type
NETWORK_ID_PROD = 1
NETWORK_ID_TESTNET = 1939510133
DEFAULT_NETWORK_ID = NETWORK_ID_TESTNET

DEFAULT_EXPLORER_URL = "https://testnet-explorer.tapyrus.dev.chaintope.com/api"
DEFAULT_REGISTRY_URL = "https://raw.githubusercontent.com/chaintope/tapyrus-token-registry/master"

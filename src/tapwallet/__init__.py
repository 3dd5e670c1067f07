"""
tapwallet - Non-custodial colored coin wallet engine for Tapyrus

Provides key derivation, balance aggregation, coin selection, colored coin
(TIP-0020 pay-to-contract) issuance, transfer and burn.
"""

__version__ = "0.1.0"

from tapwallet.backends import EsploraBackend, UtxoSource
from tapwallet.config import FundingPolicy, Settings, get_settings
from tapwallet.errors import (
    AmountMustBePositiveError,
    DerivationError,
    DustAmountError,
    InsufficientAssetBalanceError,
    InsufficientFundsError,
    InvalidAddressError,
    InvalidAmountError,
    InvalidColorIdError,
    InvalidMetadataError,
    KeyDerivationError,
    NetworkError,
    NoFeeUtxosError,
    NoUtxosAvailableError,
    PartialIssuanceError,
    TransactionBuildError,
    WalletError,
)
from tapwallet.registry import TokenRegistry, TTLCache
from tapwallet.wallet.balance import aggregate_balances
from tapwallet.wallet.bip32 import KeyMaterial, derive_key_material, unlocked_key
from tapwallet.wallet.color import ColorId, Metadata, OutPoint, TokenType, derive_color_id
from tapwallet.wallet.issuance import IssuanceOrchestrator, PartialIssuance
from tapwallet.wallet.models import (
    AssetBalance,
    BalanceDetails,
    IssuanceResult,
    SendResult,
    TransactionStatus,
    Utxo,
)
from tapwallet.wallet.selection import select_asset_utxos, select_utxos
from tapwallet.wallet.service import WalletService
from tapwallet.wallet.transaction import BuiltTransaction, TransactionAssembler

__all__ = [
    "AmountMustBePositiveError",
    "AssetBalance",
    "BalanceDetails",
    "BuiltTransaction",
    "ColorId",
    "DerivationError",
    "DustAmountError",
    "EsploraBackend",
    "FundingPolicy",
    "InsufficientAssetBalanceError",
    "InsufficientFundsError",
    "InvalidAddressError",
    "InvalidAmountError",
    "InvalidColorIdError",
    "InvalidMetadataError",
    "IssuanceOrchestrator",
    "IssuanceResult",
    "KeyDerivationError",
    "KeyMaterial",
    "Metadata",
    "NetworkError",
    "NoFeeUtxosError",
    "NoUtxosAvailableError",
    "OutPoint",
    "PartialIssuance",
    "PartialIssuanceError",
    "SendResult",
    "Settings",
    "TokenRegistry",
    "TokenType",
    "TransactionAssembler",
    "TransactionBuildError",
    "TransactionStatus",
    "TTLCache",
    "Utxo",
    "UtxoSource",
    "WalletError",
    "WalletService",
    "aggregate_balances",
    "derive_color_id",
    "derive_key_material",
    "get_settings",
    "select_asset_utxos",
    "select_utxos",
    "unlocked_key",
]

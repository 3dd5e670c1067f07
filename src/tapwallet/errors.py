"""
Wallet error taxonomy.

Every failure kind carries a stable ``code`` so callers can map it to a
user-visible message without parsing exception text.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tapwallet.wallet.issuance import PartialIssuance


class WalletError(Exception):
    code = "WALLET_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class InvalidAmountError(WalletError):
    code = "INVALID_AMOUNT"


class AmountMustBePositiveError(InvalidAmountError):
    code = "AMOUNT_MUST_BE_POSITIVE"


class DustAmountError(InvalidAmountError):
    code = "DUST_AMOUNT"

    def __init__(self, amount: int, threshold: int):
        super().__init__(f"Amount must be at least {threshold} tapyrus (got {amount})")
        self.amount = amount
        self.threshold = threshold


class InsufficientFundsError(WalletError):
    code = "INSUFFICIENT_FUNDS"

    def __init__(self, message: str = "", required: int = 0, available: int = 0):
        super().__init__(message or f"Insufficient funds: need {required}, have {available}")
        self.required = required
        self.available = available


class InsufficientAssetBalanceError(InsufficientFundsError):
    code = "INSUFFICIENT_ASSET_BALANCE"

    def __init__(self, required: int, available: int):
        super().__init__(
            f"Insufficient asset balance: need {required}, have {available}",
            required=required,
            available=available,
        )


class NoUtxosAvailableError(WalletError):
    code = "NO_UTXOS_AVAILABLE"


class NoFeeUtxosError(NoUtxosAvailableError):
    code = "NO_FEE_UTXOS"


class InvalidMetadataError(WalletError):
    code = "INVALID_METADATA"


class InvalidAddressError(WalletError):
    code = "INVALID_ADDRESS"


class InvalidColorIdError(WalletError):
    code = "INVALID_COLOR_ID"


class KeyDerivationError(WalletError):
    code = "KEY_DERIVATION_FAILURE"


class DerivationError(KeyDerivationError):
    """HD derivation produced no usable private key."""

    code = "DERIVATION_FAILURE"


class TransactionBuildError(WalletError):
    code = "TRANSACTION_BUILD_FAILURE"


class NetworkError(WalletError):
    code = "NETWORK_FAILURE"


class PartialIssuanceError(WalletError):
    """
    The funding transaction is on the network but the issue transaction is not.

    ``partial`` holds everything needed to resume the second leg.
    """

    code = "PARTIAL_ISSUANCE"

    def __init__(self, partial: PartialIssuance, cause: Exception | None = None):
        detail = f": {cause}" if cause else ""
        super().__init__(
            f"Funding transaction {partial.funding_txid} broadcast but issuance "
            f"did not complete{detail}"
        )
        self.partial = partial
        self.cause = cause

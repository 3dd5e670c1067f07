"""
UTXO source implementations.

Available backends:
- EsploraBackend: Tapyrus Esplora REST API over HTTP
"""

from tapwallet.backends.base import UtxoSource
from tapwallet.backends.esplora import EsploraBackend

__all__ = [
    "EsploraBackend",
    "UtxoSource",
]

"""Database model exports."""

from .ledger import TRANSACTION_SIDES, Transaction
from .prices import HistoricalPrice, TokenMapping
from .snapshots import PortfolioSnapshot

__all__ = [
    "Transaction",
    "TRANSACTION_SIDES",
    "HistoricalPrice",
    "TokenMapping",
    "PortfolioSnapshot",
]

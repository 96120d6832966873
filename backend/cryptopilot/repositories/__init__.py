"""Repository exports."""

from .base import LedgerStoreError
from .prices import PriceRepository
from .snapshots import SnapshotRepository, SnapshotRow
from .token_map import TokenMapRepository
from .transactions import TransactionRepository

__all__ = [
    "LedgerStoreError",
    "PriceRepository",
    "SnapshotRepository",
    "SnapshotRow",
    "TokenMapRepository",
    "TransactionRepository",
]

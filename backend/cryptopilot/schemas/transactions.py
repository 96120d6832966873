"""Pydantic schemas for transaction intake and listing."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import Field

from .common import CamelModel


class TransactionCreateRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    symbol: str = Field(..., min_length=1, examples=["BTC"])
    quantity: float
    side: str = Field(..., examples=["BUY"])
    price: float | None = None
    timestamp: str | None = Field(default=None, description="ISO-8601 instant; defaults to now")
    note: str | None = None
    client_tx_id: str | None = None
    batch_id: str | None = None


class TransactionCreateResponse(CamelModel):
    success: bool = True
    accepted: bool = True
    transaction_id: str
    batch_id: str | None = None
    rid: str


class TransactionSchema(CamelModel):
    transaction_id: str
    user_id: str
    symbol: str
    side: str
    quantity: float
    price: float | None = None
    timestamp: datetime
    note: str | None = None
    fee: float | None = None
    fee_currency: str | None = None
    exchange: str | None = None
    ext_ref: str | None = None
    import_batch_id: str | None = None


class TransactionListResponse(CamelModel):
    success: bool = True
    transactions: list[TransactionSchema] = Field(default_factory=list)


class BulkRowSchema(CamelModel):
    # Loosely typed: unusable rows are skipped rather than rejected.
    symbol: str = ""
    side: str = ""
    quantity: Any = None
    timestamp: Any = None
    price: Any = None
    note: str | None = None
    fee: Any = None
    fee_currency: str | None = None
    exchange: str | None = None
    ext_ref: str | None = None
    client_tx_id: str | None = None
    import_batch_id: str | None = None


class BulkImportRequest(CamelModel):
    user_id: str = ""
    exchange: str | None = None
    import_batch_id: str | None = None
    rows: list[BulkRowSchema] = Field(default_factory=list)


class SymbolJobSchema(CamelModel):
    symbol: str
    from_date: date = Field(..., serialization_alias="from")


class BulkImportResponse(CamelModel):
    success: bool = True
    imported: int
    skipped: int
    import_batch_id: str | None = None
    per_symbol_jobs: list[SymbolJobSchema] = Field(default_factory=list)
    rid: str | None = None

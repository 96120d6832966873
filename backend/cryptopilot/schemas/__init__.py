"""Pydantic schemas exposed by the API."""

from .common import CamelModel, ErrorResponse, HealthResponse
from .jobs import AfterTransactionRequest, JobAcceptedResponse
from .portfolio import (
    AssetSchema,
    CurrentPortfolioResponse,
    CurrentPortfolioSchema,
    HistoryPointSchema,
    PortfolioHistoryResponse,
    PortfolioHistorySchema,
)
from .prices import PricesResponse
from .transactions import (
    BulkImportRequest,
    BulkImportResponse,
    BulkRowSchema,
    SymbolJobSchema,
    TransactionCreateRequest,
    TransactionCreateResponse,
    TransactionListResponse,
    TransactionSchema,
)

__all__ = [
    "AfterTransactionRequest",
    "AssetSchema",
    "BulkImportRequest",
    "BulkImportResponse",
    "BulkRowSchema",
    "CamelModel",
    "CurrentPortfolioResponse",
    "CurrentPortfolioSchema",
    "ErrorResponse",
    "HealthResponse",
    "HistoryPointSchema",
    "JobAcceptedResponse",
    "PortfolioHistoryResponse",
    "PortfolioHistorySchema",
    "PricesResponse",
    "SymbolJobSchema",
    "TransactionCreateRequest",
    "TransactionCreateResponse",
    "TransactionListResponse",
    "TransactionSchema",
]

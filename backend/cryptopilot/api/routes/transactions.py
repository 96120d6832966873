"""Transaction intake and listing endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from cryptopilot.api.dependencies import get_container
from cryptopilot.container import ServiceContainer
from cryptopilot.schemas import (
    BulkImportRequest,
    BulkImportResponse,
    SymbolJobSchema,
    TransactionCreateRequest,
    TransactionCreateResponse,
    TransactionListResponse,
    TransactionSchema,
)
from cryptopilot.services.transactions import BulkRow, NewTransaction

router = APIRouter()


def _optional_float(value) -> float | None:
    return float(value) if value is not None else None


@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    user_id: str = Query(..., alias="userId", min_length=1),
    limit: int | None = Query(default=None, ge=1),
    container: ServiceContainer = Depends(get_container),
) -> TransactionListResponse:
    rows = await container.intake.list_transactions(user_id, limit=limit)
    return TransactionListResponse(
        transactions=[
            TransactionSchema(
                transaction_id=row.transaction_id,
                user_id=row.user_id,
                symbol=row.symbol,
                side=row.side,
                quantity=float(row.quantity),
                price=_optional_float(row.price),
                timestamp=row.timestamp,
                note=row.note,
                fee=_optional_float(row.fee),
                fee_currency=row.fee_currency,
                exchange=row.exchange,
                ext_ref=row.ext_ref,
                import_batch_id=row.import_batch_id,
            )
            for row in rows
        ]
    )


@router.post("", response_model=TransactionCreateResponse)
async def add_transaction(
    payload: TransactionCreateRequest,
    container: ServiceContainer = Depends(get_container),
) -> TransactionCreateResponse:
    result = await container.intake.add_transaction(
        NewTransaction(
            user_id=payload.user_id,
            symbol=payload.symbol,
            quantity=payload.quantity,
            side=payload.side,
            price=payload.price,
            timestamp=payload.timestamp,
            note=payload.note,
            client_tx_id=payload.client_tx_id,
            batch_id=payload.batch_id,
        )
    )
    return TransactionCreateResponse(
        transaction_id=result.transaction_id,
        batch_id=result.batch_id,
        rid=result.rid,
    )


@router.post("/bulk", response_model=BulkImportResponse)
async def import_transactions(
    payload: BulkImportRequest,
    container: ServiceContainer = Depends(get_container),
) -> BulkImportResponse:
    result = await container.intake.import_bulk(
        payload.user_id,
        [BulkRow(**row.model_dump()) for row in payload.rows],
        exchange=payload.exchange,
        import_batch_id=payload.import_batch_id,
    )
    return BulkImportResponse(
        imported=result.imported,
        skipped=result.skipped,
        import_batch_id=result.import_batch_id,
        per_symbol_jobs=[
            SymbolJobSchema(symbol=job.symbol, from_date=job.from_date) for job in result.per_symbol_jobs
        ],
        rid=result.rid,
    )


__all__ = ["router"]

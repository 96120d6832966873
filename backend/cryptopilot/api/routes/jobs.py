"""Internal job trigger endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from cryptopilot.api.dependencies import get_container
from cryptopilot.container import ServiceContainer
from cryptopilot.core.logging import new_rid
from cryptopilot.schemas import AfterTransactionRequest, JobAcceptedResponse

router = APIRouter()


@router.post(
    "/after-transaction",
    response_model=JobAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def trigger_after_transaction(
    payload: AfterTransactionRequest,
    container: ServiceContainer = Depends(get_container),
) -> JobAcceptedResponse:
    rid = new_rid()
    container.intake.schedule_reconcile(
        payload.user_id,
        payload.symbol,
        payload.tx_date,
        rid=rid,
        prewarm_range=payload.prewarm_range,
    )
    return JobAcceptedResponse(rid=rid)


__all__ = ["router"]

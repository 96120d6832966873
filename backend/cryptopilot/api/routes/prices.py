"""Live price lookup endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from cryptopilot.api.dependencies import get_container
from cryptopilot.container import ServiceContainer
from cryptopilot.providers import PriceSourceError
from cryptopilot.schemas import PricesResponse
from cryptopilot.services.pricing import normalize_symbols

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=PricesResponse)
async def get_prices(
    symbols: str = Query("", description="Comma separated symbols, e.g. BTC,ETH"),
    container: ServiceContainer = Depends(get_container),
) -> PricesResponse:
    wanted = normalize_symbols(symbols.split(","))
    if not wanted:
        return PricesResponse()
    try:
        prices = await container.pricing.get_current_prices(wanted)
    except PriceSourceError as exc:
        logger.error("Price lookup for %s failed: %s", ",".join(wanted), exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return PricesResponse(prices={symbol: float(price) for symbol, price in prices.items()})


__all__ = ["router"]

"""Route registration helpers."""

from __future__ import annotations

from fastapi import APIRouter

from .jobs import router as jobs_router
from .portfolio import router as portfolio_router
from .prices import router as prices_router
from .transactions import router as transactions_router

api_router = APIRouter()
api_router.include_router(portfolio_router, prefix="/portfolio", tags=["portfolio"])
api_router.include_router(transactions_router, prefix="/transactions", tags=["transactions"])
api_router.include_router(prices_router, prefix="/prices", tags=["prices"])
api_router.include_router(jobs_router, prefix="/jobs", tags=["jobs"])

__all__ = ["api_router"]

"""Portfolio valuation and history endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from cryptopilot.api.dependencies import get_container
from cryptopilot.container import ServiceContainer
from cryptopilot.core.logging import new_rid
from cryptopilot.schemas import (
    AssetSchema,
    CurrentPortfolioResponse,
    CurrentPortfolioSchema,
    HistoryPointSchema,
    PortfolioHistoryResponse,
    PortfolioHistorySchema,
)
from cryptopilot.services.history import PortfolioHistory
from cryptopilot.services.portfolio import CurrentPortfolio

router = APIRouter()


def _portfolio_schema(portfolio: CurrentPortfolio) -> CurrentPortfolioSchema:
    return CurrentPortfolioSchema(
        assets=[
            AssetSchema(
                symbol=asset.symbol,
                quantity=float(asset.quantity),
                avg_price=float(asset.avg_price),
                current_price=float(asset.current_price),
                value=float(asset.value),
                invested=float(asset.invested),
                pnl=float(asset.pnl),
                pnl_percent=float(asset.pnl_percent),
            )
            for asset in portfolio.assets
        ],
        total_value=float(portfolio.total_value),
        total_invested=float(portfolio.total_invested),
        total_pnl=float(portfolio.total_pnl),
        total_pnl_percent=float(portfolio.total_pnl_percent),
        last_updated=portfolio.last_updated,
    )


def _history_schema(history: PortfolioHistory) -> PortfolioHistorySchema:
    return PortfolioHistorySchema(
        range=history.range,
        source=history.source,
        points=[
            HistoryPointSchema(
                date=point.date,
                total_value=float(point.total_value),
                daily_change=float(point.daily_change),
                daily_change_percent=float(point.daily_change_percent),
            )
            for point in history.points
        ],
        total_return=float(history.total_return),
        total_return_percent=float(history.total_return_percent),
    )


@router.get("/current", response_model=CurrentPortfolioResponse)
async def get_current_portfolio(
    user_id: str = Query(..., alias="userId", min_length=1),
    container: ServiceContainer = Depends(get_container),
) -> CurrentPortfolioResponse:
    portfolio = await container.valuator.get_current_portfolio(user_id, rid=new_rid())
    return CurrentPortfolioResponse(portfolio=_portfolio_schema(portfolio))


@router.get("/history", response_model=PortfolioHistoryResponse)
async def get_portfolio_history(
    user_id: str = Query(..., alias="userId", min_length=1),
    range_name: str = Query("30d", alias="range"),
    container: ServiceContainer = Depends(get_container),
) -> PortfolioHistoryResponse:
    history = await container.history.compute_history(user_id, range_name, rid=new_rid())
    return PortfolioHistoryResponse(history=_history_schema(history))


__all__ = ["router"]

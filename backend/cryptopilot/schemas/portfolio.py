"""Pydantic schemas for current valuation and value history."""

from __future__ import annotations

import datetime as dt

from pydantic import Field

from .common import CamelModel


class AssetSchema(CamelModel):
    symbol: str
    quantity: float
    avg_price: float
    current_price: float
    value: float
    invested: float
    pnl: float
    pnl_percent: float


class CurrentPortfolioSchema(CamelModel):
    assets: list[AssetSchema] = Field(default_factory=list)
    total_value: float = 0.0
    total_invested: float = 0.0
    total_pnl: float = 0.0
    total_pnl_percent: float = 0.0
    last_updated: dt.datetime | None = None


class HistoryPointSchema(CamelModel):
    date: dt.date
    total_value: float
    daily_change: float = 0.0
    daily_change_percent: float = 0.0


class PortfolioHistorySchema(CamelModel):
    range: str
    source: str = Field(..., description="cache, replay, empty or placeholder")
    points: list[HistoryPointSchema] = Field(default_factory=list)
    total_return: float = 0.0
    total_return_percent: float = 0.0


class CurrentPortfolioResponse(CamelModel):
    success: bool = True
    portfolio: CurrentPortfolioSchema


class PortfolioHistoryResponse(CamelModel):
    success: bool = True
    history: PortfolioHistorySchema

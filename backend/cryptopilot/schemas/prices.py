"""Pydantic schemas for live price lookups."""

from __future__ import annotations

from pydantic import Field

from .common import CamelModel


class PricesResponse(CamelModel):
    success: bool = True
    prices: dict[str, float] = Field(default_factory=dict)

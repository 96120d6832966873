"""Pydantic schemas for the internal job trigger."""

from __future__ import annotations

from datetime import date

from pydantic import Field

from .common import CamelModel


class AfterTransactionRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    symbol: str = Field(..., min_length=1)
    tx_date: date
    prewarm_range: str | None = Field(default=None, examples=["30d"])


class JobAcceptedResponse(CamelModel):
    success: bool = True
    rid: str

"""Live portfolio valuation from a full ledger replay."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from cryptopilot.core.logging import with_rid
from cryptopilot.providers import PriceSourceError
from cryptopilot.repositories import TransactionRepository

from .calendar import Calendar
from .positions import ZERO, open_positions
from .pricing import PricingService

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass
class AssetValuation:
    symbol: str
    quantity: Decimal
    avg_price: Decimal
    current_price: Decimal
    value: Decimal
    invested: Decimal
    pnl: Decimal
    pnl_percent: Decimal
    live_price: bool = True


@dataclass
class CurrentPortfolio:
    assets: list[AssetValuation] = field(default_factory=list)
    total_value: Decimal = ZERO
    total_invested: Decimal = ZERO
    total_pnl: Decimal = ZERO
    total_pnl_percent: Decimal = ZERO
    last_updated: datetime | None = None


def percent_of(amount: Decimal, base: Decimal) -> Decimal:
    if base == 0:
        return ZERO
    return amount / base * HUNDRED


def value_asset(
    symbol: str, quantity: Decimal, avg_price: Decimal, current_price: Decimal | None
) -> AssetValuation:
    """Value one holding; an unknown live price falls back to the average cost."""

    price = current_price if current_price is not None else avg_price
    value = quantity * price
    invested = quantity * avg_price
    pnl = value - invested
    return AssetValuation(
        symbol=symbol,
        quantity=quantity,
        avg_price=avg_price,
        current_price=price,
        value=value,
        invested=invested,
        pnl=pnl,
        pnl_percent=percent_of(pnl, invested),
        live_price=current_price is not None,
    )


def snapshot_breakdown(portfolio: CurrentPortfolio) -> dict[str, Any]:
    """Breakdown shape stored alongside a snapshot's total value."""

    return {
        asset.symbol: {
            "quantity": str(asset.quantity),
            "value": str(asset.value),
            "price": str(asset.current_price),
        }
        for asset in portfolio.assets
    }


class PortfolioValuator:
    """Compute the current portfolio; never reads or writes the snapshot cache."""

    def __init__(self, transactions: TransactionRepository, pricing: PricingService, calendar: Calendar):
        self._transactions = transactions
        self._pricing = pricing
        self._calendar = calendar

    async def get_current_portfolio(self, user_id: str, *, rid: str | None = None) -> CurrentPortfolio:
        log = with_rid(logger, rid)
        rows = await self._transactions.list_for_user(user_id)
        positions = open_positions(rows)
        now = self._calendar.now()
        if not positions:
            return CurrentPortfolio(last_updated=now)

        symbols = [position.symbol for position in positions]
        try:
            prices = await self._pricing.get_current_prices(symbols)
        except PriceSourceError as exc:
            log.warning("Live prices unavailable for %s, valuing at average cost: %s", user_id, exc)
            prices = {}

        assets = [
            value_asset(position.symbol, position.quantity, position.avg_price, prices.get(position.symbol))
            for position in positions
        ]
        assets.sort(key=lambda asset: (-asset.value, asset.symbol))

        total_value = sum((asset.value for asset in assets), ZERO)
        total_invested = sum((asset.invested for asset in assets), ZERO)
        total_pnl = total_value - total_invested
        return CurrentPortfolio(
            assets=assets,
            total_value=total_value,
            total_invested=total_invested,
            total_pnl=total_pnl,
            total_pnl_percent=percent_of(total_pnl, total_invested),
            last_updated=now,
        )


__all__ = [
    "AssetValuation",
    "CurrentPortfolio",
    "PortfolioValuator",
    "percent_of",
    "snapshot_breakdown",
    "value_asset",
]

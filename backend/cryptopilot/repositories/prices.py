"""Historical price rows, one per ``(date, symbol)``."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import select

from cryptopilot.models import HistoricalPrice

from .base import Repository, store_errors, upsert_all


class PriceRepository(Repository):
    async def get_dates(self, symbol: str, start: date, end: date) -> set[date]:
        """Days between ``start`` and ``end`` (inclusive) that already have a price for ``symbol``."""

        stmt = select(HistoricalPrice.date).where(
            HistoricalPrice.symbol == symbol.upper(),
            HistoricalPrice.date >= start,
            HistoricalPrice.date <= end,
        )
        with store_errors("load price dates"):
            async with self.database.session() as session:
                result = await session.execute(stmt)
                return set(result.scalars().all())

    async def get_range(
        self, symbols: Iterable[str], start: date, end: date
    ) -> dict[date, dict[str, Decimal]]:
        """Prices keyed by day, then by symbol."""

        wanted = sorted({symbol.upper() for symbol in symbols})
        if not wanted:
            return {}
        stmt = (
            select(HistoricalPrice.date, HistoricalPrice.symbol, HistoricalPrice.price)
            .where(
                HistoricalPrice.symbol.in_(wanted),
                HistoricalPrice.date >= start,
                HistoricalPrice.date <= end,
            )
            .order_by(HistoricalPrice.date.asc(), HistoricalPrice.symbol.asc())
        )
        prices: dict[date, dict[str, Decimal]] = defaultdict(dict)
        with store_errors("load historical prices"):
            async with self.database.session() as session:
                for day, symbol, price in (await session.execute(stmt)).all():
                    prices[day][symbol] = Decimal(price)
        return dict(prices)

    async def get_for_day(self, symbols: Iterable[str], day: date) -> dict[str, Decimal]:
        return (await self.get_range(symbols, day, day)).get(day, {})

    async def upsert_many(self, rows: list[dict[str, Any]]) -> int:
        """Merge price rows on ``(date, symbol)``; symbols upper-cased, token ids lower-cased."""

        if not rows:
            return 0
        now = datetime.now(timezone.utc)
        unique: dict[tuple[date, str], dict[str, Any]] = {}
        for row in rows:
            symbol = row["symbol"].upper()
            unique[(row["date"], symbol)] = {
                "date": row["date"],
                "symbol": symbol,
                "token_id": row["token_id"].lower(),
                "price": row["price"],
                "source": row.get("source", "unknown"),
                "last_updated": now,
            }
        with store_errors("upsert historical prices"):
            async with self.database.session() as session:
                await upsert_all(
                    session,
                    HistoricalPrice,
                    list(unique.values()),
                    keys=["date", "symbol"],
                    update=["token_id", "price", "source", "last_updated"],
                )
                await session.commit()
        return len(unique)


__all__ = ["PriceRepository"]

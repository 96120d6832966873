"""Symbol to price-provider id mapping."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import select

from cryptopilot.models import TokenMapping

from .base import Repository, store_errors, upsert


class TokenMapRepository(Repository):
    async def get_ids(self, symbols: Iterable[str]) -> dict[str, str]:
        """Best-ranked provider id per upper-cased symbol; unmapped symbols are omitted."""

        wanted = sorted({symbol.strip().upper() for symbol in symbols if symbol and symbol.strip()})
        if not wanted:
            return {}
        stmt = select(TokenMapping.symbol, TokenMapping.provider_id, TokenMapping.rank).where(
            TokenMapping.symbol.in_(wanted)
        )
        with store_errors("load token map"):
            async with self.database.session() as session:
                rows = (await session.execute(stmt)).all()

        best: dict[str, tuple[tuple[bool, int, str], str]] = {}
        for symbol, provider_id, rank in rows:
            # rank ascending, unranked last, then id for a stable choice
            sort_key = (rank is None, rank if rank is not None else 0, provider_id)
            current = best.get(symbol)
            if current is None or sort_key < current[0]:
                best[symbol] = (sort_key, provider_id)
        return {symbol: provider_id for symbol, (_, provider_id) in best.items()}

    async def upsert(self, symbol: str, provider_id: str, rank: int | None = None) -> None:
        with store_errors("upsert token mapping"):
            async with self.database.session() as session:
                stmt = upsert(
                    session,
                    TokenMapping,
                    [{"symbol": symbol.strip().upper(), "provider_id": provider_id, "rank": rank}],
                    keys=["symbol", "provider_id"],
                    update=["rank"],
                )
                await session.execute(stmt)
                await session.commit()


__all__ = ["TokenMapRepository"]

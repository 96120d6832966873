"""Historical price and token mapping models."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import Date, DateTime, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cryptopilot.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoricalPrice(Base):
    __tablename__ = "historical_prices"
    __table_args__ = (
        UniqueConstraint("date", "symbol", name="uq_historical_prices_date_symbol"),
        Index("ix_historical_prices_symbol_date", "symbol", "date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    date: Mapped[date] = mapped_column(Date)
    symbol: Mapped[str] = mapped_column(String(32))
    token_id: Mapped[str] = mapped_column(String(128))
    price: Mapped[Decimal] = mapped_column(Numeric(38, 18))
    source: Mapped[str] = mapped_column(String(32))
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class TokenMapping(Base):
    __tablename__ = "token_map"
    __table_args__ = (
        UniqueConstraint("symbol", "provider_id", name="uq_token_map_symbol_provider"),
        Index("ix_token_map_symbol", "symbol"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(32))
    provider_id: Mapped[str] = mapped_column(String(128))
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)


__all__ = ["HistoricalPrice", "TokenMapping"]

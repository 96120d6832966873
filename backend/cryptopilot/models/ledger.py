"""Transaction ledger model."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, Enum, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cryptopilot.db.base import Base

TRANSACTION_SIDES = ("BUY", "SELL", "TRANSFER")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("user_id", "dedupe_key", name="uq_transactions_user_dedupe"),
        Index("ix_transactions_user_timestamp", "user_id", "timestamp"),
        Index("ix_transactions_user_symbol", "user_id", "symbol"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String(32), unique=True)
    user_id: Mapped[str] = mapped_column(String(128))
    symbol: Mapped[str] = mapped_column(String(32))
    side: Mapped[str] = mapped_column(Enum(*TRANSACTION_SIDES, name="transaction_side"))
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 18))
    price: Mapped[Decimal | None] = mapped_column(Numeric(38, 18), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    note: Mapped[str | None] = mapped_column(String(512), nullable=True)

    fee: Mapped[Decimal | None] = mapped_column(Numeric(38, 18), nullable=True)
    fee_currency: Mapped[str | None] = mapped_column(String(16), nullable=True)
    exchange: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ext_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    client_tx_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    import_batch_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    dedupe_key: Mapped[str] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


__all__ = ["Transaction", "TRANSACTION_SIDES"]

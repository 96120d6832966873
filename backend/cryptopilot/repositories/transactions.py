"""Ledger store: append-only transactions keyed by per-user dedupe identity."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import func, select

from cryptopilot.models import Transaction

from .base import Repository, store_errors, upsert, upsert_all

# Columns refreshed when an identical transaction is written again.
_MUTABLE_COLUMNS = [
    "symbol",
    "side",
    "quantity",
    "price",
    "timestamp",
    "note",
    "fee",
    "fee_currency",
    "exchange",
    "ext_ref",
    "client_tx_id",
    "import_batch_id",
]


def new_transaction_id() -> str:
    return uuid.uuid4().hex


class TransactionRepository(Repository):
    async def list_for_user(
        self,
        user_id: str,
        *,
        until: datetime | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[Transaction]:
        """Transactions for a user ordered by timestamp; ``until`` is exclusive."""

        stmt = select(Transaction).where(Transaction.user_id == user_id)
        if until is not None:
            stmt = stmt.where(Transaction.timestamp < until)
        if newest_first:
            stmt = stmt.order_by(Transaction.timestamp.desc(), Transaction.id.desc())
        else:
            stmt = stmt.order_by(Transaction.timestamp.asc(), Transaction.id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with store_errors("list transactions"):
            async with self.database.session() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())

    async def count_for_user(self, user_id: str) -> int:
        stmt = select(func.count()).select_from(Transaction).where(Transaction.user_id == user_id)
        with store_errors("count transactions"):
            async with self.database.session() as session:
                return int((await session.execute(stmt)).scalar_one())

    async def upsert(self, record: dict[str, Any]) -> str:
        """Insert or update one transaction by ``(user_id, dedupe_key)``; returns its stored id."""

        row = {"transaction_id": new_transaction_id(), **record}
        with store_errors("upsert transaction"):
            async with self.database.session() as session:
                stmt = upsert(
                    session,
                    Transaction,
                    [row],
                    keys=["user_id", "dedupe_key"],
                    update=_MUTABLE_COLUMNS,
                )
                await session.execute(stmt)
                await session.commit()
                stored = await session.execute(
                    select(Transaction.transaction_id).where(
                        Transaction.user_id == row["user_id"],
                        Transaction.dedupe_key == row["dedupe_key"],
                    )
                )
                return stored.scalar_one()

    async def upsert_many(self, records: list[dict[str, Any]]) -> int:
        """Batch insert-or-update; rows sharing an identity inside the batch collapse, last wins."""

        unique: dict[tuple[str, str], dict[str, Any]] = {}
        for record in records:
            unique[(record["user_id"], record["dedupe_key"])] = {
                "transaction_id": new_transaction_id(),
                **record,
            }
        if not unique:
            return 0
        with store_errors("bulk upsert transactions"):
            async with self.database.session() as session:
                await upsert_all(
                    session,
                    Transaction,
                    list(unique.values()),
                    keys=["user_id", "dedupe_key"],
                    update=_MUTABLE_COLUMNS,
                )
                await session.commit()
        return len(unique)


__all__ = ["TransactionRepository", "new_transaction_id"]

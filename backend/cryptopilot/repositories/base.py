"""Shared helpers for the SQLAlchemy repositories."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cryptopilot.db.session import Database

logger = logging.getLogger(__name__)

# Rows per INSERT; keeps wide tables under asyncpg's 32767 bind parameter limit.
UPSERT_CHUNK_SIZE = 1000


class LedgerStoreError(RuntimeError):
    """Raised when the database backing the ledger or its caches fails."""


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as :class:`LedgerStoreError`."""

    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Store operation %s failed: %s", operation, exc)
        raise LedgerStoreError(f"{operation} failed: {exc.__class__.__name__}") from exc


def upsert(session: AsyncSession, model: Any, rows: list[dict[str, Any]], *, keys: list[str], update: list[str]):
    """``INSERT .. ON CONFLICT (keys) DO UPDATE`` for PostgreSQL and SQLite."""

    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(model).values(rows)
    elif dialect == "sqlite":
        stmt = sqlite_insert(model).values(rows)
    else:
        raise LedgerStoreError(f"Upsert is not supported on the {dialect} dialect")
    return stmt.on_conflict_do_update(
        index_elements=keys,
        set_={column: getattr(stmt.excluded, column) for column in update},
    )


def chunked(rows: Sequence[dict[str, Any]], size: int) -> Iterator[list[dict[str, Any]]]:
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    for start in range(0, len(rows), size):
        yield list(rows[start : start + size])


async def upsert_all(
    session: AsyncSession,
    model: Any,
    rows: Sequence[dict[str, Any]],
    *,
    keys: list[str],
    update: list[str],
    chunk_size: int | None = None,
) -> None:
    """Run :func:`upsert` over ``rows`` in chunks on one session; the caller commits."""

    for chunk in chunked(rows, chunk_size or UPSERT_CHUNK_SIZE):
        await session.execute(upsert(session, model, chunk, keys=keys, update=update))


class Repository:
    """Base repository owning a :class:`Database`; each call opens its own session."""

    def __init__(self, database: Database):
        self._database = database

    @property
    def database(self) -> Database:
        return self._database


__all__ = [
    "LedgerStoreError",
    "Repository",
    "UPSERT_CHUNK_SIZE",
    "chunked",
    "store_errors",
    "upsert",
    "upsert_all",
]

"""Snapshot cache: per-user, per-day portfolio totals."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, select

from cryptopilot.models import PortfolioSnapshot

from .base import Repository, store_errors, upsert_all


@dataclass
class SnapshotRow:
    day: date
    total_value: Decimal
    breakdown: dict[str, Any] = field(default_factory=dict)


def _to_row(snapshot: PortfolioSnapshot) -> SnapshotRow:
    return SnapshotRow(
        day=snapshot.date,
        total_value=Decimal(snapshot.total_value),
        breakdown=dict(snapshot.breakdown or {}),
    )


class SnapshotRepository(Repository):
    async def get_range(self, user_id: str, start: date, end: date) -> list[SnapshotRow]:
        stmt = (
            select(PortfolioSnapshot)
            .where(
                PortfolioSnapshot.user_id == user_id,
                PortfolioSnapshot.date >= start,
                PortfolioSnapshot.date <= end,
            )
            .order_by(PortfolioSnapshot.date.asc())
        )
        with store_errors("load snapshots"):
            async with self.database.session() as session:
                result = await session.execute(stmt)
                return [_to_row(snapshot) for snapshot in result.scalars().all()]

    async def get(self, user_id: str, day: date) -> SnapshotRow | None:
        rows = await self.get_range(user_id, day, day)
        return rows[0] if rows else None

    async def upsert(
        self, user_id: str, day: date, total_value: Decimal, breakdown: dict[str, Any]
    ) -> None:
        await self.upsert_many(user_id, [SnapshotRow(day, total_value, breakdown)])

    async def upsert_many(self, user_id: str, rows: list[SnapshotRow]) -> int:
        """Merge on ``(user_id, date)``; the last write for a day wins."""

        if not rows:
            return 0
        now = datetime.now(timezone.utc)
        unique = {
            row.day: {
                "user_id": user_id,
                "date": row.day,
                "total_value": row.total_value,
                "breakdown": row.breakdown,
                "updated_at": now,
            }
            for row in rows
        }
        with store_errors("upsert snapshots"):
            async with self.database.session() as session:
                await upsert_all(
                    session,
                    PortfolioSnapshot,
                    list(unique.values()),
                    keys=["user_id", "date"],
                    update=["total_value", "breakdown", "updated_at"],
                )
                await session.commit()
        return len(unique)

    async def purge_after(self, user_id: str, day: date) -> int:
        """Delete every snapshot strictly after ``day``."""

        stmt = delete(PortfolioSnapshot).where(
            PortfolioSnapshot.user_id == user_id,
            PortfolioSnapshot.date > day,
        )
        with store_errors("purge snapshots"):
            async with self.database.session() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount or 0


__all__ = ["SnapshotRepository", "SnapshotRow"]

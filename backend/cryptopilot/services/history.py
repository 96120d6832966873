"""Per-day portfolio value over a range, served from the snapshot cache when possible."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Literal, Sequence

from cryptopilot.core.logging import with_rid
from cryptopilot.jobs.queue import JobQueue
from cryptopilot.jobs.snapshots import SnapshotGuard, SnapshotWriteJob
from cryptopilot.repositories import (
    LedgerStoreError,
    PriceRepository,
    SnapshotRepository,
    SnapshotRow,
    TransactionRepository,
)

from .calendar import Calendar, DateWindow
from .portfolio import percent_of
from .positions import ZERO, LedgerRow, PositionBook

logger = logging.getLogger(__name__)

HistorySource = Literal["cache", "replay", "empty", "placeholder"]


class HistoryUnavailableError(RuntimeError):
    """Raised when history cannot be computed and placeholders are disabled."""


@dataclass
class HistoryPoint:
    date: date
    total_value: Decimal
    daily_change: Decimal = ZERO
    daily_change_percent: Decimal = ZERO


@dataclass
class PortfolioHistory:
    range: str
    source: HistorySource
    points: list[HistoryPoint] = field(default_factory=list)
    total_return: Decimal = ZERO
    total_return_percent: Decimal = ZERO


def build_history(range_name: str, source: HistorySource, series: Sequence[tuple[date, Decimal]]) -> PortfolioHistory:
    """Attach day-over-day changes and the overall return to a value series."""

    points: list[HistoryPoint] = []
    previous: Decimal | None = None
    for day, value in series:
        if previous is None:
            points.append(HistoryPoint(date=day, total_value=value))
        else:
            change = value - previous
            points.append(
                HistoryPoint(
                    date=day,
                    total_value=value,
                    daily_change=change,
                    daily_change_percent=percent_of(change, previous),
                )
            )
        previous = value

    history = PortfolioHistory(range=range_name, source=source, points=points)
    if points:
        first, last = points[0].total_value, points[-1].total_value
        history.total_return = last - first
        history.total_return_percent = percent_of(last - first, first)
    return history


def value_book(book: PositionBook, prices: dict[str, Decimal]) -> tuple[Decimal, dict[str, Any]]:
    """Total and breakdown of open positions; unpriced symbols use their average cost."""

    total = ZERO
    breakdown: dict[str, Any] = {}
    for position in book.open_positions():
        price = prices.get(position.symbol)
        if price is None:
            price = position.avg_price
        value = position.quantity * price
        total += value
        breakdown[position.symbol] = {
            "quantity": str(position.quantity),
            "value": str(value),
            "price": str(price),
        }
    return total, breakdown


class HistoryReconstructor:
    def __init__(
        self,
        transactions: TransactionRepository,
        prices: PriceRepository,
        snapshots: SnapshotRepository,
        calendar: Calendar,
        *,
        queue: JobQueue | None = None,
        failure_mode: Literal["placeholder", "raise"] = "placeholder",
        guard: SnapshotGuard | None = None,
    ):
        self._transactions = transactions
        self._prices = prices
        self._snapshots = snapshots
        self._calendar = calendar
        self._queue = queue
        self._failure_mode = failure_mode
        self._guard = guard or SnapshotGuard()

    async def compute_history(self, user_id: str, range_name: str, *, rid: str | None = None) -> PortfolioHistory:
        """Value series for ``range_name``; raises ``InvalidRangeError`` for unknown ranges."""

        window = self._calendar.window_for_range(range_name)
        log = with_rid(logger, rid)
        version = self._guard.reserve(user_id)
        try:
            history, replayed = await self._compute(user_id, range_name, window, rid)
        except LedgerStoreError as exc:
            self._guard.release(user_id)
            if self._failure_mode == "raise":
                raise HistoryUnavailableError(f"History unavailable for {range_name}: {exc}") from exc
            log.error("History for %s (%s) failed, returning placeholder: %s", user_id, range_name, exc)
            return build_history(range_name, "placeholder", [(day, ZERO) for day in window.days()])
        except BaseException:
            self._guard.release(user_id)
            raise
        await self._persist(user_id, replayed, version, rid)
        return history

    async def _compute(
        self, user_id: str, range_name: str, window: DateWindow, rid: str | None
    ) -> tuple[PortfolioHistory, list[SnapshotRow]]:
        log = with_rid(logger, rid)
        days = window.days()
        cached = {row.day: row.total_value for row in await self._snapshots.get_range(user_id, window.start, window.end)}
        if all(day in cached for day in days):
            log.info("History %s for %s served from %d cached snapshots", range_name, user_id, len(days))
            return build_history(range_name, "cache", [(day, cached[day]) for day in days]), []

        rows = await self._transactions.list_for_user(user_id, until=self._calendar.end_of_day(window.end))
        if not rows and await self._transactions.count_for_user(user_id) == 0:
            return build_history(range_name, "empty", [(day, ZERO) for day in days]), []

        missing = [day for day in days if day not in cached]
        computed = await self._replay(rows, days, missing)
        series = [(day, cached[day] if day in cached else computed[day].total_value) for day in days]
        log.info(
            "History %s for %s replayed %d of %d days",
            range_name,
            user_id,
            len(missing),
            len(days),
        )
        return build_history(range_name, "replay", series), [computed[day] for day in missing]

    async def _replay(
        self, rows: Sequence[LedgerRow], days: list[date], missing: list[date]
    ) -> dict[date, SnapshotRow]:
        wanted = set(missing)
        symbols = {row.symbol for row in rows}
        prices = await self._prices.get_range(symbols, missing[0], missing[-1]) if missing else {}

        ordered = sorted(rows, key=lambda row: row.timestamp)
        book = PositionBook()
        cursor = 0
        computed: dict[date, SnapshotRow] = {}
        for day in days:
            while cursor < len(ordered) and self._calendar.day_of(ordered[cursor].timestamp) <= day:
                book.apply(ordered[cursor])
                cursor += 1
            if day in wanted:
                total, breakdown = value_book(book, prices.get(day, {}))
                computed[day] = SnapshotRow(day=day, total_value=total, breakdown=breakdown)
        return computed

    async def _persist(self, user_id: str, rows: list[SnapshotRow], version: int, rid: str | None) -> None:
        """Hand the reservation taken for ``version`` to a write job, or release it."""

        if not rows:
            self._guard.release(user_id)
            return
        job = SnapshotWriteJob(self._snapshots, self._guard, user_id, version, rows, rid=rid or "-")
        if self._queue is not None and self._queue.running:
            self._queue.submit(job)
            return
        # No worker pool (CLI, scripts): write inline.
        try:
            await job.run()
        except LedgerStoreError:
            with_rid(logger, rid).exception("Inline snapshot write failed for %s", user_id)


__all__ = [
    "HistoryPoint",
    "HistoryReconstructor",
    "HistoryUnavailableError",
    "PortfolioHistory",
    "build_history",
    "value_book",
]

"""Post-transaction reconciliation: purge stale snapshots, backfill prices, refresh today."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from cryptopilot.core.logging import RidAdapter, with_rid
from cryptopilot.core.telemetry import record_backfill
from cryptopilot.providers import PriceSourceError
from cryptopilot.repositories import LedgerStoreError, PriceRepository, SnapshotRepository
from cryptopilot.services.calendar import Calendar, InvalidRangeError, enumerate_days
from cryptopilot.services.history import HistoryReconstructor, HistoryUnavailableError
from cryptopilot.services.portfolio import PortfolioValuator, snapshot_breakdown
from cryptopilot.services.pricing import PricingService

from .snapshots import SnapshotGuard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileRequest:
    user_id: str
    symbol: str
    transaction_date: date
    rid: str = "-"
    prewarm_range: str | None = None


@dataclass
class ReconcileResult:
    days_checked: int = 0
    missing: int = 0
    fetched: int = 0
    purged: int = 0
    snapshot_total: Decimal | None = None
    prewarmed: bool = False


class BackfillReconciler:
    def __init__(
        self,
        prices: PriceRepository,
        snapshots: SnapshotRepository,
        pricing: PricingService,
        valuator: PortfolioValuator,
        calendar: Calendar,
        *,
        history: HistoryReconstructor | None = None,
        concurrency: int = 5,
        guard: SnapshotGuard | None = None,
    ):
        self._prices = prices
        self._snapshots = snapshots
        self._pricing = pricing
        self._valuator = valuator
        self._calendar = calendar
        self._history = history
        self._concurrency = max(1, concurrency)
        self._guard = guard or SnapshotGuard()

    async def run(self, request: ReconcileRequest) -> ReconcileResult:
        """Reconcile one ``(user, symbol, day)``.

        Runs for the same user never overlap, and snapshot writes from history
        replays wait for the run. Replays computed before the run finished are
        discarded rather than cached.
        """

        log = with_rid(logger, request.rid)
        async with self._guard.hold(request.user_id):
            try:
                result = await self._run(request, log)
            finally:
                self._guard.invalidate(request.user_id)

        if request.prewarm_range:
            result.prewarmed = await self._prewarm(request.user_id, request.prewarm_range, request.rid, log)
        return result

    async def _run(self, request: ReconcileRequest, log: RidAdapter) -> ReconcileResult:
        symbol = request.symbol.strip().upper()
        start = request.transaction_date
        today = self._calendar.today()
        result = ReconcileResult()
        log.info("Reconcile start user=%s symbol=%s from=%s today=%s", request.user_id, symbol, start, today)

        if start < today:
            result.purged = await self._snapshots.purge_after(request.user_id, start)
            log.info("Purged %d snapshots after %s", result.purged, start)

        days = enumerate_days(start, today)
        result.days_checked = len(days)
        if days:
            existing = await self._prices.get_dates(symbol, start, today)
            missing = [day for day in days if day not in existing]
            result.missing = len(missing)
            log.info("Backfill check %s: %d days, %d missing", symbol, len(days), len(missing))
            if missing:
                result.fetched = await self._backfill(symbol, missing, log)

        result.snapshot_total = await self._refresh_today(request.user_id, today, log)

        log.info(
            "Reconcile done user=%s symbol=%s fetched=%d/%d purged=%d",
            request.user_id,
            symbol,
            result.fetched,
            result.missing,
            result.purged,
        )
        return result

    async def _backfill(self, symbol: str, missing: list[date], log: RidAdapter) -> int:
        try:
            ids = await self._pricing.resolve_ids([symbol])
        except PriceSourceError as exc:
            log.warning("Cannot resolve a provider id for %s, skipping backfill: %s", symbol, exc)
            return 0
        token_id = ids.get(symbol)
        if token_id is None:
            log.warning("No provider id mapped for %s, skipping backfill", symbol)
            return 0

        semaphore = asyncio.Semaphore(self._concurrency)

        async def fetch(day: date) -> dict | None:
            async with semaphore:
                try:
                    prices = await self._pricing.get_historical_prices([symbol], day, ids=ids)
                except PriceSourceError as exc:
                    log.warning("Historical price fetch for %s on %s failed, skipping: %s", symbol, day, exc)
                    return None
            price = prices.get(symbol)
            if price is None:
                log.warning("No historical price for %s on %s", symbol, day)
                return None
            return {
                "date": day,
                "symbol": symbol,
                "token_id": token_id,
                "price": price,
                "source": self._pricing.provider_name,
            }

        fetched = [row for row in await asyncio.gather(*(fetch(day) for day in missing)) if row is not None]
        if not fetched:
            log.info("Nothing to insert for %s historical prices", symbol)
            return 0
        written = await self._prices.upsert_many(fetched)
        record_backfill(symbol, self._pricing.provider_name, written)
        log.info("Inserted %d historical prices for %s (%s..%s)", written, symbol, missing[0], missing[-1])
        return written

    async def _refresh_today(self, user_id: str, today: date, log: RidAdapter) -> Decimal | None:
        try:
            current = await self._valuator.get_current_portfolio(user_id, rid=log.extra.get("rid"))
            await self._snapshots.upsert(user_id, today, current.total_value, snapshot_breakdown(current))
        except LedgerStoreError as exc:
            log.warning("Today's snapshot update for %s failed: %s", user_id, exc)
            return None
        log.info("Today's snapshot saved for %s: %s", user_id, current.total_value)
        return current.total_value

    async def _prewarm(self, user_id: str, range_name: str, rid: str, log: RidAdapter) -> bool:
        if self._history is None:
            return False
        try:
            history = await self._history.compute_history(user_id, range_name, rid=rid)
        except (InvalidRangeError, HistoryUnavailableError) as exc:
            log.warning("History prewarm %s for %s failed: %s", range_name, user_id, exc)
            return False
        log.info("History %s prewarmed for %s (%s)", range_name, user_id, history.source)
        return True


@dataclass
class ReconcileJob:
    reconciler: BackfillReconciler
    request: ReconcileRequest
    name: str = "reconcile"

    @property
    def rid(self) -> str:
        return self.request.rid

    async def run(self) -> ReconcileResult:
        return await self.reconciler.run(self.request)


__all__ = ["BackfillReconciler", "ReconcileJob", "ReconcileRequest", "ReconcileResult"]

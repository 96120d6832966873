"""Wire repositories, providers, services and jobs together."""

from __future__ import annotations

from dataclasses import dataclass

from cryptopilot.config import AppSettings
from cryptopilot.db.session import Database
from cryptopilot.jobs.queue import JobQueue
from cryptopilot.jobs.reconciler import BackfillReconciler
from cryptopilot.jobs.snapshots import SnapshotGuard
from cryptopilot.providers import PriceProvider, get_price_provider
from cryptopilot.repositories import (
    PriceRepository,
    SnapshotRepository,
    TokenMapRepository,
    TransactionRepository,
)
from cryptopilot.services.calendar import Calendar
from cryptopilot.services.history import HistoryReconstructor
from cryptopilot.services.portfolio import PortfolioValuator
from cryptopilot.services.pricing import PricingService
from cryptopilot.services.transactions import TransactionService


@dataclass
class ServiceContainer:
    settings: AppSettings
    database: Database
    provider: PriceProvider
    calendar: Calendar
    queue: JobQueue
    guard: SnapshotGuard
    transactions: TransactionRepository
    prices: PriceRepository
    snapshots: SnapshotRepository
    token_map: TokenMapRepository
    pricing: PricingService
    valuator: PortfolioValuator
    history: HistoryReconstructor
    reconciler: BackfillReconciler
    intake: TransactionService

    async def aclose(self) -> None:
        await self.queue.stop()
        await self.provider.aclose()


def build_container(
    settings: AppSettings,
    *,
    database: Database | None = None,
    provider: PriceProvider | None = None,
    calendar: Calendar | None = None,
    queue: JobQueue | None = None,
) -> ServiceContainer:
    database = database or Database(settings.database_url)
    provider = provider or get_price_provider(settings)
    calendar = calendar or Calendar(settings.timezone)
    queue = queue or JobQueue(workers=settings.job_workers)

    transactions = TransactionRepository(database)
    prices = PriceRepository(database)
    snapshots = SnapshotRepository(database)
    token_map = TokenMapRepository(database)

    guard = SnapshotGuard()
    pricing = PricingService(token_map, provider)
    valuator = PortfolioValuator(transactions, pricing, calendar)
    history = HistoryReconstructor(
        transactions,
        prices,
        snapshots,
        calendar,
        queue=queue,
        failure_mode=settings.history_failure_mode,
        guard=guard,
    )
    reconciler = BackfillReconciler(
        prices,
        snapshots,
        pricing,
        valuator,
        calendar,
        history=history,
        concurrency=settings.backfill_concurrency,
        guard=guard,
    )
    intake = TransactionService(transactions, pricing, calendar, queue, reconciler)
    return ServiceContainer(
        settings=settings,
        database=database,
        provider=provider,
        calendar=calendar,
        queue=queue,
        guard=guard,
        transactions=transactions,
        prices=prices,
        snapshots=snapshots,
        token_map=token_map,
        pricing=pricing,
        valuator=valuator,
        history=history,
        reconciler=reconciler,
        intake=intake,
    )


__all__ = ["ServiceContainer", "build_container"]

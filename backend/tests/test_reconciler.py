"""Backfill reconciler tests."""

from __future__ import annotations

import asyncio
from datetime import date, timedelta
from decimal import Decimal

from cryptopilot.jobs.reconciler import ReconcileRequest
from cryptopilot.jobs.snapshots import SnapshotGuard
from cryptopilot.services.transactions import NewTransaction

TODAY = date(2024, 3, 31)

FIVE_DAYS_AGO = TODAY - timedelta(days=5)


def _seed_provider(provider, start: date, end: date, base: int = 3000) -> None:
    day = start
    while day <= end:
        provider.historical[("ethereum", day)] = Decimal(base + day.day)
        day += timedelta(days=1)


async def test_backfill_fetches_missing_days_and_skips_failures(harness, add_transaction):
    _seed_provider(harness.provider, FIVE_DAYS_AGO, TODAY)
    harness.provider.failing_days.add(date(2024, 3, 28))
    async with harness.running() as container:
        await container.token_map.upsert("ETH", "ethereum")
        await container.prices.upsert_many(
            [{"date": TODAY, "symbol": "ETH", "token_id": "ethereum", "price": Decimal("3100"), "source": "seed"}]
        )
        await add_transaction(container, "ETH", "BUY", "1", "2500", FIVE_DAYS_AGO)

        result = await container.reconciler.run(ReconcileRequest("u1", "eth", FIVE_DAYS_AGO, rid="t1"))
        stored = await container.prices.get_dates("ETH", FIVE_DAYS_AGO, TODAY)

    assert result.days_checked == 6
    assert result.missing == 5
    assert result.fetched == 4
    assert date(2024, 3, 28) not in stored
    assert len(stored) == 5
    # already-present day is never refetched
    assert all(day != TODAY for _, day in harness.provider.historical_calls)


async def test_backfilled_rows_carry_provider_metadata(harness, add_transaction):
    _seed_provider(harness.provider, TODAY, TODAY)
    async with harness.running() as container:
        await container.token_map.upsert("ETH", "ethereum")
        await add_transaction(container, "ETH", "BUY", "1", "2500", TODAY)

        await container.reconciler.run(ReconcileRequest("u1", "ETH", TODAY))
        prices = await container.prices.get_for_day(["ETH"], TODAY)

    assert prices == {"ETH": Decimal(3000 + TODAY.day)}


async def test_retroactive_insert_purges_and_history_repopulates(harness, add_transaction):
    _seed_provider(harness.provider, TODAY - timedelta(days=10), TODAY)
    harness.provider.current["ethereum"] = Decimal("4000")
    async with harness.running() as container:
        await container.token_map.upsert("ETH", "ethereum")
        await add_transaction(container, "ETH", "BUY", "1", "2000", TODAY - timedelta(days=20))
        for offset in range(5):
            day = TODAY - timedelta(days=offset)
            await container.snapshots.upsert("u1", day, Decimal("2000"), {})

        await container.intake.add_transaction(
            NewTransaction(
                user_id="u1",
                symbol="eth",
                quantity="1",
                side="BUY",
                price="2500",
                timestamp=f"{FIVE_DAYS_AGO.isoformat()}T09:00:00Z",
            )
        )
        await container.queue.join()
        after_purge = await container.snapshots.get_range("u1", TODAY - timedelta(days=7), TODAY)

        history = await container.history.compute_history("u1", "7d")
        await container.queue.join()
        repopulated = await container.snapshots.get_range("u1", TODAY - timedelta(days=7), TODAY)

    # only today's snapshot is rewritten by the job, from the live price
    assert [(row.day, row.total_value) for row in after_purge] == [(TODAY, Decimal("8000"))]
    assert history.source == "replay"
    values = {point.date: point.total_value for point in history.points}
    # before the backfilled range: average cost of the first lot
    assert values[TODAY - timedelta(days=6)] == Decimal("2000")
    assert values[FIVE_DAYS_AGO] == 2 * Decimal(3000 + FIVE_DAYS_AGO.day)
    assert values[TODAY] == Decimal("8000")
    assert len(repopulated) == 8


async def test_reconcile_is_idempotent(harness, add_transaction):
    _seed_provider(harness.provider, FIVE_DAYS_AGO, TODAY)
    harness.provider.current["ethereum"] = Decimal("3500")
    async with harness.running() as container:
        await container.token_map.upsert("ETH", "ethereum")
        await add_transaction(container, "ETH", "BUY", "1", "2500", FIVE_DAYS_AGO)
        request = ReconcileRequest("u1", "ETH", FIVE_DAYS_AGO)

        first = await container.reconciler.run(request)
        second = await container.reconciler.run(request)
        prices = await container.prices.get_dates("ETH", FIVE_DAYS_AGO, TODAY)
        snapshots = await container.snapshots.get_range("u1", FIVE_DAYS_AGO, TODAY)

    assert first.fetched == 6
    assert second.missing == 0
    assert second.fetched == 0
    assert len(prices) == 6
    assert [(row.day, row.total_value) for row in snapshots] == [(TODAY, Decimal("3500"))]
    assert first.snapshot_total == second.snapshot_total == Decimal("3500")


async def test_unmapped_symbol_still_refreshes_today(harness, add_transaction):
    async with harness.running() as container:
        await add_transaction(container, "XYZ", "BUY", "3", "10", FIVE_DAYS_AGO)

        result = await container.reconciler.run(ReconcileRequest("u1", "XYZ", FIVE_DAYS_AGO))
        today = await container.snapshots.get("u1", TODAY)

    assert result.fetched == 0
    assert harness.provider.historical_calls == []
    assert today is not None
    assert today.total_value == Decimal("30")


async def test_prewarm_fills_history_cache(harness, add_transaction):
    _seed_provider(harness.provider, TODAY - timedelta(days=7), TODAY)
    async with harness.running() as container:
        await container.token_map.upsert("ETH", "ethereum")
        await add_transaction(container, "ETH", "BUY", "1", "2500", TODAY - timedelta(days=7))

        result = await container.reconciler.run(
            ReconcileRequest("u1", "ETH", TODAY - timedelta(days=7), prewarm_range="7d")
        )
        await container.queue.join()
        cached = await container.history.compute_history("u1", "7d")

    assert result.prewarmed is True
    assert cached.source == "cache"


async def test_history_read_during_backfill_is_not_cached(harness, add_transaction):
    _seed_provider(harness.provider, TODAY - timedelta(days=10), TODAY)
    harness.provider.current["ethereum"] = Decimal("4000")
    harness.provider.gate = asyncio.Event()
    async with harness.running() as container:
        await container.token_map.upsert("ETH", "ethereum")
        await add_transaction(container, "ETH", "BUY", "1", "2000", TODAY - timedelta(days=20))

        reconcile = asyncio.create_task(container.reconciler.run(ReconcileRequest("u1", "ETH", FIVE_DAYS_AGO)))
        while not harness.provider.historical_calls:
            await asyncio.sleep(0.01)
        during = await container.history.compute_history("u1", "7d")
        harness.provider.gate.set()
        await reconcile
        await container.queue.join()

        after = await container.history.compute_history("u1", "7d")
        await container.queue.join()
        cached = await container.history.compute_history("u1", "7d")
        tracked = container.guard.tracked_users

    # prices were still missing, so this read fell back to average cost
    assert {point.date: point.total_value for point in during.points}[FIVE_DAYS_AGO] == Decimal("2000")
    assert after.source == "replay"
    values = {point.date: point.total_value for point in after.points}
    for offset in range(1, 6):
        day = TODAY - timedelta(days=offset)
        assert values[day] == Decimal(3000 + day.day)
    assert values[TODAY] == Decimal("4000")
    assert cached.source == "cache"
    assert [p.total_value for p in cached.points] == [p.total_value for p in after.points]
    assert tracked == set()


async def test_snapshot_guard_drops_stale_versions_and_forgets_idle_users():
    guard = SnapshotGuard()

    version = guard.reserve("u1")
    async with guard.hold("u1"):
        guard.invalidate("u1")
    assert not guard.is_current("u1", version)
    guard.release("u1")

    assert guard.tracked_users == set()
    fresh = guard.reserve("u1")
    assert guard.is_current("u1", fresh)
    guard.release("u1")
    assert guard.tracked_users == set()

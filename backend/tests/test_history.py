"""History reconstruction tests."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest

from cryptopilot.repositories import LedgerStoreError
from cryptopilot.services.calendar import InvalidRangeError
from cryptopilot.services.history import HistoryUnavailableError

MONTH_START = date(2024, 3, 1)
PURCHASE_DAY = date(2024, 3, 10)


def _eth_price(day: date) -> Decimal:
    return Decimal(3000 + day.day)


async def _seed_eth_prices(container, days):
    await container.prices.upsert_many(
        [
            {"date": day, "symbol": "ETH", "token_id": "ethereum", "price": _eth_price(day), "source": "fake"}
            for day in days
        ]
    )


async def test_purchase_mid_window_values_from_that_day(harness, add_transaction):
    days = [MONTH_START + timedelta(days=offset) for offset in range(31)]
    async with harness.running() as container:
        await _seed_eth_prices(container, days)
        await add_transaction(container, "ETH", "BUY", "1", "2500", PURCHASE_DAY)

        history = await container.history.compute_history("u1", "30d")

    assert history.source == "replay"
    assert [point.date for point in history.points] == days
    for point in history.points:
        if point.date < PURCHASE_DAY:
            assert point.total_value == 0
        else:
            assert point.total_value == _eth_price(point.date)
    assert history.total_return == _eth_price(days[-1])
    assert history.total_return_percent == 0


async def test_missing_price_falls_back_to_average_cost(harness, add_transaction):
    async with harness.running() as container:
        await add_transaction(container, "ETH", "BUY", "2", "2500", date(2024, 3, 20))

        history = await container.history.compute_history("u1", "7d")

    assert all(point.total_value == Decimal("5000") for point in history.points)


async def test_replay_persists_snapshots_and_cache_matches(harness, add_transaction):
    days = [MONTH_START + timedelta(days=offset) for offset in range(31)]
    async with harness.running() as container:
        await _seed_eth_prices(container, days)
        await add_transaction(container, "ETH", "BUY", "1", "2500", PURCHASE_DAY)

        replayed = await container.history.compute_history("u1", "30d")
        await container.queue.join()
        stored = await container.snapshots.get_range("u1", days[0], days[-1])
        cached = await container.history.compute_history("u1", "30d")

    assert len(stored) == 31
    assert cached.source == "cache"
    assert [p.total_value for p in cached.points] == [p.total_value for p in replayed.points]
    assert [p.daily_change for p in cached.points] == [p.daily_change for p in replayed.points]


async def test_daily_change_and_percent(harness, add_transaction):
    async with harness.running() as container:
        await _seed_eth_prices(container, [date(2024, 3, 30), date(2024, 3, 31)])
        await add_transaction(container, "ETH", "BUY", "1", "2500", date(2024, 3, 1))

        history = await container.history.compute_history("u1", "7d")

    by_day = {point.date: point for point in history.points}
    # 03-29 is unpriced (avg cost 2500), 03-30 is 3030
    assert by_day[date(2024, 3, 30)].daily_change == Decimal("530")
    assert by_day[date(2024, 3, 30)].daily_change_percent == Decimal("21.2")
    assert by_day[date(2024, 3, 31)].daily_change == Decimal("1")


async def test_cached_days_are_kept_and_only_gaps_replayed(harness, add_transaction):
    async with harness.running() as container:
        await add_transaction(container, "ETH", "BUY", "1", "2000", date(2024, 3, 1))
        await container.snapshots.upsert("u1", date(2024, 3, 27), Decimal("999"), {})

        history = await container.history.compute_history("u1", "7d")
        await container.queue.join()
        stored = await container.snapshots.get_range("u1", date(2024, 3, 24), date(2024, 3, 31))

    values = {point.date: point.total_value for point in history.points}
    assert history.source == "replay"
    assert values[date(2024, 3, 27)] == Decimal("999")
    assert values[date(2024, 3, 28)] == Decimal("2000")
    assert len(stored) == 8
    assert next(row for row in stored if row.day == date(2024, 3, 27)).total_value == Decimal("999")


async def test_no_transactions_returns_flat_empty_series(harness):
    async with harness.running() as container:
        history = await container.history.compute_history("nobody", "7d")
        await container.queue.join()
        stored = await container.snapshots.get_range("nobody", date(2024, 3, 1), date(2024, 3, 31))

    assert history.source == "empty"
    assert len(history.points) == 8
    assert all(point.total_value == 0 for point in history.points)
    assert stored == []


async def test_invalid_range_raises(harness):
    async with harness.running() as container:
        with pytest.raises(InvalidRangeError):
            await container.history.compute_history("u1", "2w")


async def test_store_failure_returns_placeholder(harness):
    async def _broken(*args, **kwargs):
        raise LedgerStoreError("database down")

    async with harness.running() as container:
        container.snapshots.get_range = _broken
        history = await container.history.compute_history("u1", "7d")

    assert history.source == "placeholder"
    assert len(history.points) == 8
    assert all(point.total_value == 0 for point in history.points)


async def test_store_failure_raises_when_configured(harness_factory):
    harness = harness_factory(history_failure_mode="raise")

    async def _broken(*args, **kwargs):
        raise LedgerStoreError("database down")

    async with harness.running() as container:
        container.transactions.list_for_user = _broken
        with pytest.raises(HistoryUnavailableError):
            await container.history.compute_history("u1", "7d")

import asyncio
import inspect
import pathlib
import sys
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncIterator, Iterable

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from cryptopilot.config import AppSettings  # noqa: E402
from cryptopilot.container import ServiceContainer, build_container  # noqa: E402
from cryptopilot.db.session import Database  # noqa: E402
from cryptopilot.jobs.queue import JobQueue  # noqa: E402
from cryptopilot.providers import PriceProvider, PriceSourceError  # noqa: E402
from cryptopilot.services.calendar import Calendar  # noqa: E402
from cryptopilot.services.hashing import build_dedupe_key  # noqa: E402

TODAY = date(2024, 3, 31)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used in the suite."""

    config.addinivalue_line("markers", "asyncio: mark test as running in an asyncio event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            funcargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
            loop.run_until_complete(test_function(**funcargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


class FakePriceProvider(PriceProvider):
    """In-memory provider keyed by provider id."""

    name = "fake"

    def __init__(self) -> None:
        self.current: dict[str, Decimal] = {}
        self.historical: dict[tuple[str, date], Decimal] = {}
        self.fail_current = False
        self.failing_days: set[date] = set()
        self.current_calls: list[list[str]] = []
        self.historical_calls: list[tuple[list[str], date]] = []
        self.gate: asyncio.Event | None = None

    async def get_current_prices(self, ids: Iterable[str]) -> dict[str, Decimal]:
        wanted = sorted(ids)
        self.current_calls.append(wanted)
        if self.fail_current:
            raise PriceSourceError("fake provider down")
        return {item: self.current[item] for item in wanted if item in self.current}

    async def get_historical_prices(self, ids: Iterable[str], day: date) -> dict[str, Decimal]:
        wanted = sorted(ids)
        self.historical_calls.append((wanted, day))
        if self.gate is not None:
            await self.gate.wait()
        if day in self.failing_days:
            raise PriceSourceError(f"fake provider has no data for {day}")
        return {item: self.historical[(item, day)] for item in wanted if (item, day) in self.historical}


class Harness:
    """A container over a throwaway SQLite database with a fixed calendar."""

    def __init__(self, tmp_path: pathlib.Path, **overrides) -> None:
        self.provider = FakePriceProvider()
        self.database = Database(f"sqlite+aiosqlite:///{tmp_path / 'cryptopilot.db'}")
        self.settings = AppSettings(
            database_url=self.database.url,
            backfill_concurrency=3,
            job_workers=1,
            telemetry_enabled=False,
            **overrides,
        )
        self.calendar = Calendar("UTC", today=TODAY)
        self.container: ServiceContainer = build_container(
            self.settings,
            database=self.database,
            provider=self.provider,
            calendar=self.calendar,
            queue=JobQueue(workers=1),
        )

    @asynccontextmanager
    async def running(self) -> AsyncIterator[ServiceContainer]:
        await self.database.create_all()
        self.container.queue.start()
        try:
            yield self.container
        finally:
            await self.container.queue.stop()
            await self.database.dispose()


@pytest.fixture
def fake_provider() -> FakePriceProvider:
    return FakePriceProvider()


@pytest.fixture
def harness(tmp_path: pathlib.Path) -> Harness:
    return Harness(tmp_path)


@pytest.fixture
def harness_factory(tmp_path: pathlib.Path):
    def _factory(**overrides) -> Harness:
        return Harness(tmp_path, **overrides)

    return _factory


@pytest.fixture
def add_transaction():
    """Write a ledger row straight through the repository, bypassing intake jobs."""

    async def _add(
        container: ServiceContainer,
        symbol: str,
        side: str,
        quantity: str,
        price: str | None,
        day: date,
        *,
        user_id: str = "u1",
        hour: int = 12,
    ) -> str:
        timestamp = datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)
        quantity_value = Decimal(quantity)
        price_value = Decimal(price) if price is not None else None
        return await container.transactions.upsert(
            {
                "user_id": user_id,
                "symbol": symbol,
                "side": side,
                "quantity": quantity_value,
                "price": price_value,
                "timestamp": timestamp,
                "dedupe_key": build_dedupe_key(
                    user_id,
                    symbol=symbol,
                    quantity=quantity_value,
                    price=price_value,
                    side=side,
                    timestamp=timestamp,
                ),
            }
        )

    return _add

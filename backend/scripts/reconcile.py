"""Run one backfill reconciliation pass for a user and symbol."""

from __future__ import annotations

import argparse
import asyncio
from datetime import date

from cryptopilot.config import get_settings
from cryptopilot.container import build_container
from cryptopilot.core.logging import new_rid, setup_logging
from cryptopilot.db.init import init_database
from cryptopilot.jobs.reconciler import ReconcileRequest
from cryptopilot.services.calendar import HISTORY_RANGES


async def _run(user_id: str, symbol: str, day: date, prewarm: str | None) -> None:
    settings = get_settings()
    container = build_container(settings)
    try:
        if settings.create_schema_on_startup:
            await init_database(container.database)
        result = await container.reconciler.run(
            ReconcileRequest(
                user_id=user_id,
                symbol=symbol,
                transaction_date=day,
                rid=new_rid(),
                prewarm_range=prewarm,
            )
        )
        print(
            f"Reconciled {symbol.upper()} for {user_id}: {result.days_checked} days checked, "
            f"{result.fetched}/{result.missing} missing prices fetched, {result.purged} snapshots purged, "
            f"today's value {result.snapshot_total}"
        )
    finally:
        await container.provider.aclose()
        await container.database.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Backfill prices and refresh snapshots after a transaction")
    parser.add_argument("--user-id", required=True)
    parser.add_argument("--symbol", required=True)
    parser.add_argument("--date", required=True, type=date.fromisoformat, help="Transaction day, YYYY-MM-DD")
    parser.add_argument("--prewarm", choices=HISTORY_RANGES, default=None)
    args = parser.parse_args()
    setup_logging()
    asyncio.run(_run(args.user_id, args.symbol, args.date, args.prewarm))


if __name__ == "__main__":
    main()

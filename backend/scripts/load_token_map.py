"""Load symbol to price-provider id mappings from a JSON file."""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

from cryptopilot.config import get_settings
from cryptopilot.core.logging import setup_logging
from cryptopilot.db.init import init_database
from cryptopilot.db.session import Database
from cryptopilot.repositories import TokenMapRepository


def parse_entries(payload: object) -> list[tuple[str, str, int | None]]:
    """Accept ``{"BTC": "bitcoin"}`` or ``[{"symbol", "id", "rank"?}, ...]``."""

    if isinstance(payload, dict):
        return [(str(symbol), str(provider_id), None) for symbol, provider_id in payload.items()]
    if isinstance(payload, list):
        entries = []
        for item in payload:
            if not isinstance(item, dict) or not item.get("symbol") or not item.get("id"):
                raise ValueError(f"Invalid token map entry: {item!r}")
            rank = item.get("rank")
            entries.append((str(item["symbol"]), str(item["id"]), int(rank) if rank is not None else None))
        return entries
    raise ValueError("Token map file must hold an object or a list")


async def _run(path: Path) -> None:
    settings = get_settings()
    database = Database(settings.database_url)
    try:
        if settings.create_schema_on_startup:
            await init_database(database)
        repository = TokenMapRepository(database)
        entries = parse_entries(json.loads(path.read_text()))
        for symbol, provider_id, rank in entries:
            await repository.upsert(symbol, provider_id, rank)
        print(f"Loaded {len(entries)} token mappings from {path}")
    finally:
        await database.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Load token mappings into the Cryptopilot database")
    parser.add_argument("mapping_file")
    args = parser.parse_args()
    path = Path(args.mapping_file)
    if not path.exists():
        raise SystemExit(f"Mapping file not found: {path}")
    setup_logging()
    asyncio.run(_run(path))


if __name__ == "__main__":
    main()

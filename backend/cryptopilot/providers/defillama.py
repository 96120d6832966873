"""DeFiLlama coins API client."""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable

import httpx

from .base import PriceProvider, PriceSourceError, parse_price, unique_ids

logger = logging.getLogger(__name__)

BASE_URL = "https://coins.llama.fi"


def to_llama_id(provider_id: str) -> str:
    """Contract addresses live under ``ethereum:``, everything else under ``coingecko:``."""

    if provider_id.startswith("0x"):
        return f"ethereum:{provider_id}"
    return f"coingecko:{provider_id}"


def from_llama_id(llama_id: str) -> str:
    return llama_id.split(":", 1)[1] if ":" in llama_id else llama_id


class DefiLlamaProvider(PriceProvider):
    """Current and historical USD prices with a short in-process cache for current quotes."""

    name = "defillama"

    def __init__(
        self,
        base_url: str = BASE_URL,
        *,
        timeout: float = 5.0,
        historical_timeout: float = 10.0,
        cache_ttl: float = 30.0,
        client: Any | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._historical_timeout = historical_timeout
        self._cache_ttl = cache_ttl
        self._clock = clock
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()
        self._cache: dict[tuple[str, ...], tuple[float, dict[str, Decimal]]] = {}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_coins(self, url: str, timeout: float) -> dict[str, Any]:
        try:
            response = await self._client.get(url, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise PriceSourceError(f"DeFiLlama timed out after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise PriceSourceError(f"DeFiLlama request failed: {exc}") from exc
        if response.status_code >= 400:
            raise PriceSourceError(f"DeFiLlama HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise PriceSourceError("DeFiLlama returned invalid JSON") from exc
        coins = payload.get("coins") if isinstance(payload, dict) else None
        if not isinstance(coins, dict):
            raise PriceSourceError("DeFiLlama payload has no coins object")
        return coins

    @staticmethod
    def _extract(coins: dict[str, Any], wanted: list[str]) -> dict[str, Decimal]:
        by_lower = {item.lower(): item for item in wanted}
        prices: dict[str, Decimal] = {}
        for llama_id, entry in coins.items():
            original = by_lower.get(from_llama_id(llama_id).lower())
            if original is None or not isinstance(entry, dict):
                continue
            price = parse_price(entry.get("price"))
            if price is not None:
                prices[original] = price
        return prices

    def _prune_cache(self, now: float) -> None:
        expired = [key for key, (stored_at, _) in self._cache.items() if now - stored_at >= self._cache_ttl]
        for key in expired:
            del self._cache[key]

    async def get_current_prices(self, ids: Iterable[str]) -> dict[str, Decimal]:
        wanted = unique_ids(ids)
        if not wanted:
            return {}
        key = tuple(wanted)
        now = self._clock()
        hit = self._cache.get(key)
        if hit is not None and now - hit[0] < self._cache_ttl:
            logger.debug("defillama cache hit for %d ids", len(wanted))
            return dict(hit[1])

        coins_path = ",".join(to_llama_id(item) for item in wanted)
        coins = await self._get_coins(f"{self._base_url}/prices/current/{coins_path}", self._timeout)
        prices = self._extract(coins, wanted)
        logger.info("defillama current prices: %d/%d ids priced", len(prices), len(wanted))
        self._prune_cache(now)
        self._cache[key] = (now, prices)
        return dict(prices)

    async def get_historical_prices(self, ids: Iterable[str], day: date) -> dict[str, Decimal]:
        wanted = unique_ids(ids)
        if not wanted:
            return {}
        timestamp = int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp())
        coins_path = ",".join(to_llama_id(item) for item in wanted)
        coins = await self._get_coins(
            f"{self._base_url}/prices/historical/{timestamp}/{coins_path}",
            self._historical_timeout,
        )
        return self._extract(coins, wanted)


__all__ = ["BASE_URL", "DefiLlamaProvider", "from_llama_id", "to_llama_id"]

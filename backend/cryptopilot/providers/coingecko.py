"""CoinGecko public API client."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Iterable

import httpx

from .base import PriceProvider, PriceSourceError, parse_price, unique_ids

logger = logging.getLogger(__name__)

BASE_URL = "https://api.coingecko.com/api/v3"


class CoinGeckoProvider(PriceProvider):
    name = "coingecko"

    def __init__(
        self,
        base_url: str = BASE_URL,
        *,
        api_key: str | None = None,
        timeout: float = 5.0,
        historical_timeout: float = 10.0,
        client: Any | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._historical_timeout = historical_timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        if self._api_key:
            return {"x-cg-demo-api-key": self._api_key}
        return {}

    async def _get(self, path: str, params: dict[str, Any], timeout: float) -> Any:
        try:
            response = await self._client.get(
                f"{self._base_url}{path}",
                params=params,
                headers=self._headers(),
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            raise PriceSourceError(f"CoinGecko timed out after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise PriceSourceError(f"CoinGecko request failed: {exc}") from exc
        if response.status_code >= 400:
            raise PriceSourceError(f"CoinGecko HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise PriceSourceError("CoinGecko returned invalid JSON") from exc

    async def get_current_prices(self, ids: Iterable[str]) -> dict[str, Decimal]:
        wanted = unique_ids(ids)
        if not wanted:
            return {}
        payload = await self._get(
            "/simple/price",
            {"ids": ",".join(wanted), "vs_currencies": "usd"},
            self._timeout,
        )
        if not isinstance(payload, dict):
            raise PriceSourceError("CoinGecko simple price payload is not an object")
        prices: dict[str, Decimal] = {}
        for coin_id in wanted:
            entry = payload.get(coin_id)
            if isinstance(entry, dict):
                price = parse_price(entry.get("usd"))
                if price is not None:
                    prices[coin_id] = price
        return prices

    async def get_historical_prices(self, ids: Iterable[str], day: date) -> dict[str, Decimal]:
        # The history endpoint takes one coin per call.
        prices: dict[str, Decimal] = {}
        for coin_id in unique_ids(ids):
            payload = await self._get(
                f"/coins/{coin_id}/history",
                {"date": day.strftime("%d-%m-%Y"), "localization": "false"},
                self._historical_timeout,
            )
            if not isinstance(payload, dict):
                raise PriceSourceError("CoinGecko history payload is not an object")
            market = payload.get("market_data") or {}
            price = parse_price((market.get("current_price") or {}).get("usd"))
            if price is not None:
                prices[coin_id] = price
            else:
                logger.debug("coingecko has no %s price for %s", coin_id, day)
        return prices


__all__ = ["BASE_URL", "CoinGeckoProvider"]

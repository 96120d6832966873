"""Symbol-level pricing on top of a provider and the token map."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable

from cryptopilot.providers import PriceProvider, PriceSourceError
from cryptopilot.repositories import LedgerStoreError, TokenMapRepository

logger = logging.getLogger(__name__)


def normalize_symbols(symbols: Iterable[str]) -> list[str]:
    return sorted({symbol.strip().upper() for symbol in symbols if symbol and symbol.strip()})


class PricingService:
    """Translate symbols to provider ids, fetch, and translate back."""

    def __init__(self, token_map: TokenMapRepository, provider: PriceProvider):
        self._token_map = token_map
        self._provider = provider

    @property
    def provider_name(self) -> str:
        return self._provider.name

    async def resolve_ids(self, symbols: Iterable[str]) -> dict[str, str]:
        wanted = normalize_symbols(symbols)
        if not wanted:
            return {}
        try:
            ids = await self._token_map.get_ids(wanted)
        except LedgerStoreError as exc:
            raise PriceSourceError(f"Token map unavailable: {exc}") from exc
        missing = [symbol for symbol in wanted if symbol not in ids]
        if missing:
            logger.warning("No provider id mapped for %s", ", ".join(missing))
        return ids

    @staticmethod
    def _by_symbol(ids: dict[str, str], prices: dict[str, Decimal]) -> dict[str, Decimal]:
        return {symbol: prices[provider_id] for symbol, provider_id in ids.items() if provider_id in prices}

    async def get_current_prices(self, symbols: Iterable[str]) -> dict[str, Decimal]:
        ids = await self.resolve_ids(symbols)
        if not ids:
            return {}
        prices = await self._provider.get_current_prices(ids.values())
        return self._by_symbol(ids, prices)

    async def get_historical_prices(
        self,
        symbols: Iterable[str],
        day: date,
        *,
        ids: dict[str, str] | None = None,
    ) -> dict[str, Decimal]:
        """Prices for ``day``; pass ``ids`` to skip the token-map lookup."""

        if ids is None:
            ids = await self.resolve_ids(symbols)
        else:
            wanted = set(normalize_symbols(symbols))
            ids = {symbol: provider_id for symbol, provider_id in ids.items() if symbol in wanted}
        if not ids:
            return {}
        prices = await self._provider.get_historical_prices(ids.values(), day)
        return self._by_symbol(ids, prices)


__all__ = ["PricingService", "normalize_symbols"]

"""Select the configured price provider."""

from __future__ import annotations

from cryptopilot.config import AppSettings

from .base import PriceProvider
from .coingecko import CoinGeckoProvider
from .defillama import DefiLlamaProvider


def get_price_provider(settings: AppSettings) -> PriceProvider:
    if settings.price_provider == "coingecko":
        return CoinGeckoProvider(
            settings.coingecko_base_url,
            api_key=settings.coingecko_api_key,
            timeout=settings.price_timeout_seconds,
            historical_timeout=settings.historical_price_timeout_seconds,
        )
    if settings.price_provider == "defillama":
        return DefiLlamaProvider(
            settings.defillama_base_url,
            timeout=settings.price_timeout_seconds,
            historical_timeout=settings.historical_price_timeout_seconds,
            cache_ttl=settings.price_cache_ttl_seconds,
        )
    raise ValueError(f"Unknown price provider: {settings.price_provider}")


__all__ = ["get_price_provider"]

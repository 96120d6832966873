"""Price provider exports."""

from .base import PriceProvider, PriceSourceError
from .coingecko import CoinGeckoProvider
from .defillama import DefiLlamaProvider
from .registry import get_price_provider

__all__ = [
    "CoinGeckoProvider",
    "DefiLlamaProvider",
    "PriceProvider",
    "PriceSourceError",
    "get_price_provider",
]

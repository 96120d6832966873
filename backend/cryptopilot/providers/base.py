"""Price provider interface."""

from __future__ import annotations

import abc
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable


class PriceSourceError(RuntimeError):
    """Raised when an upstream price source times out, fails or returns garbage."""


def parse_price(raw: Any) -> Decimal | None:
    """Positive decimal price or ``None`` for missing, malformed or non-positive values."""

    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


def unique_ids(ids: Iterable[str]) -> list[str]:
    return sorted({item for item in ids if item})


class PriceProvider(abc.ABC):
    """USD prices keyed by provider id."""

    name: str = "provider"

    @abc.abstractmethod
    async def get_current_prices(self, ids: Iterable[str]) -> dict[str, Decimal]:
        """Latest price for each id the provider knows about."""

    @abc.abstractmethod
    async def get_historical_prices(self, ids: Iterable[str], day: date) -> dict[str, Decimal]:
        """Price for each id on ``day``."""

    async def aclose(self) -> None:
        return None


__all__ = ["PriceProvider", "PriceSourceError", "parse_price", "unique_ids"]

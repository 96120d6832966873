"""Ledger replay into per-symbol positions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Protocol

ZERO = Decimal("0")


class LedgerRow(Protocol):
    symbol: str
    side: str
    quantity: Decimal
    price: Decimal | None
    timestamp: datetime


@dataclass
class Position:
    symbol: str
    quantity: Decimal = ZERO
    bought_quantity: Decimal = ZERO
    bought_cost: Decimal = ZERO

    @property
    def avg_price(self) -> Decimal:
        if self.bought_quantity == 0:
            return ZERO
        return self.bought_cost / self.bought_quantity

    @property
    def is_open(self) -> bool:
        return self.quantity > 0


class PositionBook:
    """Accumulate positions one transaction at a time.

    BUY adds, SELL subtracts, TRANSFER applies its signed quantity. The
    average price only considers BUY legs that carry a price.
    """

    def __init__(self) -> None:
        self._positions: dict[str, Position] = {}

    def apply(self, row: LedgerRow) -> None:
        quantity = Decimal(row.quantity)
        position = self._positions.setdefault(row.symbol, Position(symbol=row.symbol))
        if row.side == "BUY":
            position.quantity += quantity
            if row.price is not None:
                position.bought_quantity += quantity
                position.bought_cost += quantity * Decimal(row.price)
        elif row.side == "SELL":
            position.quantity -= quantity
        elif row.side == "TRANSFER":
            position.quantity += quantity
        else:
            raise ValueError(f"Unsupported transaction side: {row.side}")

    def extend(self, rows: Iterable[LedgerRow]) -> None:
        for row in rows:
            self.apply(row)

    def get(self, symbol: str) -> Position | None:
        return self._positions.get(symbol)

    def all(self) -> dict[str, Position]:
        return dict(self._positions)

    def open_positions(self) -> list[Position]:
        return sorted(
            (position for position in self._positions.values() if position.is_open),
            key=lambda position: position.symbol,
        )


def replay_positions(rows: Iterable[LedgerRow]) -> dict[str, Position]:
    """Replay transactions in timestamp order and return every symbol's position."""

    book = PositionBook()
    book.extend(sorted(rows, key=lambda row: row.timestamp))
    return book.all()


def open_positions(rows: Iterable[LedgerRow]) -> list[Position]:
    book = PositionBook()
    book.extend(sorted(rows, key=lambda row: row.timestamp))
    return book.open_positions()


__all__ = ["LedgerRow", "Position", "PositionBook", "open_positions", "replay_positions"]

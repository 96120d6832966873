"""Transaction intake: validation, idempotency keys and reconciliation dispatch."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from cryptopilot.core.logging import new_rid, with_rid
from cryptopilot.jobs.queue import JobQueue
from cryptopilot.jobs.reconciler import BackfillReconciler, ReconcileJob, ReconcileRequest
from cryptopilot.models import TRANSACTION_SIDES, Transaction
from cryptopilot.providers import PriceSourceError
from cryptopilot.repositories import TransactionRepository

from .calendar import Calendar
from .hashing import build_dedupe_key
from .pricing import PricingService

logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    """Raised for malformed transaction input; maps to HTTP 400."""


@dataclass
class NewTransaction:
    user_id: str
    symbol: str
    quantity: Any
    side: str
    price: Any = None
    timestamp: datetime | str | None = None
    note: str | None = None
    client_tx_id: str | None = None
    batch_id: str | None = None
    fee: Any = None
    fee_currency: str | None = None
    exchange: str | None = None
    ext_ref: str | None = None


@dataclass
class AddTransactionResult:
    transaction_id: str
    rid: str
    symbol: str
    day: date
    batch_id: str | None = None


@dataclass
class BulkRow:
    symbol: str
    side: str
    quantity: Any
    timestamp: datetime | str | None
    price: Any = None
    note: str | None = None
    fee: Any = None
    fee_currency: str | None = None
    exchange: str | None = None
    ext_ref: str | None = None
    client_tx_id: str | None = None
    import_batch_id: str | None = None


@dataclass
class SymbolJob:
    symbol: str
    from_date: date


@dataclass
class BulkImportResult:
    imported: int
    skipped: int
    import_batch_id: str | None
    rid: str
    per_symbol_jobs: list[SymbolJob] = field(default_factory=list)


def to_decimal(value: Any) -> Decimal | None:
    """Finite decimal or ``None``."""

    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def parse_timestamp(value: datetime | str | None) -> datetime | None:
    """Parse ISO-8601 text (``Z`` suffix allowed); ``None`` passes through."""

    if value is None or isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError("Invalid timestamp format") from exc


class TransactionService:
    def __init__(
        self,
        transactions: TransactionRepository,
        pricing: PricingService,
        calendar: Calendar,
        queue: JobQueue,
        reconciler: BackfillReconciler,
    ):
        self._transactions = transactions
        self._pricing = pricing
        self._calendar = calendar
        self._queue = queue
        self._reconciler = reconciler

    def schedule_reconcile(
        self, user_id: str, symbol: str, day: date, *, rid: str, prewarm_range: str | None = None
    ) -> None:
        request = ReconcileRequest(
            user_id=user_id,
            symbol=symbol.strip().upper(),
            transaction_date=day,
            rid=rid,
            prewarm_range=prewarm_range,
        )
        self._queue.submit(ReconcileJob(self._reconciler, request))

    async def _resolve_price(self, symbol: str, log: Any) -> Decimal | None:
        try:
            prices = await self._pricing.get_current_prices([symbol])
        except PriceSourceError as exc:
            log.warning("No current price for %s, storing without price: %s", symbol, exc)
            return None
        return prices.get(symbol)

    async def add_transaction(self, new: NewTransaction, *, rid: str | None = None) -> AddTransactionResult:
        rid = rid or new_rid()
        log = with_rid(logger, rid)

        user_id = (new.user_id or "").strip()
        symbol = (new.symbol or "").strip().upper()
        quantity = to_decimal(new.quantity)
        side = (new.side or "").strip().upper()
        if not user_id or not symbol or quantity is None or not side:
            raise ValidationError("Missing required fields: userId, symbol, quantity, side")
        if side not in TRANSACTION_SIDES:
            raise ValidationError("Invalid side. Must be BUY, SELL, or TRANSFER")
        if quantity == 0:
            raise ValidationError("Quantity must be a non-zero number")
        if side in ("BUY", "SELL") and quantity < 0:
            raise ValidationError("Quantity must be positive for BUY and SELL")

        price: Decimal | None = None
        if new.price is not None:
            price = to_decimal(new.price)
            if price is None or price <= 0:
                raise ValidationError("Price must be a positive number")
        fee = to_decimal(new.fee) if new.fee is not None else None

        timestamp = self._calendar.normalize_timestamp(parse_timestamp(new.timestamp))
        exchange = new.exchange.strip().lower() if new.exchange else None
        fee_currency = new.fee_currency.strip().upper() if new.fee_currency else None
        # Identity uses the price as submitted; a quote filled in below must not change it.
        dedupe_key = build_dedupe_key(
            user_id,
            symbol=symbol,
            quantity=quantity,
            price=price,
            side=side,
            timestamp=timestamp,
            note=new.note,
            fee=fee,
            fee_currency=fee_currency,
            exchange=exchange,
            ext_ref=new.ext_ref,
            client_tx_id=new.client_tx_id,
        )
        if price is None and side in ("BUY", "SELL"):
            price = await self._resolve_price(symbol, log)

        record = {
            "user_id": user_id,
            "symbol": symbol,
            "side": side,
            "quantity": quantity,
            "price": price,
            "timestamp": timestamp,
            "note": new.note,
            "fee": fee,
            "fee_currency": fee_currency,
            "exchange": exchange,
            "ext_ref": new.ext_ref,
            "client_tx_id": new.client_tx_id,
            "import_batch_id": new.batch_id,
            "dedupe_key": dedupe_key,
        }
        transaction_id = await self._transactions.upsert(record)
        day = self._calendar.day_of(timestamp)
        self.schedule_reconcile(user_id, symbol, day, rid=rid)
        log.info("Transaction accepted id=%s user=%s symbol=%s day=%s", transaction_id, user_id, symbol, day)
        return AddTransactionResult(
            transaction_id=transaction_id,
            rid=rid,
            symbol=symbol,
            day=day,
            batch_id=new.batch_id,
        )

    def _normalise_row(
        self,
        user_id: str,
        row: BulkRow,
        exchange: str | None,
        import_batch_id: str | None,
    ) -> dict[str, Any] | None:
        """Ledger record for a bulk row, or ``None`` when the row is unusable."""

        try:
            parsed = parse_timestamp(row.timestamp)
        except ValidationError:
            return None
        if parsed is None:
            return None
        side = str(row.side or "").strip().upper()
        if side not in TRANSACTION_SIDES:
            return None
        quantity = to_decimal(row.quantity)
        if quantity is None or quantity == 0:
            return None
        symbol = (row.symbol or "").strip().upper()
        if not symbol:
            return None
        if side in ("BUY", "SELL"):
            # Exports commonly sign sells negative
            quantity = abs(quantity)

        price = to_decimal(row.price)
        if price is not None and price <= 0:
            price = None
        fee = to_decimal(row.fee)
        fee_currency = row.fee_currency.strip().upper() if row.fee_currency else None
        row_exchange = row.exchange or exchange
        row_exchange = row_exchange.strip().lower() if row_exchange else None
        client_tx_id = row.client_tx_id
        if not client_tx_id and row.ext_ref:
            client_tx_id = f"{row_exchange or 'unknown'}|{row.ext_ref}"
        timestamp = self._calendar.normalize_timestamp(parsed)

        return {
            "user_id": user_id,
            "symbol": symbol,
            "side": side,
            "quantity": quantity,
            "price": price,
            "timestamp": timestamp,
            "note": row.note,
            "fee": fee,
            "fee_currency": fee_currency,
            "exchange": row_exchange,
            "ext_ref": row.ext_ref,
            "client_tx_id": client_tx_id,
            "import_batch_id": row.import_batch_id or import_batch_id,
            "dedupe_key": build_dedupe_key(
                user_id,
                symbol=symbol,
                quantity=quantity,
                price=price,
                side=side,
                timestamp=timestamp,
                note=row.note,
                fee=fee,
                fee_currency=fee_currency,
                exchange=row_exchange,
                ext_ref=row.ext_ref,
                client_tx_id=client_tx_id,
            ),
        }

    async def import_bulk(
        self,
        user_id: str,
        rows: list[BulkRow],
        *,
        exchange: str | None = None,
        import_batch_id: str | None = None,
        rid: str | None = None,
    ) -> BulkImportResult:
        rid = rid or new_rid()
        log = with_rid(logger, rid)
        user_id = (user_id or "").strip()
        if not user_id or not rows:
            raise ValidationError("Missing userId or rows[]")

        prepared: list[dict[str, Any]] = []
        first_day: dict[str, date] = {}
        for row in rows:
            record = self._normalise_row(user_id, row, exchange, import_batch_id)
            if record is None:
                continue
            prepared.append(record)
            day = self._calendar.day_of(record["timestamp"])
            symbol = record["symbol"]
            if symbol not in first_day or day < first_day[symbol]:
                first_day[symbol] = day

        if not prepared:
            raise ValidationError("No valid rows after normalization")

        imported = await self._transactions.upsert_many(prepared)
        jobs = [SymbolJob(symbol=symbol, from_date=first_day[symbol]) for symbol in sorted(first_day)]
        for job in jobs:
            self.schedule_reconcile(user_id, job.symbol, job.from_date, rid=rid)

        skipped = len(rows) - len(prepared)
        log.info(
            "Bulk import for %s: %d imported, %d skipped, %d symbols",
            user_id,
            imported,
            skipped,
            len(jobs),
        )
        return BulkImportResult(
            imported=imported,
            skipped=skipped,
            import_batch_id=import_batch_id,
            rid=rid,
            per_symbol_jobs=jobs,
        )

    async def list_transactions(self, user_id: str, limit: int | None = None) -> list[Transaction]:
        if not user_id or not user_id.strip():
            raise ValidationError("Missing required parameter: userId")
        if limit is not None and limit < 1:
            raise ValidationError("limit must be a positive integer")
        return await self._transactions.list_for_user(user_id.strip(), limit=limit, newest_first=True)


__all__ = [
    "AddTransactionResult",
    "BulkImportResult",
    "BulkRow",
    "NewTransaction",
    "SymbolJob",
    "TransactionService",
    "ValidationError",
    "parse_timestamp",
    "to_decimal",
]

"""Transaction intake tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from cryptopilot.services.transactions import BulkRow, NewTransaction, ValidationError, parse_timestamp


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"user_id": ""}, "Missing required fields: userId, symbol, quantity, side"),
        ({"symbol": "  "}, "Missing required fields: userId, symbol, quantity, side"),
        ({"quantity": "lots"}, "Missing required fields: userId, symbol, quantity, side"),
        ({"side": "STAKE"}, "Invalid side. Must be BUY, SELL, or TRANSFER"),
        ({"quantity": "0"}, "Quantity must be a non-zero number"),
        ({"quantity": "-1"}, "Quantity must be positive for BUY and SELL"),
        ({"price": "-5"}, "Price must be a positive number"),
        ({"price": "free"}, "Price must be a positive number"),
        ({"timestamp": "last tuesday"}, "Invalid timestamp format"),
    ],
)
async def test_add_transaction_rejects_bad_input(harness, overrides, message):
    fields = {"user_id": "u1", "symbol": "BTC", "quantity": "1", "side": "BUY", "price": "100"}
    fields.update(overrides)

    with pytest.raises(ValidationError) as excinfo:
        await harness.container.intake.add_transaction(NewTransaction(**fields))

    assert str(excinfo.value) == message


def test_parse_timestamp_accepts_zulu_suffix():
    parsed = parse_timestamp("2024-03-01T10:00:00Z")

    assert parsed is not None
    assert parsed.utcoffset().total_seconds() == 0
    assert parse_timestamp(None) is None


async def test_negative_transfer_is_accepted(harness):
    async with harness.running() as container:
        result = await container.intake.add_transaction(
            NewTransaction(user_id="u1", symbol="eth", quantity="-2", side="transfer", timestamp="2024-03-10T08:00:00Z")
        )
        stored = await container.transactions.list_for_user("u1")

    assert result.symbol == "ETH"
    assert result.day == date(2024, 3, 10)
    assert stored[0].quantity == Decimal("-2")
    assert stored[0].price is None


async def test_missing_price_resolves_from_live_quote(harness):
    harness.provider.current["bitcoin"] = Decimal("64000")
    async with harness.running() as container:
        await container.token_map.upsert("BTC", "bitcoin")
        await container.intake.add_transaction(
            NewTransaction(user_id="u1", symbol="BTC", quantity="0.25", side="BUY", timestamp="2024-03-30T12:00:00Z")
        )
        stored = await container.transactions.list_for_user("u1")

    assert stored[0].price == Decimal("64000")


async def test_missing_price_survives_provider_outage(harness):
    harness.provider.fail_current = True
    async with harness.running() as container:
        await container.token_map.upsert("BTC", "bitcoin")
        await container.intake.add_transaction(
            NewTransaction(user_id="u1", symbol="BTC", quantity="1", side="BUY", timestamp="2024-03-30T12:00:00Z")
        )
        stored = await container.transactions.list_for_user("u1")

    assert len(stored) == 1
    assert stored[0].price is None


async def test_resubmitting_the_same_transaction_is_idempotent(harness):
    new = NewTransaction(
        user_id="u1",
        symbol="BTC",
        quantity="1",
        side="BUY",
        price="100",
        timestamp="2024-03-01T10:00:00Z",
        client_tx_id="order-1",
    )
    async with harness.running() as container:
        first = await container.intake.add_transaction(new)
        second = await container.intake.add_transaction(new)
        count = await container.transactions.count_for_user("u1")

    assert first.transaction_id == second.transaction_id
    assert first.rid != second.rid
    assert count == 1


async def test_resubmitting_without_price_is_idempotent_while_quote_moves(harness):
    new = NewTransaction(user_id="u1", symbol="BTC", quantity="1", side="BUY", timestamp="2024-03-01T10:00:00Z")
    harness.provider.current["bitcoin"] = Decimal("50000")
    async with harness.running() as container:
        await container.token_map.upsert("BTC", "bitcoin")
        first = await container.intake.add_transaction(new)
        harness.provider.current["bitcoin"] = Decimal("50001")
        second = await container.intake.add_transaction(new)
        stored = await container.transactions.list_for_user("u1")

    assert first.transaction_id == second.transaction_id
    assert len(stored) == 1
    assert stored[0].quantity == Decimal("1")
    assert stored[0].price is not None


async def test_bulk_import_normalizes_and_skips_unusable_rows(harness):
    rows = [
        BulkRow(symbol="btc", side="buy", quantity="1", price="100", timestamp="2024-03-01T10:00:00Z", ext_ref="a"),
        BulkRow(symbol="BTC", side="SELL", quantity="-0.5", price="150", timestamp="2024-03-05T10:00:00Z", ext_ref="b"),
        BulkRow(symbol="ETH", side="BUY", quantity="2", price="0", timestamp="2024-02-20T10:00:00Z", ext_ref="c"),
        BulkRow(symbol="btc", side="buy", quantity="1", price="100", timestamp="2024-03-01T10:00:00Z", ext_ref="a"),
        BulkRow(symbol="BTC", side="BUY", quantity="1", timestamp="yesterday"),
        BulkRow(symbol="BTC", side="STAKE", quantity="1", timestamp="2024-03-01T10:00:00Z"),
        BulkRow(symbol="BTC", side="BUY", quantity="0", timestamp="2024-03-01T10:00:00Z"),
        BulkRow(symbol="", side="BUY", quantity="1", timestamp="2024-03-01T10:00:00Z"),
    ]
    async with harness.running() as container:
        result = await container.intake.import_bulk("u1", rows, exchange="Binance", import_batch_id="batch-7")
        stored = await container.transactions.list_for_user("u1")

    assert result.imported == 3
    assert result.skipped == 4
    assert result.import_batch_id == "batch-7"
    assert [(job.symbol, job.from_date) for job in result.per_symbol_jobs] == [
        ("BTC", date(2024, 3, 1)),
        ("ETH", date(2024, 2, 20)),
    ]
    assert len(stored) == 3
    by_ref = {row.ext_ref: row for row in stored}
    assert by_ref["b"].quantity == Decimal("0.5")
    assert by_ref["b"].client_tx_id == "binance|b"
    assert by_ref["c"].price is None
    assert all(row.exchange == "binance" and row.import_batch_id == "batch-7" for row in stored)


async def test_bulk_import_rerun_does_not_duplicate(harness):
    rows = [BulkRow(symbol="SOL", side="BUY", quantity="10", price="100", timestamp="2024-03-02T00:00:00Z", ext_ref="x1")]
    async with harness.running() as container:
        await container.intake.import_bulk("u1", rows, exchange="kraken")
        await container.intake.import_bulk("u1", rows, exchange="kraken")
        count = await container.transactions.count_for_user("u1")

    assert count == 1


@pytest.mark.parametrize(
    "user_id, rows, message",
    [
        ("", [BulkRow(symbol="BTC", side="BUY", quantity="1", timestamp="2024-03-01T00:00:00Z")], "Missing userId or rows[]"),
        ("u1", [], "Missing userId or rows[]"),
        ("u1", [BulkRow(symbol="BTC", side="HOLD", quantity="1", timestamp="2024-03-01T00:00:00Z")], "No valid rows after normalization"),
    ],
)
async def test_bulk_import_rejects_empty_batches(harness, user_id, rows, message):
    with pytest.raises(ValidationError) as excinfo:
        await harness.container.intake.import_bulk(user_id, rows)

    assert str(excinfo.value) == message


async def test_list_transactions_is_newest_first(harness, add_transaction):
    async with harness.running() as container:
        await add_transaction(container, "BTC", "BUY", "1", "100", date(2024, 3, 1))
        await add_transaction(container, "BTC", "SELL", "0.5", "120", date(2024, 3, 9))
        await add_transaction(container, "ETH", "BUY", "2", "50", date(2024, 3, 5))

        listed = await container.intake.list_transactions("u1", limit=2)

    assert [(row.symbol, row.side) for row in listed] == [("BTC", "SELL"), ("ETH", "BUY")]

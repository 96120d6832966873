"""Idempotency key tests."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from cryptopilot.services.hashing import (
    build_client_key,
    build_dedupe_key,
    iso_second,
    sha256_hex,
    stable_json,
)

WHEN = datetime(2024, 2, 1, 9, 30, 15, 999000, tzinfo=timezone.utc)


def _key(**overrides):
    fields = {
        "symbol": "BTC",
        "quantity": Decimal("0.5"),
        "price": Decimal("40000"),
        "side": "BUY",
        "timestamp": WHEN,
    }
    fields.update(overrides)
    return build_dedupe_key("user-1", **fields)


def test_stable_json_sorts_keys_and_drops_whitespace():
    assert stable_json({"b": 1, "a": {"d": None, "c": "x"}}) == '{"a":{"c":"x","d":null},"b":"1"}'


def test_equal_decimals_hash_identically():
    assert sha256_hex({"q": Decimal("1")}) == sha256_hex({"q": Decimal("1.00")})
    assert _key(quantity=Decimal("0.50")) == _key()


def test_iso_second_truncates_fraction():
    assert iso_second(WHEN) == "2024-02-01T09:30:15Z"
    assert _key(timestamp=WHEN.replace(microsecond=0)) == _key()


def test_client_token_takes_precedence():
    with_token = _key(client_tx_id="binance|42")
    assert with_token == build_client_key("user-1", "binance|42")
    assert with_token == _key(client_tx_id="binance|42", price=Decimal("1"))


def test_content_changes_change_the_key():
    assert _key(price=Decimal("40001")) != _key()
    assert _key(side="SELL") != _key()
    assert _key(note="dca") != _key()


def test_exchange_and_fee_currency_are_case_insensitive():
    assert _key(exchange="Binance", fee_currency="usdt") == _key(exchange="binance", fee_currency="USDT")

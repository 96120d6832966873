"""Deterministic hashing used for transaction idempotency keys."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any


def _normalise(value: Any) -> Any:
    if isinstance(value, Decimal):
        normalised = value.normalize()
        if normalised == 0:
            return "0"
        return format(normalised, "f")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _normalise(Decimal(str(value)))
    if isinstance(value, datetime):
        return iso_second(value)
    if isinstance(value, dict):
        return {str(key): _normalise(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalise(item) for item in value]
    return value


def stable_json(value: Any) -> str:
    """JSON with sorted keys and no whitespace; numerically equal decimals serialise identically."""

    return json.dumps(_normalise(value), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_hex(value: Any) -> str:
    payload = value if isinstance(value, str) else stable_json(value)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def iso_second(value: datetime) -> str:
    """``YYYY-MM-DDTHH:MM:SSZ`` for an instant, naive values taken as UTC."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_client_key(user_id: str, client_tx_id: str) -> str:
    return sha256_hex({"u": user_id, "c": client_tx_id})


def build_dedupe_key(
    user_id: str,
    *,
    symbol: str,
    quantity: Decimal,
    price: Decimal | None,
    side: str,
    timestamp: datetime,
    note: str | None = None,
    fee: Decimal | None = None,
    fee_currency: str | None = None,
    exchange: str | None = None,
    ext_ref: str | None = None,
    client_tx_id: str | None = None,
) -> str:
    """Identity of a ledger row for a user.

    A client token wins when present; otherwise the key is derived from the
    economic content of the transaction so that re-importing the same row
    collapses onto the stored one.
    """

    if client_tx_id:
        return build_client_key(user_id, client_tx_id)
    return sha256_hex(
        {
            "u": user_id,
            "s": symbol,
            "q": quantity,
            "p": price,
            "sd": side,
            "t": iso_second(timestamp),
            "n": note,
            "f": fee,
            "fc": fee_currency.upper() if fee_currency else None,
            "ex": exchange.lower() if exchange else None,
            "er": ext_ref,
        }
    )


__all__ = [
    "build_client_key",
    "build_dedupe_key",
    "iso_second",
    "sha256_hex",
    "stable_json",
]

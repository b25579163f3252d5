"""Masking helpers so identifiers and secrets never reach the logs in full."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

SENSITIVE_FIELDS: frozenset[str] = frozenset({
    "private_key",
    "ledger_private_key",
    "moderator_key",
    "password",
    "secret",
    "token",
})

_ADDRESS_FIELDS: frozenset[str] = frozenset({"wallet_address", "address"})
_TX_FIELDS: frozenset[str] = frozenset({"tx_reference", "transaction_hash"})


def mask_address(address: str | None) -> str:
    """Show only the first 6 and last 4 characters of an address."""
    if not address or not isinstance(address, str):
        return "[INVALID_ADDRESS]"
    if len(address) < 10:
        return "[SHORT_ADDRESS]"
    return f"{address[:6]}...{address[-4:]}"


def mask_tx_reference(tx_reference: str | None) -> str:
    """Show only the first 8 and last 6 characters of a transaction reference."""
    if not tx_reference or not isinstance(tx_reference, str):
        return "[INVALID_TX]"
    if len(tx_reference) < 14:
        return "[SHORT_TX]"
    return f"{tx_reference[:8]}...{tx_reference[-6:]}"


def redact_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` safe to log.

    Address and transaction fields are masked, secret fields are dropped.
    Unknown fields pass through unchanged.
    """
    safe: dict[str, Any] = {}
    for key, value in data.items():
        if key in SENSITIVE_FIELDS:
            continue
        if key in _ADDRESS_FIELDS:
            safe[key] = mask_address(value)
        elif key in _TX_FIELDS:
            safe[key] = mask_tx_reference(value)
        else:
            safe[key] = value
    return safe


def describe_secret(value: str | None) -> str:
    """Report whether a configured secret is present without revealing it."""
    return "LOADED" if value else "MISSING"

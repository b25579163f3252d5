"""Canonical form for participant account addresses."""

from __future__ import annotations

import re

from learn2earn.core.errors import InvalidAddressError

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")


def canonicalize_address(address: str | None) -> str:
    """Return the lowercase ``0x``-prefixed form used as the key everywhere.

    Args:
        address: Address as supplied by a client, in any casing.

    Raises:
        InvalidAddressError: If the value is not ``0x`` followed by 40 hex digits.
    """
    if not isinstance(address, str):
        raise InvalidAddressError()
    normalized = address.strip().lower()
    if not _ADDRESS_RE.match(normalized):
        raise InvalidAddressError()
    return normalized

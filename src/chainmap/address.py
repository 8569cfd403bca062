"""Canonical account addresses.

Addresses are normalized to their EIP-55 checksum form before they are
used as dict keys or set members, so two spellings that differ only in
case always collapse to one entry.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any, NewType

from eth_utils import is_hex_address, to_checksum_address

from chainmap.errors import InvalidAddressError

Address = NewType("Address", str)

ZERO_ADDRESS = Address("0x0000000000000000000000000000000000000000")


def normalize_address(value: str) -> Address:
    """Return the checksummed form of ``value``.

    Raises:
        InvalidAddressError: if ``value`` is not a 20-byte hex address.
    """
    if not is_address(value):
        raise InvalidAddressError(value)
    return Address(to_checksum_address(value))


def is_address(value: Any) -> bool:
    """True for 0x-prefixed strings that look like a 20-byte hex address."""
    return (
        isinstance(value, str)
        and value.startswith("0x")
        and is_hex_address(value)
    )


def normalize_all(values: Iterable[str]) -> list[Address]:
    """Normalize and dedupe, keeping first-seen order."""
    seen: dict[Address, None] = {}
    for value in values:
        seen.setdefault(normalize_address(value), None)
    return list(seen)


def iter_addresses(value: Any) -> Iterator[Address]:
    """Yield every address found in a decoded field value.

    Walks nested lists, tuples and dicts (dict values only). The zero
    address is a null pointer on-chain and is never yielded.
    """
    if is_address(value):
        addr = normalize_address(value)
        if addr != ZERO_ADDRESS:
            yield addr
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_addresses(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_addresses(item)

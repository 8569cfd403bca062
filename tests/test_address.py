"""Tests for address normalization."""

import pytest

from chainmap.address import (
    ZERO_ADDRESS,
    is_address,
    iter_addresses,
    normalize_address,
    normalize_all,
)
from chainmap.errors import InvalidAddressError

LOWER = "0xde0b295669a9fd93d5f28d9ec85e40f4cb697bae"
CHECKSUM = "0xde0B295669a9FD93d5F28D9Ec85E40f4cb697BAe"


class TestNormalizeAddress:
    def test_checksums_lowercase(self):
        assert normalize_address(LOWER) == CHECKSUM

    def test_case_insensitive(self):
        shouted = "0x" + LOWER[2:].upper()
        assert normalize_address(shouted) == CHECKSUM
        assert normalize_address(CHECKSUM) == CHECKSUM

    @pytest.mark.parametrize(
        "value", ["", "0x1234", LOWER[2:], "not an address", 42]
    )
    def test_rejects_invalid(self, value):
        with pytest.raises(InvalidAddressError):
            normalize_address(value)

    def test_invalid_is_value_error(self):
        with pytest.raises(ValueError):
            normalize_address("0xzz")


class TestIsAddress:
    def test_accepts_hex_address(self):
        assert is_address(LOWER)

    def test_rejects_other_types(self):
        assert not is_address(123)
        assert not is_address(None)
        assert not is_address("0x12")


class TestNormalizeAll:
    def test_dedupes_preserving_order(self):
        other = "0x" + "1" * 40
        result = normalize_all([LOWER, other, CHECKSUM])
        assert result == [CHECKSUM, other]


class TestIterAddresses:
    def test_scalar(self):
        assert list(iter_addresses(LOWER)) == [CHECKSUM]

    def test_nested(self):
        other = "0x" + "2" * 40
        value = {"owners": [LOWER, 5], "meta": {"admin": other}, "x": "abc"}
        assert sorted(iter_addresses(value)) == sorted([CHECKSUM, other])

    def test_skips_zero_address(self):
        assert list(iter_addresses([ZERO_ADDRESS, LOWER])) == [CHECKSUM]

    def test_non_address_values(self):
        assert list(iter_addresses(12345)) == []
        assert list(iter_addresses(True)) == []
        assert list(iter_addresses(None)) == []

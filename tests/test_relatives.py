"""Tests for relative derivation."""

from chainmap.address import normalize_address
from chainmap.overrides import ContractOverrides, FieldOverride, FieldTarget
from chainmap.providers import FieldResult
from chainmap.relatives import relatives_with_suggested_templates


def addr(n: int) -> str:
    return f"0x{n:040d}"


class TestRelatives:
    def test_field_values_and_proxy_wiring(self):
        results = [
            FieldResult("owner", addr(1)),
            FieldResult("members", [addr(2), addr(3)]),
            FieldResult("count", 7),
        ]
        relatives = relatives_with_suggested_templates(
            results,
            None,
            proxy_relatives=[addr(4)],
            implementations=[addr(5)],
        )
        assert set(relatives) == {addr(n) for n in range(1, 6)}
        assert all(t == frozenset() for t in relatives.values())

    def test_suggestions_attach_per_field(self):
        overrides = ContractOverrides(
            fields={
                "owner": FieldOverride(target=FieldTarget(template="Safe")),
                "guardian": FieldOverride(
                    target=FieldTarget(template="Council")
                ),
            }
        )
        results = [
            FieldResult("owner", addr(1)),
            FieldResult("guardian", addr(1)),
            FieldResult("token", addr(2)),
        ]
        relatives = relatives_with_suggested_templates(results, overrides)
        assert relatives[addr(1)] == frozenset({"Safe", "Council"})
        assert relatives[addr(2)] == frozenset()

    def test_errored_results_ignored(self):
        results = [FieldResult("owner", addr(1), error="reverted")]
        assert relatives_with_suggested_templates(results, None) == {}

    def test_ignore_relatives_by_field_and_address(self):
        overrides = ContractOverrides(
            ignore_relatives=["owner", addr(3)],
            fields={"guardian": FieldOverride(ignore_relative=True)},
        )
        results = [
            FieldResult("owner", addr(1)),
            FieldResult("guardian", addr(2)),
            FieldResult("admin", addr(4)),
            FieldResult("flagged", addr(6), ignore_relative=True),
        ]
        relatives = relatives_with_suggested_templates(
            results, overrides, implementations=[addr(3)]
        )
        assert set(relatives) == {addr(4)}

    def test_addresses_normalized(self):
        lower = "0xde0b295669a9fd93d5f28d9ec85e40f4cb697bae"
        relatives = relatives_with_suggested_templates(
            [FieldResult("owner", lower)],
            None,
            implementations=["0x" + lower[2:].upper()],
        )
        assert list(relatives) == [normalize_address(lower)]

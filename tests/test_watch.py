"""Tests for watch-mode drift detection."""

import asyncio
import copy

import pytest

from chainmap.analysis import AccountAnalysis
from chainmap.errors import WatchModeInconsistency
from chainmap.offline import (
    ChainState,
    StaticChain,
    StaticTemplateLibrary,
    analyzer_for,
    detector_for,
)
from chainmap.overrides import ContractOverrides
from chainmap.watch import (
    ValueChange,
    WatchModeDetector,
    diff_values,
    relevant_values,
)

CODE = "0x6080604052"


def addr(n: int) -> str:
    return f"0x{n:040d}"


TEMPLATES = {
    "ERC20": {
        "overrides": {
            "fields": {"totalSupply": {"handler": {"type": "call"}}},
            "ignore_in_watch_mode": ["totalSupply"],
        }
    }
}


def chain_state(addresses, block_number=100):
    return ChainState.model_validate(
        {
            "block_number": block_number,
            "addresses": addresses,
            "templates": TEMPLATES,
        }
    )


def token(owner=addr(2), supply=1000, **extra):
    record = {
        "code": CODE,
        "name": "Token",
        "abi": [
            "function owner() view returns (address)",
            "function paused() view returns (bool)",
        ],
        "values": {"owner": owner, "paused": False, "totalSupply": supply},
    }
    record.update(extra)
    return record


async def baseline(addresses, address=addr(1), overrides=None):
    state = chain_state(addresses)
    return await analyzer_for(state).analyze(
        address, overrides, state.block_number
    )


def detector(addresses):
    return detector_for(chain_state(addresses, block_number=200))


class TestDiffValues:
    def test_equal_maps(self):
        assert diff_values({"a": [1, {"b": 2}]}, {"a": [1, {"b": 2}]}) == []

    def test_changed_added_removed(self):
        changes = diff_values({"a": 1, "b": 2}, {"a": 3, "c": None})
        assert changes == [
            ValueChange("a", before=1, after=3),
            ValueChange("b", before=2, removed=True),
            ValueChange("c", after=None, added=True),
        ]

    def test_nested_difference(self):
        changes = diff_values({"owners": [addr(1)]}, {"owners": [addr(2)]})
        assert [c.key for c in changes] == ["owners"]

    def test_ignored_keys(self):
        assert diff_values({"a": 1, "b": 2}, {"a": 1, "b": 5}, ["b"]) == []
        assert relevant_values({"a": 1, "b": 2}, ["b"]) == {"a": 1}


@pytest.mark.asyncio
class TestHasChanged:
    async def test_unchanged_state_is_idempotent(self):
        previous = await baseline({addr(1): token()})
        watch = detector({addr(1): token()})
        assert await watch.has_changed(previous, None, 200) is False
        assert await watch.has_changed(previous, None, 200) is False

    async def test_value_change(self):
        previous = await baseline({addr(1): token()})
        watch = detector({addr(1): token(owner=addr(3))})
        assert await watch.has_changed(previous, None, 200) is True
        changes = await watch.value_changes(previous, None, 200)
        assert changes == [ValueChange("owner", before=addr(2), after=addr(3))]

    async def test_ignored_field_change(self):
        overrides = ContractOverrides(extends="ERC20")
        previous = await baseline({addr(1): token()}, overrides=overrides)
        assert previous.ignore_in_watch_mode == ("totalSupply",)
        watch = detector({addr(1): token(supply=5000)})
        assert await watch.has_changed(previous, overrides, 200) is False

    async def test_template_fields_are_reextracted(self):
        overrides = ContractOverrides(extends="ERC20")
        previous = await baseline(
            {addr(1): token(abi=[])}, overrides=overrides
        )
        assert previous.values == {"totalSupply": 1000}
        watch = detector(
            {addr(1): token(abi=[], errors={"totalSupply": "reverted"})}
        )
        with pytest.raises(WatchModeInconsistency):
            await watch.has_changed(previous, None, 200)

    async def test_unverified_becomes_verified(self):
        previous = await baseline({addr(1): token(verified=False)})
        assert previous.is_verified is False
        watch = detector({addr(1): token()})
        assert await watch.has_changed(previous, None, 200) is True

    async def test_still_unverified_is_unchanged(self):
        previous = await baseline({addr(1): token(verified=False)})
        watch = detector({addr(1): token(owner=addr(9), verified=False)})
        assert await watch.has_changed(previous, None, 200) is False

    async def test_new_error_is_inconsistent(self):
        previous = await baseline({addr(1): token()})
        watch = detector(
            {addr(1): token(errors={"owner": "execution reverted"})}
        )
        with pytest.raises(WatchModeInconsistency) as exc_info:
            await watch.has_changed(previous, None, 200)
        assert exc_info.value.address == addr(1)
        assert exc_info.value.errors == {"owner": "execution reverted"}

    async def test_known_error_is_not_inconsistent(self):
        errors = {"paused": "execution reverted"}
        previous = await baseline({addr(1): token(errors=errors)})
        watch = detector({addr(1): token(errors=errors)})
        assert await watch.has_changed(previous, None, 200) is False

    async def test_previous_record_not_mutated(self):
        previous = await baseline({addr(1): token()})
        snapshot = copy.deepcopy(previous)
        watch = detector({addr(1): token(owner=addr(3), supply=1)})
        await watch.has_changed(previous, None, 200)
        assert previous == snapshot


@pytest.mark.asyncio
class TestHasBecomeContract:
    async def test_code_appeared(self):
        watch = detector({addr(5): {"code": CODE}})
        previous = AccountAnalysis(address=addr(5))
        assert await watch.has_become_contract(previous, 200) is True

    async def test_still_account(self):
        watch = detector({addr(5): {"code": "0x"}})
        previous = AccountAnalysis(address=addr(5))
        assert await watch.has_become_contract(previous, 200) is False

    async def test_unrecorded_address_has_no_code(self):
        watch = detector({})
        previous = AccountAnalysis(address=addr(6))
        assert await watch.has_become_contract(previous, 200) is False


@pytest.mark.asyncio
class TestCheck:
    async def test_report(self):
        before = {
            addr(1): token(),
            addr(2): token(),
            addr(3): token(verified=False),
        }
        previous = {a: await baseline(before, address=a) for a in before}
        previous[addr(4)] = AccountAnalysis(address=addr(4))
        previous[addr(5)] = AccountAnalysis(address=addr(5))

        watch = detector(
            {
                addr(1): token(owner=addr(7)),
                addr(2): token(),
                addr(3): token(),
                addr(4): {"code": CODE},
            }
        )
        report = await watch.check(previous, 200, concurrency=2)

        assert report.block_number == 200
        assert report.changed == [addr(1), addr(3)]
        assert report.newly_verified == [addr(3)]
        assert report.became_contracts == [addr(4)]
        assert [c.key for c in report.changes[addr(1)]] == ["owner"]
        assert report.has_changes

    async def test_no_changes(self):
        state = {addr(1): token()}
        previous = {addr(1): await baseline(state)}
        report = await detector(state).check(previous, 200)
        assert report.changed == []
        assert report.became_contracts == []
        assert not report.has_changes

    async def test_inconsistency_propagates(self):
        previous = {addr(1): await baseline({addr(1): token()})}
        watch = detector({addr(1): token(errors={"owner": "reverted"})})
        with pytest.raises(WatchModeInconsistency):
            await watch.check(previous, 200)

    async def test_failure_cancels_remaining_checks(self):
        slow = addr(2)
        finished = []

        class SlowChain(StaticChain):
            async def execute(self, address, abi, overrides, block_number):
                if address == slow:
                    await asyncio.sleep(0.2)
                    finished.append(address)
                return await super().execute(
                    address, abi, overrides, block_number
                )

        before = {addr(1): token(), slow: token()}
        previous = {a: await baseline(before, address=a) for a in before}
        current = chain_state(
            {addr(1): token(errors={"owner": "reverted"}), slow: token()},
            block_number=200,
        )
        chain = SlowChain(current)
        watch = WatchModeDetector(
            chain, chain, chain, StaticTemplateLibrary(current.templates)
        )

        with pytest.raises(WatchModeInconsistency):
            await watch.check(previous, 200)

        pending = [
            task
            for task in asyncio.all_tasks()
            if task is not asyncio.current_task() and not task.done()
        ]
        assert pending == []
        await asyncio.sleep(0.3)
        assert finished == []


@pytest.mark.asyncio
class TestConstruction:
    async def test_template_library_required(self):
        chain = StaticChain(chain_state({}))
        with pytest.raises(TypeError):
            WatchModeDetector(chain, chain, chain)

    async def test_templated_baseline_unchanged(self):
        overrides = ContractOverrides(extends="ERC20")
        previous = await baseline({addr(1): token(abi=[])}, overrides=overrides)
        assert "totalSupply" in previous.values

        current = chain_state({addr(1): token(abi=[])}, block_number=200)
        chain = StaticChain(current)
        watch = WatchModeDetector(
            chain, chain, chain, StaticTemplateLibrary(current.templates)
        )
        assert await watch.has_changed(previous, overrides, 200) is False
        assert await watch.value_changes(previous, None, 200) == []

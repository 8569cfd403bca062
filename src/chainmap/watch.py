"""Watch mode: detect drift of previously discovered addresses.

Each check is a pure predicate over a read-only baseline record; checks
share no state and can run concurrently.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from chainmap.address import Address
from chainmap.analysis import AccountAnalysis, Analysis, ContractAnalysis
from chainmap.config import DEFAULT_WATCH_CONCURRENCY
from chainmap.errors import WatchModeInconsistency
from chainmap.logging_config import get_logger
from chainmap.overrides import ContractOverrides
from chainmap.providers import (
    ChainReader,
    FieldExtractor,
    SourceRegistry,
    TemplateLibrary,
)

logger = get_logger("watch")

_MISSING = object()


@dataclass(frozen=True)
class ValueChange:
    """One field that differs between baseline and current values.

    ``before``/``after`` are None when the key was added/removed; check
    ``added``/``removed`` to tell that apart from a None value.
    """

    key: str
    before: Any = None
    after: Any = None
    added: bool = False
    removed: bool = False


def relevant_values(
    values: Mapping[str, Any], ignore: Iterable[str]
) -> dict[str, Any]:
    """Copy of ``values`` without the ignored keys."""
    ignored = set(ignore)
    return {k: v for k, v in values.items() if k not in ignored}


def diff_values(
    before: Mapping[str, Any],
    after: Mapping[str, Any],
    ignore: Iterable[str] = (),
) -> list[ValueChange]:
    """Structural diff of two value maps, ignored keys excluded.

    Values are compared with ``==``, i.e. deep equality for nested lists
    and dicts.
    """
    before = relevant_values(before, ignore)
    after = relevant_values(after, ignore)
    changes: list[ValueChange] = []
    for key in sorted(before.keys() | after.keys()):
        old = before.get(key, _MISSING)
        new = after.get(key, _MISSING)
        if old is _MISSING:
            changes.append(ValueChange(key, after=new, added=True))
        elif new is _MISSING:
            changes.append(ValueChange(key, before=old, removed=True))
        elif old != new:
            changes.append(ValueChange(key, before=old, after=new))
    return changes


@dataclass
class WatchReport:
    """Outcome of checking every record of a previous discovery."""

    block_number: int
    changed: list[Address] = field(default_factory=list)
    became_contracts: list[Address] = field(default_factory=list)
    newly_verified: list[Address] = field(default_factory=list)
    changes: dict[Address, list[ValueChange]] = field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return bool(self.changed or self.became_contracts)


class WatchModeDetector:
    """Drift checks against a previous discovery.

    ``templates`` must be the library the baseline was resolved with, so
    that re-extraction runs with the same effective overrides.
    """

    def __init__(
        self,
        chain: ChainReader,
        sources: SourceRegistry,
        extractor: FieldExtractor,
        templates: TemplateLibrary,
    ):
        self.chain = chain
        self.sources = sources
        self.extractor = extractor
        self.templates = templates

    def _effective_overrides(
        self,
        previous: ContractAnalysis,
        overrides: ContractOverrides | None,
    ) -> ContractOverrides | None:
        # re-apply the template the baseline was resolved with
        template = previous.extended_template
        if template is None:
            return overrides
        return self.templates.apply_template(
            overrides or ContractOverrides(), template.template
        )

    async def value_changes(
        self,
        previous: ContractAnalysis,
        overrides: ContractOverrides | None,
        block_number: int,
    ) -> list[ValueChange]:
        """Re-extract ``previous``'s fields and diff them against it.

        Raises:
            WatchModeInconsistency: re-extraction produced error keys the
                baseline did not have.
        """
        abi = self.sources.relevant_abi(
            previous.abis,
            previous.address,
            previous.implementations,
            previous.ignore_in_watch_mode,
        )
        result = await self.extractor.execute(
            previous.address,
            abi,
            self._effective_overrides(previous, overrides),
            block_number,
        )

        new_errors = {
            key: message
            for key, message in result.errors.items()
            if key not in previous.errors
        }
        if new_errors:
            raise WatchModeInconsistency(previous.address, new_errors)

        return diff_values(
            previous.values, result.values, previous.ignore_in_watch_mode
        )

    async def has_changed(
        self,
        previous: ContractAnalysis,
        overrides: ContractOverrides | None,
        block_number: int,
    ) -> bool:
        """True if ``previous`` no longer describes the contract.

        A previously unverified contract that is now verified always counts
        as changed (a full re-discovery is needed to read its fields); one
        that is still unverified has nothing to compare and is unchanged.
        """
        log = logger.bind(address=previous.address, block_number=block_number)
        if not previous.is_verified:
            sources = await self.sources.sources(
                previous.address, previous.implementations
            )
            if sources.is_verified:
                log.info("contract became verified")
            return sources.is_verified

        changes = await self.value_changes(previous, overrides, block_number)
        if changes:
            log.info(
                "contract values changed",
                name=previous.name,
                keys=[c.key for c in changes],
            )
            return True
        return False

    async def has_become_contract(
        self, previous: AccountAnalysis, block_number: int
    ) -> bool:
        """True if code now exists at a previously code-less address."""
        code = await self.chain.code_at(previous.address, block_number)
        if len(code) > 0:
            logger.info(
                "account became a contract",
                address=previous.address,
                block_number=block_number,
            )
            return True
        return False

    async def check(
        self,
        previous: Mapping[Address, Analysis],
        block_number: int,
        overrides: Mapping[Address, ContractOverrides] | None = None,
        *,
        concurrency: int = DEFAULT_WATCH_CONCURRENCY,
    ) -> WatchReport:
        """Run the matching check for every record in ``previous``.

        Collaborator failures and WatchModeInconsistency propagate; the
        remaining checks are cancelled first.
        """
        overrides = overrides or {}
        semaphore = asyncio.Semaphore(concurrency)
        report = WatchReport(block_number=block_number)

        async def check_one(address: Address, record: Analysis) -> None:
            async with semaphore:
                if isinstance(record, AccountAnalysis):
                    if await self.has_become_contract(record, block_number):
                        report.became_contracts.append(address)
                    return
                if not record.is_verified:
                    if await self.has_changed(
                        record, overrides.get(address), block_number
                    ):
                        report.newly_verified.append(address)
                        report.changed.append(address)
                    return
                changes = await self.value_changes(
                    record, overrides.get(address), block_number
                )
                if changes:
                    report.changed.append(address)
                    report.changes[address] = changes

        tasks = [
            asyncio.create_task(check_one(addr, record))
            for addr, record in previous.items()
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        report.changed.sort()
        report.became_contracts.sort()
        report.newly_verified.sort()

        logger.info(
            "watch check finished",
            block_number=block_number,
            checked=len(previous),
            changed=len(report.changed),
            became_contracts=len(report.became_contracts),
        )
        return report

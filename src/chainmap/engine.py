"""Breadth-first crawl over the address graph.

A bounded pool of asyncio workers pulls pending addresses from a shared
frontier. A single condition variable guards the frontier, the visited
set and the result maps, so that:

- an address is claimed (moved to visited) by exactly one worker, even when
  several referrers discover it before it is first processed;
- template suggestions merge into a pending entry atomically with respect
  to claiming. Once claimed, an address's suggestions are fixed; later
  referrers cannot change how it is resolved.

The visited set, not the shape of the graph, guarantees termination.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from chainmap.address import Address, normalize_address
from chainmap.analysis import AccountAnalysis, Analysis, ContractAnalysis
from chainmap.analyzer import AddressAnalyzer
from chainmap.config import DEFAULT_CONCURRENCY, CrawlSettings
from chainmap.errors import CollaboratorError
from chainmap.logging_config import get_logger
from chainmap.overrides import ContractOverrides

logger = get_logger("engine")

SKIP_IGNORED = "ignored by overrides"
SKIP_MAX_DEPTH = "max depth reached"
SKIP_MAX_ADDRESSES = "max addresses reached"
SKIP_TIME_BUDGET = "time budget exceeded"


@dataclass(frozen=True)
class CrawlSeed:
    address: str
    overrides: ContractOverrides | None = None


SeedLike = CrawlSeed | tuple[str, ContractOverrides | None] | str


def _as_seed(seed: SeedLike) -> CrawlSeed:
    if isinstance(seed, CrawlSeed):
        return seed
    if isinstance(seed, str):
        return CrawlSeed(seed)
    address, overrides = seed
    return CrawlSeed(address, overrides)


@dataclass
class _Pending:
    address: Address
    depth: int
    templates: set[str] = field(default_factory=set)
    overrides: ContractOverrides | None = None


class DiscoveryResult(Mapping[Address, Analysis]):
    """Address-keyed analyses from one crawl, plus what was not analyzed.

    Attributes:
        block_number: Height the crawl ran at.
        failures: Address -> error description for analyses that raised.
        skipped: Address -> reason for addresses that were reached but never
            analyzed (ignored, beyond limits, or cut by the time budget).
        complete: False when the time budget expired; committed records
            are still valid.
    """

    def __init__(
        self,
        block_number: int,
        analyses: dict[Address, Analysis],
        failures: dict[Address, str] | None = None,
        skipped: dict[Address, str] | None = None,
        complete: bool = True,
    ):
        self.block_number = block_number
        self._analyses = analyses
        self.failures = failures or {}
        self.skipped = skipped or {}
        self.complete = complete

    def __getitem__(self, address: str) -> Analysis:
        try:
            key = normalize_address(address)
        except ValueError:
            raise KeyError(address) from None
        return self._analyses[key]

    def __iter__(self) -> Iterator[Address]:
        return iter(self._analyses)

    def __len__(self) -> int:
        return len(self._analyses)

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, str):
            return False
        try:
            return normalize_address(address) in self._analyses
        except ValueError:
            return False

    @property
    def contracts(self) -> dict[Address, ContractAnalysis]:
        return {
            addr: a
            for addr, a in self._analyses.items()
            if isinstance(a, ContractAnalysis)
        }

    @property
    def accounts(self) -> dict[Address, AccountAnalysis]:
        return {
            addr: a
            for addr, a in self._analyses.items()
            if isinstance(a, AccountAnalysis)
        }


class _CrawlState:
    def __init__(self) -> None:
        self.cond = asyncio.Condition()
        self.frontier: dict[Address, _Pending] = {}
        self.visited: set[Address] = set()
        self.in_flight: dict[Address, _Pending] = {}
        self.claimed = 0
        self.analyses: dict[Address, Analysis] = {}
        self.failures: dict[Address, str] = {}
        self.skipped: dict[Address, str] = {}


class CrawlEngine:
    """Discover every address reachable from a set of seeds.

    Args:
        analyzer: Per-address analyzer.
        concurrency: Number of concurrent analyses.
        max_depth: Hops from a seed to follow; None for unlimited.
        max_addresses: Addresses to analyze before stopping; None for
            unlimited.
    """

    def __init__(
        self,
        analyzer: AddressAnalyzer,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_depth: int | None = None,
        max_addresses: int | None = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.analyzer = analyzer
        self.concurrency = concurrency
        self.max_depth = max_depth
        self.max_addresses = max_addresses

    @classmethod
    def from_settings(
        cls, analyzer: AddressAnalyzer, settings: CrawlSettings
    ) -> CrawlEngine:
        return cls(
            analyzer,
            concurrency=settings.concurrency,
            max_depth=settings.max_depth,
            max_addresses=settings.max_addresses,
        )

    async def crawl(
        self,
        seeds: Iterable[SeedLike],
        block_number: int,
        overrides: Mapping[str, ContractOverrides] | None = None,
        *,
        time_budget: float | None = None,
        log: Any = None,
    ) -> DiscoveryResult:
        """Crawl from ``seeds`` at ``block_number``.

        Args:
            seeds: Seed addresses, each optionally with its own overrides.
            block_number: Height every analysis runs at.
            overrides: Overrides for any address reached during the crawl.
                A seed's own overrides take precedence.
            time_budget: Seconds before the crawl is cut short. In-flight
                analyses are cancelled and a partial result is returned.
            log: Logger to bind crawl context onto.

        Raises:
            CollaboratorError: a collaborator reported a systemic failure.
        """
        if log is None:
            log = logger
        log = log.bind(block_number=block_number)
        configured = {
            normalize_address(addr): o for addr, o in (overrides or {}).items()
        }

        state = _CrawlState()
        for seed in map(_as_seed, seeds):
            address = normalize_address(seed.address)
            seed_overrides = seed.overrides or configured.get(address)
            pending = state.frontier.get(address)
            if pending is None:
                state.frontier[address] = _Pending(
                    address, 0, overrides=seed_overrides
                )
            elif seed.overrides is not None:
                pending.overrides = seed.overrides

        log.info(
            "crawl started",
            seeds=len(state.frontier),
            concurrency=self.concurrency,
        )

        workers = [
            asyncio.create_task(
                self._worker(state, block_number, configured, log)
            )
            for _ in range(self.concurrency)
        ]
        complete = True
        try:
            async with asyncio.timeout(time_budget):
                await asyncio.gather(*workers)
        except TimeoutError:
            complete = False
            for address in (*state.in_flight, *state.frontier):
                state.skipped[address] = SKIP_TIME_BUDGET
            log.warning(
                "crawl time budget exceeded",
                time_budget=time_budget,
                analyzed=len(state.analyses),
            )
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        log.info(
            "crawl finished",
            analyzed=len(state.analyses),
            failed=len(state.failures),
            skipped=len(state.skipped),
            complete=complete,
        )
        return DiscoveryResult(
            block_number,
            dict(state.analyses),
            failures=dict(state.failures),
            skipped=dict(state.skipped),
            complete=complete,
        )

    async def _worker(
        self,
        state: _CrawlState,
        block_number: int,
        configured: Mapping[Address, ContractOverrides],
        log: Any,
    ) -> None:
        while True:
            item = await self._claim(state, log)
            if item is None:
                return
            try:
                analysis = await self.analyzer.analyze(
                    item.address,
                    item.overrides,
                    block_number,
                    frozenset(item.templates),
                    log=log,
                )
            except Exception as e:
                if isinstance(e, CollaboratorError) and e.systemic:
                    log.error(
                        "systemic collaborator failure, aborting crawl",
                        address=item.address,
                        error=str(e),
                    )
                    raise
                await self._fail(state, item, e, log)
            else:
                await self._commit(state, item, analysis, configured)

    async def _claim(self, state: _CrawlState, log: Any) -> _Pending | None:
        async with state.cond:
            while True:
                while state.frontier:
                    if (
                        self.max_addresses is not None
                        and state.claimed >= self.max_addresses
                    ):
                        for address in state.frontier:
                            state.skipped[address] = SKIP_MAX_ADDRESSES
                        state.frontier.clear()
                        break

                    address = next(iter(state.frontier))
                    item = state.frontier.pop(address)
                    state.visited.add(address)
                    if item.overrides is not None and (
                        item.overrides.ignore_discovery
                    ):
                        log.debug("skipping ignored address", address=address)
                        state.skipped[address] = SKIP_IGNORED
                        continue

                    state.claimed += 1
                    state.in_flight[address] = item
                    return item

                if not state.in_flight:
                    state.cond.notify_all()
                    return None
                await state.cond.wait()

    async def _commit(
        self,
        state: _CrawlState,
        item: _Pending,
        analysis: Analysis,
        configured: Mapping[Address, ContractOverrides],
    ) -> None:
        async with state.cond:
            del state.in_flight[item.address]
            state.analyses[item.address] = analysis
            for relative, templates in analysis.relatives.items():
                self._enqueue(
                    state, relative, templates, item.depth + 1, configured
                )
            state.cond.notify_all()

    async def _fail(
        self, state: _CrawlState, item: _Pending, error: Exception, log: Any
    ) -> None:
        log.warning(
            "analysis failed", address=item.address, error=str(error)
        )
        async with state.cond:
            del state.in_flight[item.address]
            state.failures[item.address] = f"{type(error).__name__}: {error}"
            state.cond.notify_all()

    def _enqueue(
        self,
        state: _CrawlState,
        address: Address,
        templates: frozenset[str],
        depth: int,
        configured: Mapping[Address, ContractOverrides],
    ) -> None:
        # caller holds state.cond
        if address in state.visited:
            return
        if self.max_depth is not None and depth > self.max_depth:
            if address not in state.frontier:
                state.skipped.setdefault(address, SKIP_MAX_DEPTH)
            return

        state.skipped.pop(address, None)
        pending = state.frontier.get(address)
        if pending is None:
            state.frontier[address] = _Pending(
                address,
                depth,
                templates=set(templates),
                overrides=configured.get(address),
            )
        else:
            pending.templates |= templates
            pending.depth = min(pending.depth, depth)

"""Shared helpers for CLI commands."""

from __future__ import annotations

from pathlib import Path

from chainmap.config import (
    CrawlSettings,
    DiscoveryConfig,
    load_discovery_config,
)
from chainmap.engine import CrawlEngine, CrawlSeed, DiscoveryResult
from chainmap.offline import ChainState, analyzer_for, load_chain_state


def load_inputs(
    state_path: Path, config_path: Path
) -> tuple[ChainState, DiscoveryConfig]:
    return load_chain_state(state_path), load_discovery_config(config_path)


async def crawl_state(
    state: ChainState,
    config: DiscoveryConfig,
    settings: CrawlSettings,
    time_budget: float | None = None,
) -> DiscoveryResult:
    """Crawl a recorded chain state from the config's seeds."""
    engine = CrawlEngine(
        analyzer_for(state),
        concurrency=settings.concurrency,
        max_depth=(
            config.max_depth
            if config.max_depth is not None
            else settings.max_depth
        ),
        max_addresses=(
            config.max_addresses
            if config.max_addresses is not None
            else settings.max_addresses
        ),
    )
    seeds = [
        CrawlSeed(address, config.overrides_for(address))
        for address in config.seeds
    ]
    return await engine.crawl(
        seeds,
        state.block_number,
        config.overrides,
        time_budget=time_budget,
    )

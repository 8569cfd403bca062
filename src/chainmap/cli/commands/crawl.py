"""Crawl command - discover a deployment from a recorded chain state."""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field, replace
from pathlib import Path

from chainmap import console
from chainmap.cli._common import crawl_state, load_inputs
from chainmap.config import get_crawl_settings
from chainmap.graph import DiscoveryGraph


@dataclass
class Crawl:
    """Crawl from the configured seeds and print the discovered contracts."""

    state: Path = field(metadata={"help": "Recorded chain state (JSON)"})
    config: Path = field(metadata={"help": "Discovery config (JSON)"})
    concurrency: int | None = field(
        default=None,
        metadata={"help": "Concurrent analyses (env: CHAINMAP_CONCURRENCY)"},
    )
    time_budget: float | None = field(
        default=None,
        metadata={"help": "Seconds before the crawl is cut short"},
    )
    output: Path | None = field(
        default=None,
        metadata={"help": "Write JSON here instead of stdout"},
    )

    def run(self) -> int:
        """Execute the crawl command."""
        chain_state, config = load_inputs(self.state, self.config)
        settings = get_crawl_settings()
        if self.concurrency is not None:
            settings = replace(settings, concurrency=self.concurrency)

        start_time = time.perf_counter()
        result = asyncio.run(
            crawl_state(chain_state, config, settings, self.time_budget)
        )
        elapsed = time.perf_counter() - start_time

        graph = DiscoveryGraph(result)
        payload = {
            "name": config.name,
            "block_number": result.block_number,
            "complete": result.complete,
            "contracts": graph.flatten(),
            "failures": dict(sorted(result.failures.items())),
            "skipped": dict(sorted(result.skipped.items())),
        }
        text = json.dumps(payload, indent=2, default=str)
        if self.output is not None:
            self.output.write_text(text + "\n")
            console.success(f"wrote {len(result)} records to {self.output}")
        else:
            print(text)

        console.dim(
            f"discovered {len(result)} addresses in {elapsed:.2f}s "
            f"({len(result.failures)} failed, {len(result.skipped)} skipped)"
        )
        return 0 if not result.failures else 2

"""Watch command - compare a previous discovery against a newer state."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path

from chainmap import console
from chainmap.cli._common import crawl_state, load_inputs
from chainmap.config import get_crawl_settings
from chainmap.offline import detector_for, load_chain_state
from chainmap.watch import WatchReport

EXIT_CHANGED = 3


@dataclass
class Watch:
    """Discover at the previous state, then check it against the new one.

    Exits 0 when nothing drifted and 3 when a re-discovery is needed.
    """

    previous_state: Path = field(
        metadata={"help": "Chain state the baseline is discovered at"}
    )
    state: Path = field(metadata={"help": "Current chain state (JSON)"})
    config: Path = field(metadata={"help": "Discovery config (JSON)"})

    def run(self) -> int:
        """Execute the watch command."""
        previous, config = load_inputs(self.previous_state, self.config)
        current = load_chain_state(self.state)
        settings = get_crawl_settings()

        async def run_watch() -> WatchReport:
            baseline = await crawl_state(previous, config, settings)
            return await detector_for(current).check(
                baseline,
                current.block_number,
                config.overrides,
                concurrency=settings.watch_concurrency,
            )

        report = asyncio.run(run_watch())

        print(
            json.dumps(
                {
                    "block_number": report.block_number,
                    "changed": report.changed,
                    "became_contracts": report.became_contracts,
                    "newly_verified": report.newly_verified,
                    "changes": {
                        addr: [c.key for c in changes]
                        for addr, changes in sorted(report.changes.items())
                    },
                },
                indent=2,
            )
        )

        if report.has_changes:
            console.warning("drift detected, re-run discovery")
            return EXIT_CHANGED
        console.success("no changes")
        return 0

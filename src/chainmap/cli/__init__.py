"""chainmap CLI - discover and watch contract deployments.

Uses tyro for type-driven CLI generation from dataclasses.
"""

from __future__ import annotations

from typing import Annotated

import tyro

from chainmap.cli.commands.crawl import Crawl
from chainmap.cli.commands.watch import Watch

_Crawl = Annotated[Crawl, tyro.conf.subcommand("crawl")]
_Watch = Annotated[Watch, tyro.conf.subcommand("watch")]

Command = _Crawl | _Watch


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""
    from chainmap.errors import ChainmapError
    from chainmap.logging_config import configure_logging

    configure_logging()

    try:
        cmd = tyro.cli(
            Command,
            prog="chainmap",
            description="Discover and watch smart-contract deployments.",
            args=argv,
        )
        return cmd.run()
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1
    except KeyboardInterrupt:
        return 130
    except ChainmapError as e:
        from chainmap import console

        console.error(str(e))
        return 1

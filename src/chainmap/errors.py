"""Exception types raised by chainmap.

Recoverable per-field problems are never raised: they travel as data in a
contract's ``errors`` map. Everything here is a failure the caller has to
handle.
"""

from __future__ import annotations

from collections.abc import Mapping

# key under which template conflicts are recorded in ContractAnalysis.errors
TEMPLATE_ERROR_KEY = "@template"


class ChainmapError(Exception):
    """Base class for chainmap failures."""


class InvalidAddressError(ChainmapError, ValueError):
    """A value could not be normalized into an account address."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"invalid address: {value!r}")


class ConfigError(ChainmapError):
    """A discovery configuration or chain-state file is unusable."""


class CollaboratorError(ChainmapError):
    """A chain reader, proxy resolver or source registry call failed.

    Collaborators decide whether a failure is local to one address or
    systemic (e.g. the RPC endpoint is unreachable). A systemic failure
    aborts a whole crawl; anything else only fails the affected address.
    """

    def __init__(self, message: str, *, systemic: bool = False):
        self.systemic = systemic
        super().__init__(message)


class WatchModeInconsistency(ChainmapError):
    """Re-extraction produced errors that the baseline record did not have.

    This means the configured fields no longer match the on-chain shape,
    so no meaningful changed/unchanged answer exists.
    """

    def __init__(self, address: str, errors: Mapping[str, str]):
        self.address = address
        self.errors = dict(errors)
        keys = ", ".join(sorted(self.errors))
        super().__init__(
            f"watch mode re-extraction for {address} produced new errors "
            f"({keys})"
        )

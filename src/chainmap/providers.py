"""Interfaces of the collaborators the analyzer depends on.

Chain access, proxy heuristics, source retrieval, field extraction and the
template library live outside chainmap. Anything implementing these
protocols can be plugged into ``AddressAnalyzer``; ``chainmap.offline``
ships a recorded-state implementation.

Collaborators signal failures by raising (ideally ``CollaboratorError``);
per-field extraction problems are returned in ``ExtractionResult.errors``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from chainmap.address import Address
from chainmap.analysis import IMMUTABLE, SourceBundle, Upgradeability

if TYPE_CHECKING:
    from chainmap.overrides import ContractOverrides


@dataclass(frozen=True)
class DeploymentInfo:
    timestamp: int | None = None
    block_number: int | None = None


@dataclass(frozen=True)
class ProxyDetails:
    implementations: list[Address] = field(default_factory=list)
    relatives: list[Address] = field(default_factory=list)
    upgradeability: Upgradeability = IMMUTABLE


@dataclass(frozen=True)
class ContractSources:
    name: str
    is_verified: bool
    abi: list[str] = field(default_factory=list)
    abis: dict[Address, list[str]] = field(default_factory=dict)
    source_bundles: list[SourceBundle] = field(default_factory=list)


@dataclass(frozen=True)
class FieldResult:
    """Raw outcome of extracting one field, before values/errors split."""

    field: str
    value: Any = None
    error: str | None = None
    ignore_relative: bool = False


@dataclass(frozen=True)
class ExtractionResult:
    results: list[FieldResult] = field(default_factory=list)
    values: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class ChainReader(Protocol):
    async def code_at(self, address: Address, block_number: int) -> bytes:
        """Deployed bytecode at ``block_number`` (empty for accounts)."""
        ...

    async def deployment_info(self, address: Address) -> DeploymentInfo | None:
        """Deployment timestamp/block, or None when unknown."""
        ...


@runtime_checkable
class ProxyResolver(Protocol):
    async def detect_proxy(
        self,
        address: Address,
        block_number: int,
        proxy_type_hint: str | None = None,
    ) -> ProxyDetails | None:
        """Proxy wiring for ``address``, or None for non-proxies."""
        ...


@runtime_checkable
class SourceRegistry(Protocol):
    async def sources(
        self, address: Address, implementations: Sequence[Address]
    ) -> ContractSources:
        """Verification status, merged ABI and source bundles."""
        ...

    def relevant_abi(
        self,
        abis: Mapping[Address, list[str]],
        address: Address,
        implementations: Sequence[Address],
        ignore_list: Sequence[str],
    ) -> list[str]:
        """ABI entries watch mode should re-read, minus ignored methods."""
        ...


@runtime_checkable
class FieldExtractor(Protocol):
    async def execute(
        self,
        address: Address,
        abi: list[str],
        overrides: ContractOverrides | None,
        block_number: int,
    ) -> ExtractionResult: ...


@runtime_checkable
class TemplateLibrary(Protocol):
    def match_by_shape(self, sources: ContractSources) -> dict[str, Any]:
        """Templates whose shape matches, keyed by name."""
        ...

    def apply_template(
        self, overrides: ContractOverrides, template: str
    ) -> ContractOverrides:
        """Return ``overrides`` layered over the template's configuration."""
        ...

"""Collaborators backed by a recorded chain-state document.

A ``ChainState`` JSON file captures, for one block, what the chain reader,
proxy resolver, source registry and field extractor would return for each
address, plus the template library. ``StaticChain`` and
``StaticTemplateLibrary`` serve those recordings so crawls and watch
checks can be reproduced without network access.

Field extraction over a recording:

- every no-argument ABI function is read from ``values`` by name;
- fields named in ``overrides.fields`` are read too; a handler of type
  ``constant`` returns its ``value``, type ``call`` reads ``method``
  (default: the field name);
- ``ignore_methods`` are never read;
- a recorded ``errors`` entry, or a missing value, becomes a per-field
  error.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from chainmap.address import Address, normalize_address, normalize_all
from chainmap.analysis import SourceBundle, Upgradeability
from chainmap.analyzer import AddressAnalyzer
from chainmap.errors import CollaboratorError, ConfigError
from chainmap.overrides import ContractOverrides, merge_overrides
from chainmap.providers import (
    ContractSources,
    DeploymentInfo,
    ExtractionResult,
    FieldResult,
    ProxyDetails,
)
from chainmap.watch import WatchModeDetector

_NO_ARG_FUNCTION = re.compile(r"^function\s+(\w+)\(\s*\)")


def abi_function_name(entry: str) -> str | None:
    """Name of a human-readable ABI entry taking no arguments, else None."""
    match = _NO_ARG_FUNCTION.match(entry.strip())
    return match.group(1) if match else None


def shape_hash(files: Mapping[str, str]) -> str:
    """Hash identifying a source bundle's shape, independent of file order."""
    h = hashlib.sha256()
    for name in sorted(files):
        h.update(files[name].encode("utf-8"))
    return "0x" + h.hexdigest()


class RecordedDeployment(BaseModel):
    timestamp: int | None = None
    block_number: int | None = None


class RecordedProxy(BaseModel):
    type: str
    implementations: list[str] = Field(default_factory=list)
    relatives: list[str] = Field(default_factory=list)
    values: dict[str, Any] = Field(default_factory=dict)


class RecordedAddress(BaseModel):
    """Everything recorded about one address. ``code == "0x"`` is an account."""

    code: str = "0x"
    name: str = ""
    verified: bool = True
    abi: list[str] = Field(default_factory=list)
    sources: dict[str, str] = Field(default_factory=dict)
    deployment: RecordedDeployment | None = None
    proxy: RecordedProxy | None = None
    values: dict[str, Any] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)

    @field_validator("code")
    @classmethod
    def _check_hex(cls, value: str) -> str:
        if not value.startswith("0x"):
            raise ValueError("code must be 0x-prefixed hex")
        bytes.fromhex(value[2:])
        return value


class RecordedTemplate(BaseModel):
    shapes: list[str] = Field(default_factory=list)
    overrides: ContractOverrides = Field(default_factory=ContractOverrides)


class ChainState(BaseModel):
    block_number: int = Field(ge=0)
    addresses: dict[str, RecordedAddress] = Field(default_factory=dict)
    templates: dict[str, RecordedTemplate] = Field(default_factory=dict)
    # lookups for these raise CollaboratorError (simulated RPC faults)
    unavailable: list[str] = Field(default_factory=list)

    @field_validator("addresses")
    @classmethod
    def _normalize_keys(
        cls, value: dict[str, RecordedAddress]
    ) -> dict[str, RecordedAddress]:
        return {normalize_address(k): v for k, v in value.items()}

    @field_validator("unavailable")
    @classmethod
    def _normalize_unavailable(cls, value: list[str]) -> list[str]:
        return normalize_all(value)


def load_chain_state(path: Path) -> ChainState:
    """Read a ChainState JSON file.

    Raises:
        ConfigError: if the file is missing, not JSON, or invalid.
    """
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"cannot read chain state {path}: {e}") from e
    try:
        return ChainState.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid chain state {path}:\n{e}") from e


class StaticChain:
    """Chain reader, proxy resolver, source registry and field extractor
    serving a ChainState recording."""

    def __init__(self, state: ChainState):
        self.state = state
        self._unavailable = set(state.unavailable)

    def _record(self, address: Address) -> RecordedAddress | None:
        address = normalize_address(address)
        if address in self._unavailable:
            raise CollaboratorError(f"lookup failed for {address}")
        return self.state.addresses.get(address)

    async def code_at(self, address: Address, block_number: int) -> bytes:
        record = self._record(address)
        if record is None:
            return b""
        return bytes.fromhex(record.code[2:])

    async def deployment_info(self, address: Address) -> DeploymentInfo | None:
        record = self._record(address)
        if record is None or record.deployment is None:
            return None
        return DeploymentInfo(
            timestamp=record.deployment.timestamp,
            block_number=record.deployment.block_number,
        )

    async def detect_proxy(
        self,
        address: Address,
        block_number: int,
        proxy_type_hint: str | None = None,
    ) -> ProxyDetails | None:
        record = self._record(address)
        if record is None or record.proxy is None:
            return None
        if proxy_type_hint == "immutable":
            return None
        proxy = record.proxy
        return ProxyDetails(
            implementations=normalize_all(proxy.implementations),
            relatives=normalize_all(proxy.relatives),
            upgradeability=Upgradeability(
                type=proxy_type_hint or proxy.type, values=dict(proxy.values)
            ),
        )

    async def sources(
        self, address: Address, implementations: Sequence[Address]
    ) -> ContractSources:
        record = self._record(address)
        if record is None:
            raise CollaboratorError(f"no recording for {address}")

        owners: list[tuple[Address, RecordedAddress]] = [
            (normalize_address(address), record)
        ]
        for impl in implementations:
            impl_record = self._record(impl)
            if impl_record is None:
                raise CollaboratorError(
                    f"no recording for implementation {impl}"
                )
            owners.append((normalize_address(impl), impl_record))

        is_verified = all(r.verified for _, r in owners)
        abis = {addr: list(r.abi) for addr, r in owners if r.verified}
        abi = list(
            dict.fromkeys(e for entries in abis.values() for e in entries)
        )
        bundles = [
            SourceBundle(address=addr, name=r.name, files=dict(r.sources))
            for addr, r in owners
            if r.verified and r.sources
        ]
        # a proxy is named after its (latest) implementation
        name = owners[-1][1].name or record.name

        return ContractSources(
            name=name,
            is_verified=is_verified,
            abi=abi,
            abis=abis,
            source_bundles=bundles,
        )

    def relevant_abi(
        self,
        abis: Mapping[Address, list[str]],
        address: Address,
        implementations: Sequence[Address],
        ignore_list: Sequence[str],
    ) -> list[str]:
        ignored = set(ignore_list)
        entries: dict[str, None] = {}
        for owner in (address, *implementations):
            for entry in abis.get(owner, []):
                if abi_function_name(entry) not in ignored:
                    entries.setdefault(entry, None)
        return list(entries)

    async def execute(
        self,
        address: Address,
        abi: list[str],
        overrides: ContractOverrides | None,
        block_number: int,
    ) -> ExtractionResult:
        record = self._record(address)
        if record is None:
            raise CollaboratorError(f"no recording for {address}")
        overrides = overrides or ContractOverrides()

        names = dict.fromkeys(
            name for name in map(abi_function_name, abi) if name is not None
        )
        names.update(dict.fromkeys(overrides.fields))
        ignored = set(overrides.ignore_methods)

        results: list[FieldResult] = []
        for name in sorted(names):
            if name in ignored:
                continue
            field = overrides.fields.get(name)
            value, error = self._resolve(
                record, name, field.handler if field is not None else None
            )
            results.append(
                FieldResult(
                    field=name,
                    value=value,
                    error=error,
                    ignore_relative=(
                        field.ignore_relative if field is not None else False
                    ),
                )
            )

        return ExtractionResult(
            results=results,
            values={r.field: r.value for r in results if r.error is None},
            errors={r.field: r.error for r in results if r.error is not None},
        )

    def _resolve(
        self,
        record: RecordedAddress,
        name: str,
        handler: dict[str, Any] | None,
    ) -> tuple[Any, str | None]:
        method = name
        if handler is not None:
            kind = handler.get("type")
            if kind == "constant":
                return handler.get("value"), None
            if kind != "call":
                return None, f"Unknown handler type: {kind}"
            method = handler.get("method", name)

        if method in record.errors:
            return None, record.errors[method]
        if method not in record.values:
            return None, f"No value recorded for {method}"
        return record.values[method], None


class StaticTemplateLibrary:
    """Template library over ``ChainState.templates``."""

    def __init__(self, templates: Mapping[str, RecordedTemplate]):
        self.templates = dict(templates)

    def match_by_shape(self, sources: ContractSources) -> dict[str, Any]:
        hashes = {
            shape_hash(bundle.files)
            for bundle in sources.source_bundles
            if bundle.files
        }
        return {
            name: {"shapes": sorted(hashes.intersection(t.shapes))}
            for name, t in self.templates.items()
            if hashes.intersection(t.shapes)
        }

    def apply_template(
        self, overrides: ContractOverrides, template: str
    ) -> ContractOverrides:
        if template not in self.templates:
            raise ConfigError(f"unknown template: {template}")
        return merge_overrides(self.templates[template].overrides, overrides)


def analyzer_for(state: ChainState) -> AddressAnalyzer:
    chain = StaticChain(state)
    return AddressAnalyzer(
        chain, chain, chain, chain, StaticTemplateLibrary(state.templates)
    )


def detector_for(state: ChainState) -> WatchModeDetector:
    chain = StaticChain(state)
    return WatchModeDetector(
        chain, chain, chain, StaticTemplateLibrary(state.templates)
    )

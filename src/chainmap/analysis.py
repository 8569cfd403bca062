"""Analysis records produced for each discovered address."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Union

from chainmap.address import Address

# decoded field value: scalars, addresses (as str) and nested containers
ContractValue = Union[
    str, int, bool, None, list["ContractValue"], dict[str, "ContractValue"]
]


class TemplateReason(str, Enum):
    """Which resolution path picked a contract's template."""

    EXPLICIT_OVERRIDE = "explicit-override"
    REFERRER_SUGGESTED = "referrer-suggested"
    SHAPE_MATCHED = "shape-matched"


@dataclass(frozen=True)
class ExtendedTemplate:
    template: str
    reason: TemplateReason


@dataclass(frozen=True)
class Upgradeability:
    """How (and by whom) a contract can be upgraded.

    ``type`` is the proxy flavour reported by the proxy resolver, or
    ``immutable`` for non-proxies. ``values`` holds resolver-specific
    details such as admin addresses.
    """

    type: str = "immutable"
    values: dict[str, Any] = field(default_factory=dict)


IMMUTABLE = Upgradeability()


@dataclass(frozen=True)
class SourceBundle:
    """Verified source files for one address (proxy or implementation)."""

    address: Address
    name: str
    files: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AccountAnalysis:
    """An address with no deployed code. Terminal."""

    address: Address
    kind: Literal["account"] = "account"

    @property
    def relatives(self) -> dict[Address, frozenset[str]]:
        return {}


@dataclass(frozen=True)
class ContractAnalysis:
    address: Address
    name: str
    is_verified: bool
    upgradeability: Upgradeability = IMMUTABLE
    implementations: tuple[Address, ...] = ()
    values: dict[str, ContractValue] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    abis: dict[Address, list[str]] = field(default_factory=dict)
    source_bundles: tuple[SourceBundle, ...] = ()
    relatives: dict[Address, frozenset[str]] = field(default_factory=dict)
    derived_name: str | None = None
    deployment_timestamp: int | None = None
    deployment_block_number: int | None = None
    extended_template: ExtendedTemplate | None = None
    ignore_in_watch_mode: tuple[str, ...] = ()
    kind: Literal["contract"] = "contract"


Analysis = AccountAnalysis | ContractAnalysis

"""Graph and flat views over a discovery result.

Edge A -> B exists when B is among A's relatives. The graph may contain
cycles; nothing here walks it recursively.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict
from typing import Any

from chainmap.address import Address
from chainmap.analysis import AccountAnalysis, Analysis, ContractAnalysis


class DiscoveryGraph:
    def __init__(self, analyses: Mapping[Address, Analysis]):
        self._analyses = analyses
        self._edges: dict[Address, list[Address]] = {}
        self._referrers: dict[Address, list[Address]] = {}

        for address in sorted(analyses):
            targets = sorted(analyses[address].relatives)
            self._edges[address] = targets
            for target in targets:
                self._referrers.setdefault(target, []).append(address)

    @property
    def nodes(self) -> list[Address]:
        return sorted(self._analyses)

    def edges(self) -> list[tuple[Address, Address]]:
        return [
            (source, target)
            for source, targets in self._edges.items()
            for target in targets
        ]

    def neighbors(self, address: Address) -> list[Address]:
        return list(self._edges.get(address, []))

    def referrers(self, address: Address) -> list[Address]:
        """Addresses whose relatives include ``address``."""
        return list(self._referrers.get(address, []))

    def unreached(self) -> list[Address]:
        """Relatives that have no analysis (skipped, failed or cut off)."""
        return sorted(
            target for target in self._referrers if target not in self._analyses
        )

    def flatten(self) -> list[dict[str, Any]]:
        """Analyses as JSON-ready dicts, sorted by address."""
        return [analysis_to_dict(self._analyses[a]) for a in self.nodes]


def analysis_to_dict(analysis: Analysis) -> dict[str, Any]:
    if isinstance(analysis, AccountAnalysis):
        return {"kind": analysis.kind, "address": analysis.address}
    if not isinstance(analysis, ContractAnalysis):
        raise TypeError(f"not an analysis record: {analysis!r}")

    data: dict[str, Any] = {
        "kind": analysis.kind,
        "address": analysis.address,
        "name": analysis.name,
        "is_verified": analysis.is_verified,
        "upgradeability": asdict(analysis.upgradeability),
        "implementations": list(analysis.implementations),
        "values": analysis.values,
        "relatives": {
            addr: sorted(templates)
            for addr, templates in sorted(analysis.relatives.items())
        },
    }
    if analysis.derived_name is not None:
        data["derived_name"] = analysis.derived_name
    if analysis.deployment_timestamp is not None:
        data["deployment_timestamp"] = analysis.deployment_timestamp
    if analysis.deployment_block_number is not None:
        data["deployment_block_number"] = analysis.deployment_block_number
    if analysis.errors:
        data["errors"] = dict(sorted(analysis.errors.items()))
    if analysis.extended_template is not None:
        data["extended_template"] = {
            "template": analysis.extended_template.template,
            "reason": analysis.extended_template.reason.value,
        }
    if analysis.ignore_in_watch_mode:
        data["ignore_in_watch_mode"] = list(analysis.ignore_in_watch_mode)
    return data

"""Derive the addresses a contract points at, with template suggestions."""

from __future__ import annotations

from collections.abc import Iterable

from chainmap.address import Address, iter_addresses, normalize_address
from chainmap.overrides import ContractOverrides
from chainmap.providers import FieldResult


def relatives_with_suggested_templates(
    results: Iterable[FieldResult],
    overrides: ContractOverrides | None,
    proxy_relatives: Iterable[Address] = (),
    implementations: Iterable[Address] = (),
) -> dict[Address, frozenset[str]]:
    """Collect relatives from field results and proxy wiring.

    A relative suggested by several fields accumulates every suggestion.
    Addresses listed in ``ignore_relatives`` are dropped whichever source
    they came from; field names listed there (or marked
    ``ignore_relative``) are not followed at all.

    Returns:
        Mapping of relative address to the (possibly empty) set of
        template names suggested for it.
    """
    overrides = overrides or ContractOverrides()
    ignored_fields = overrides.ignored_relative_fields()
    ignored_addresses = overrides.ignored_relative_addresses()

    found: dict[Address, set[str]] = {}
    for result in results:
        if result.error is not None or result.ignore_relative:
            continue
        if result.field in ignored_fields:
            continue
        template = overrides.suggested_template(result.field)
        for addr in iter_addresses(result.value):
            suggestions = found.setdefault(addr, set())
            if template is not None:
                suggestions.add(template)

    for addr in (*proxy_relatives, *implementations):
        found.setdefault(normalize_address(addr), set())

    return {
        addr: frozenset(templates)
        for addr, templates in found.items()
        if addr not in ignored_addresses
    }

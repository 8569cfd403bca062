"""Per-contract override configuration.

Every field is optional and its absence is a no-op:

- ``name``: display name; absent means use the on-chain (verified) name.
- ``extends``: template to apply; absent means run automatic resolution
  (referrer suggestions, then shape matching).
- ``proxy_type``: hint passed to proxy detection; absent means detect.
- ``fields``: per-field extraction settings; absent fields are extracted
  from the ABI as-is.
- ``ignore_methods``: ABI methods the field extractor must skip.
- ``ignore_relatives``: field names whose values are not followed, or
  addresses that are never treated as relatives.
- ``ignore_in_watch_mode``: fields excluded from drift comparison.
- ``ignore_discovery``: record the address but never analyze it.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from chainmap.address import Address, is_address, normalize_address


class FieldTarget(BaseModel):
    """What a field's address value points at."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    template: str | None = Field(
        default=None, description="Template suggested for referenced addresses"
    )


class FieldOverride(BaseModel):
    """Extraction settings for a single field."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    handler: dict[str, Any] | None = Field(
        default=None, description="Extractor-specific handler definition"
    )
    target: FieldTarget | None = None
    ignore_relative: bool = Field(
        default=False, description="Do not follow addresses in this field"
    )


class ContractOverrides(BaseModel):
    """Override set for one contract. See module docstring for defaults."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str | None = None
    extends: str | None = None
    proxy_type: str | None = None
    fields: dict[str, FieldOverride] = Field(default_factory=dict)
    ignore_methods: list[str] = Field(default_factory=list)
    ignore_relatives: list[str] = Field(default_factory=list)
    ignore_in_watch_mode: list[str] = Field(default_factory=list)
    ignore_discovery: bool = False

    def suggested_template(self, field_name: str) -> str | None:
        """Template this override set suggests for a field's addresses."""
        override = self.fields.get(field_name)
        if override is None or override.target is None:
            return None
        return override.target.template

    def ignored_relative_fields(self) -> set[str]:
        names = {f for f in self.ignore_relatives if not is_address(f)}
        names.update(
            name for name, field in self.fields.items() if field.ignore_relative
        )
        return names

    def ignored_relative_addresses(self) -> set[Address]:
        return {
            normalize_address(f) for f in self.ignore_relatives if is_address(f)
        }


def _union(base: list[str], top: list[str]) -> list[str]:
    return list(dict.fromkeys([*base, *top]))


def _merge_field(base: FieldOverride, top: FieldOverride) -> FieldOverride:
    return FieldOverride(
        handler=top.handler if top.handler is not None else base.handler,
        target=top.target if top.target is not None else base.target,
        ignore_relative=top.ignore_relative or base.ignore_relative,
    )


def merge_overrides(
    base: ContractOverrides, top: ContractOverrides
) -> ContractOverrides:
    """Layer ``top`` over ``base``.

    Scalars set on ``top`` win, ``fields`` merge per key (``top`` wins per
    attribute) and list settings are unioned. Used to put a contract's own
    overrides on top of a template's.
    """
    fields = dict(base.fields)
    for name, field in top.fields.items():
        fields[name] = (
            _merge_field(fields[name], field) if name in fields else field
        )

    return ContractOverrides(
        name=top.name if top.name is not None else base.name,
        extends=top.extends if top.extends is not None else base.extends,
        proxy_type=(
            top.proxy_type if top.proxy_type is not None else base.proxy_type
        ),
        fields=fields,
        ignore_methods=_union(base.ignore_methods, top.ignore_methods),
        ignore_relatives=_union(base.ignore_relatives, top.ignore_relatives),
        ignore_in_watch_mode=_union(
            base.ignore_in_watch_mode, top.ignore_in_watch_mode
        ),
        ignore_discovery=top.ignore_discovery or base.ignore_discovery,
    )

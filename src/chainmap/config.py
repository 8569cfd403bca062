"""Crawl settings and discovery configuration files."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from chainmap.address import Address, normalize_address
from chainmap.errors import ConfigError
from chainmap.overrides import ContractOverrides

# Environment variable names
ENV_CONCURRENCY = "CHAINMAP_CONCURRENCY"
ENV_MAX_DEPTH = "CHAINMAP_MAX_DEPTH"
ENV_MAX_ADDRESSES = "CHAINMAP_MAX_ADDRESSES"
ENV_WATCH_CONCURRENCY = "CHAINMAP_WATCH_CONCURRENCY"

DEFAULT_CONCURRENCY = 8
DEFAULT_WATCH_CONCURRENCY = 8


def _env_int(name: str) -> int | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value < 1:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class CrawlSettings:
    """Tunables for the crawl engine and watch sweep.

    Environment variables:
        CHAINMAP_CONCURRENCY: concurrent analyses per crawl (default 8)
        CHAINMAP_MAX_DEPTH: hops from a seed to follow (default unlimited)
        CHAINMAP_MAX_ADDRESSES: addresses to analyze (default unlimited)
        CHAINMAP_WATCH_CONCURRENCY: concurrent watch checks (default 8)
    """

    concurrency: int = DEFAULT_CONCURRENCY
    max_depth: int | None = None
    max_addresses: int | None = None
    watch_concurrency: int = DEFAULT_WATCH_CONCURRENCY


def get_crawl_settings() -> CrawlSettings:
    """Build CrawlSettings from the environment."""
    return CrawlSettings(
        concurrency=_env_int(ENV_CONCURRENCY) or DEFAULT_CONCURRENCY,
        max_depth=_env_int(ENV_MAX_DEPTH),
        max_addresses=_env_int(ENV_MAX_ADDRESSES),
        watch_concurrency=(
            _env_int(ENV_WATCH_CONCURRENCY) or DEFAULT_WATCH_CONCURRENCY
        ),
    )


class DiscoveryConfig(BaseModel):
    """Seeds and overrides for one project's discovery.

    ``overrides`` may name any address, not only seeds; it applies
    whenever that address is reached. Limits left unset fall back to
    CrawlSettings.
    """

    name: str = "discovery"
    seeds: list[str] = Field(min_length=1)
    overrides: dict[str, ContractOverrides] = Field(default_factory=dict)
    max_depth: int | None = Field(default=None, ge=0)
    max_addresses: int | None = Field(default=None, ge=1)

    @field_validator("seeds")
    @classmethod
    def _normalize_seeds(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(normalize_address(v) for v in value))

    @field_validator("overrides")
    @classmethod
    def _normalize_override_keys(
        cls, value: dict[str, ContractOverrides]
    ) -> dict[str, ContractOverrides]:
        normalized: dict[str, ContractOverrides] = {}
        for key, overrides in value.items():
            addr = normalize_address(key)
            if addr in normalized:
                raise ValueError(f"duplicate overrides for {addr}")
            normalized[addr] = overrides
        return normalized

    def overrides_for(self, address: Address) -> ContractOverrides | None:
        return self.overrides.get(address)


def load_discovery_config(path: Path) -> DiscoveryConfig:
    """Read a DiscoveryConfig from a JSON file.

    Raises:
        ConfigError: if the file is missing, not JSON, or invalid.
    """
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"cannot read discovery config {path}: {e}") from e
    try:
        return DiscoveryConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid discovery config {path}:\n{e}") from e

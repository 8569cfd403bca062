from chainmap.address import Address, normalize_address
from chainmap.analysis import (
    AccountAnalysis,
    Analysis,
    ContractAnalysis,
    ExtendedTemplate,
    TemplateReason,
    Upgradeability,
)
from chainmap.analyzer import AddressAnalyzer
from chainmap.engine import CrawlEngine, CrawlSeed, DiscoveryResult
from chainmap.errors import (
    ChainmapError,
    CollaboratorError,
    ConfigError,
    InvalidAddressError,
    WatchModeInconsistency,
)
from chainmap.graph import DiscoveryGraph
from chainmap.overrides import ContractOverrides, FieldOverride, FieldTarget
from chainmap.watch import WatchModeDetector, WatchReport

__all__ = [
    "AccountAnalysis",
    "Address",
    "AddressAnalyzer",
    "Analysis",
    "ChainmapError",
    "CollaboratorError",
    "ConfigError",
    "ContractAnalysis",
    "ContractOverrides",
    "CrawlEngine",
    "CrawlSeed",
    "DiscoveryGraph",
    "DiscoveryResult",
    "ExtendedTemplate",
    "FieldOverride",
    "FieldTarget",
    "InvalidAddressError",
    "TemplateReason",
    "Upgradeability",
    "WatchModeDetector",
    "WatchModeInconsistency",
    "WatchReport",
    "normalize_address",
]

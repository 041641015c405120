from __future__ import annotations

from agentcatalog.models.ledger import (
    PLACEHOLDER_VERSION,
    BatchFailure,
    BatchResult,
    InstalledRecord,
    InstallSpec,
    UpdateStatus,
)
from agentcatalog.models.registry import (
    CatalogEntry,
    CatalogIndex,
    CatalogStats,
    CategoryInfo,
    Compatibility,
    CompatibilityInfo,
    ItemMetadata,
    LocalizedText,
    SearchQuery,
    SortKey,
    Target,
    VersionInfo,
)

__all__ = [
    # registry
    "CatalogIndex",
    "CatalogEntry",
    "CatalogStats",
    "CategoryInfo",
    "Compatibility",
    "CompatibilityInfo",
    "ItemMetadata",
    "LocalizedText",
    "SearchQuery",
    "SortKey",
    "Target",
    "VersionInfo",
    # ledger
    "PLACEHOLDER_VERSION",
    "InstalledRecord",
    "InstallSpec",
    "BatchFailure",
    "BatchResult",
    "UpdateStatus",
]

from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from agentcatalog.errors import InvalidItemIdError

# One or two "/"-separated segments, e.g. "code-reviewer" or "wshobson/code-reviewer"
_ITEM_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*(/[A-Za-z0-9][A-Za-z0-9._-]*)?$")

DEFAULT_AUTHOR = "community"


def validate_item_id(item_id: str) -> str:
    """Return *item_id* stripped, or raise ``InvalidItemIdError`` if it is malformed."""
    item_id = item_id.strip()
    if not _ITEM_ID_RE.match(item_id) or ".." in item_id:
        raise InvalidItemIdError(f"Invalid item ID: {item_id!r}")
    return item_id


def split_item_id(item_id: str) -> tuple[str, str]:
    """Split ``author/name`` into its parts. A bare name belongs to the default author."""
    author, sep, name = item_id.partition("/")
    if sep:
        return author, name
    return DEFAULT_AUTHOR, item_id


class Target(StrEnum):
    """Host tool an item is installed for."""

    CLAUDE_CODE = "claude-code"
    CODEX = "codex"
    COPILOT = "copilot"


class _WireModel(BaseModel):
    """Accepts the catalog's camelCase keys as well as snake_case field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LocalizedText(_WireModel):
    en: str = ""
    zh: str = ""

    def has_language(self, language: str) -> bool:
        """True if the text has non-blank content in *language* (``en`` or ``zh``)."""
        if language not in ("en", "zh"):
            return False
        return bool(getattr(self, language).strip())


class CompatibilityInfo(_WireModel):
    min_version: str = ""
    tested: list[str] = []


class Compatibility(_WireModel):
    """Per-target compatibility blocks. A missing block means unsupported."""

    claude_code: CompatibilityInfo | None = None
    codex: CompatibilityInfo | None = None
    copilot: CompatibilityInfo | None = None

    def for_target(self, target: Target | str) -> CompatibilityInfo | None:
        target = Target(target)
        if target is Target.CLAUDE_CODE:
            return self.claude_code
        if target is Target.CODEX:
            return self.codex
        return self.copilot


class CatalogEntry(_WireModel):
    """Summary record for one item in registry.json. Carries no content."""

    id: str
    name: LocalizedText = LocalizedText()
    description: LocalizedText = LocalizedText()
    author: str = ""
    category: str = ""
    tags: list[str] = []
    latest: str = ""
    versions: list[str] = []
    downloads: int = 0
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    rating_count: int = 0
    license: str = ""
    compatibility: Compatibility = Compatibility()
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CategoryInfo(_WireModel):
    name: LocalizedText = LocalizedText()
    description: LocalizedText = LocalizedText()
    icon: str = ""


class CatalogStats(_WireModel):
    total_downloads: int = 0
    active_users: int = 0
    top_agents: list[str] = []
    recent_updates: list[str] = []


class CatalogIndex(_WireModel):
    """The full remote catalog. Replaced wholesale on re-fetch, never patched."""

    model_config = ConfigDict(frozen=True)

    version: str = ""
    last_updated: datetime | None = None
    total_agents: int = 0
    agents: dict[str, CatalogEntry] = {}
    categories: dict[str, CategoryInfo] = {}
    stats: CatalogStats = CatalogStats()


class VersionInfo(_WireModel):
    # Release dates are not guaranteed to be monotonic with version strings.
    release_date: datetime | None = None
    changes: str = ""
    files: dict[str, str] = {}


class ItemMetadata(_WireModel):
    """Detailed per-item record from agents/{author}/{name}/metadata.json."""

    id: str
    name: LocalizedText = LocalizedText()
    description: LocalizedText = LocalizedText()
    long_description: LocalizedText = LocalizedText()
    author: str = ""
    license: str = ""
    homepage: str = ""
    category: str = ""
    tags: list[str] = []
    compatibility: Compatibility = Compatibility()
    versions: dict[str, VersionInfo] = {}
    latest: str = Field(min_length=1)  # Updates resolve to this; never blank
    downloads: int = 0
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    rating_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SortKey(StrEnum):
    DOWNLOADS = "downloads"
    RATING = "rating"
    NAME = "name"
    UPDATED = "updated"


class SearchQuery(BaseModel):
    text: str = ""
    category: str = ""
    tag: str = ""
    author: str = ""
    compatibility: Target | None = None
    language: str = ""  # "en" or "zh": name or description must be non-blank in it
    sort: str = SortKey.DOWNLOADS.value  # Unknown values fall back to downloads
    limit: int = 0  # <= 0 means unlimited

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

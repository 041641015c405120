"""Registry client: catalog fetch, per-item metadata/content, and search.

The catalog (``registry.json``) and each item's ``metadata.json`` are cached
in separate ``TTLCache`` instances owned by the client. Item content is never
cached; the caller writes it to disk straight away.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from agentcatalog.cache import TTLCache
from agentcatalog.errors import NotFoundError
from agentcatalog.models.registry import (
    CatalogEntry,
    CatalogIndex,
    ItemMetadata,
    SearchQuery,
    SortKey,
    split_item_id,
    validate_item_id,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from agentcatalog.config import CacheSettings, RegistrySettings
    from agentcatalog.fetcher import Fetcher

log = structlog.get_logger()

CATALOG_CACHE_KEY = "registry"


def _metadata_cache_key(item_id: str) -> str:
    return f"metadata:{item_id}"


# ---------------------------------------------------------------------------
# Search helpers (pure)
# ---------------------------------------------------------------------------


def _search_text(entry: CatalogEntry) -> str:
    parts = [entry.name.en, entry.name.zh, entry.description.en, entry.description.zh]
    parts.extend(entry.tags)
    return " ".join(parts).lower()


def matches_query(entry: CatalogEntry, query: SearchQuery) -> bool:
    """True iff *entry* passes every active filter in *query*."""
    if query.category and entry.category != query.category:
        return False
    if query.tag and query.tag not in entry.tags:
        return False
    if query.author and entry.author != query.author:
        return False
    if query.compatibility and entry.compatibility.for_target(query.compatibility) is None:
        return False
    if query.language and not (
        entry.name.has_language(query.language) or entry.description.has_language(query.language)
    ):
        return False
    if query.text and query.text.lower() not in _search_text(entry):
        return False
    return True


def _updated_key(entry: CatalogEntry) -> float:
    return entry.updated_at.timestamp() if entry.updated_at else float("-inf")


_SORT_KEYS: dict[str, tuple[Callable[[CatalogEntry], object], bool]] = {
    SortKey.DOWNLOADS: (lambda e: e.downloads, True),
    SortKey.RATING: (lambda e: e.rating, True),
    SortKey.NAME: (lambda e: e.name.en, False),
    SortKey.UPDATED: (_updated_key, True),
}


def sort_entries(entries: Iterable[CatalogEntry], sort: str) -> list[CatalogEntry]:
    """Stable sort by *sort*; unknown or empty keys fall back to downloads."""
    key, reverse = _SORT_KEYS.get(sort, _SORT_KEYS[SortKey.DOWNLOADS])
    return sorted(entries, key=key, reverse=reverse)  # type: ignore[arg-type]


def search_entries(entries: Iterable[CatalogEntry], query: SearchQuery) -> list[CatalogEntry]:
    """Filter, sort, then truncate *entries* according to *query*."""
    results = sort_entries((e for e in entries if matches_query(e, query)), query.sort)
    if query.limit > 0:
        results = results[: query.limit]
    return results


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class RegistryClient:
    """Read-only client for the remote agents registry."""

    def __init__(
        self,
        fetcher: Fetcher,
        settings: RegistrySettings,
        cache_settings: CacheSettings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._base_url = settings.url.rstrip("/")
        self._ttl = settings.cache_ttl_seconds
        sweep_interval = cache_settings.sweep_interval_seconds if cache_settings else 300.0
        self.catalog_cache: TTLCache[CatalogIndex] = TTLCache(
            name="catalog", sweep_interval=sweep_interval, clock=clock
        )
        self.metadata_cache: TTLCache[ItemMetadata] = TTLCache(
            name="metadata", sweep_interval=sweep_interval, clock=clock
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def item_url(self, item_id: str, filename: str) -> str:
        author, name = split_item_id(validate_item_id(item_id))
        return f"{self._base_url}/agents/{author}/{name}/{filename}"

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def fetch_catalog(self) -> CatalogIndex:
        cached = self.catalog_cache.get(CATALOG_CACHE_KEY)
        if cached is not None:
            return cached

        url = f"{self._base_url}/registry.json"
        catalog = await self._fetcher.fetch_json(url, CatalogIndex)
        self.catalog_cache.set(CATALOG_CACHE_KEY, catalog, self._ttl)
        log.info("catalog_fetched", url=url, agents=len(catalog.agents), version=catalog.version)
        return catalog

    async def list_all_items(self) -> list[CatalogEntry]:
        catalog = await self.fetch_catalog()
        return list(catalog.agents.values())

    async def get_entry(self, item_id: str) -> CatalogEntry:
        catalog = await self.fetch_catalog()
        entry = catalog.agents.get(item_id)
        if entry is None:
            raise NotFoundError(
                f"Agent {item_id!r} is not in the registry",
                suggestion="Use search to find the correct id.",
            )
        return entry

    async def search(self, query: SearchQuery) -> list[CatalogEntry]:
        entries = await self.list_all_items()
        results = search_entries(entries, query)
        log.debug("search_complete", text=query.text, sort=query.sort, results=len(results))
        return results

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    async def fetch_item_metadata(self, item_id: str) -> ItemMetadata:
        key = _metadata_cache_key(item_id)
        cached = self.metadata_cache.get(key)
        if cached is not None:
            return cached

        url = self.item_url(item_id, "metadata.json")
        metadata = await self._fetcher.fetch_json(url, ItemMetadata)
        self.metadata_cache.set(key, metadata, self._ttl)
        log.debug("metadata_fetched", item_id=item_id, latest=metadata.latest)
        return metadata

    async def fetch_item_content(self, item_id: str, version: str | None = None) -> str:
        """Download the markdown document for *item_id*.

        The registry serves a single ``agent.md`` per item, so *version* does
        not change the request: whatever is currently published is returned.
        Historical versions are not fetchable.
        """
        url = self.item_url(item_id, "agent.md")
        content = await self._fetcher.fetch_text(url)
        log.debug("content_fetched", item_id=item_id, version=version, size=len(content))
        return content

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def invalidate(self) -> None:
        """Drop cached catalog and metadata so the next call refetches."""
        self.catalog_cache.clear()
        self.metadata_cache.clear()

    def start(self) -> None:
        self.catalog_cache.start()
        self.metadata_cache.start()

    async def aclose(self) -> None:
        await self.catalog_cache.aclose()
        await self.metadata_cache.aclose()

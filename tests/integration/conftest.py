"""Integration test fixtures.

Provides a fully wired AppState built through ``open_app_state`` against a
mocked registry. Catalog and settings fixtures come from tests/conftest.py.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import pytest
import respx

from agentcatalog.state import AppState, open_app_state
from tests.factories import BASE_URL, make_metadata

if TYPE_CHECKING:
    from agentcatalog.config import Settings


@pytest.fixture()
def registry_mock(catalog_payload: dict[str, Any]):
    """A mocked registry serving the sample catalog, metadata and content."""
    with respx.mock(base_url=BASE_URL, assert_all_called=False) as router:
        router.get("/registry.json").mock(return_value=httpx.Response(200, json=catalog_payload))
        for item_id in catalog_payload["agents"]:
            author, _, name = item_id.rpartition("/")
            base = f"/agents/{author or 'community'}/{name}"
            router.get(f"{base}/metadata.json").mock(
                return_value=httpx.Response(200, json=make_metadata(item_id))
            )
            router.get(f"{base}/agent.md").mock(
                return_value=httpx.Response(200, text=f"---\nname: {name}\n---\n")
            )
        yield router


@pytest.fixture()
async def app_state(settings: Settings, registry_mock: respx.MockRouter) -> AppState:
    """Full AppState with its own HTTP client, sweepers running."""
    async with open_app_state(settings) as state:
        yield state

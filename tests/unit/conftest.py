"""Unit-specific fixtures (no real network; HTTP is mocked with respx)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest
import respx

from agentcatalog.cache import TTLCache
from agentcatalog.fetcher import Fetcher
from agentcatalog.installer import Installer
from agentcatalog.ledger import InstallLedger
from agentcatalog.registry import RegistryClient
from tests.factories import BASE_URL

if TYPE_CHECKING:
    from agentcatalog.config import Settings
    from tests.factories import FakeClock


@pytest.fixture()
def cache(clock: FakeClock) -> TTLCache[str]:
    return TTLCache(name="test", sweep_interval=60, clock=clock)


@pytest.fixture()
def router():
    with respx.mock(base_url=BASE_URL, assert_all_called=False) as router:
        yield router


@pytest.fixture()
async def http_client():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture()
def registry(
    http_client: httpx.AsyncClient, settings: Settings, clock: FakeClock
) -> RegistryClient:
    return RegistryClient(Fetcher(http_client), settings.registry, settings.cache, clock=clock)


@pytest.fixture()
def ledger(settings: Settings) -> InstallLedger:
    return InstallLedger(settings.install.directory)


@pytest.fixture()
def installer(registry: RegistryClient, ledger: InstallLedger) -> Installer:
    return Installer(registry, ledger, target="claude-code", max_concurrency=4)

"""Application state: the wired-together components for one process run.

``open_app_state`` is the entry point for the CLI layer. It owns the
lifecycle of everything with background work or open connections: the cache
sweepers are started on entry and stopped on exit, and the HTTP client is
closed if it was created here.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
import structlog

from agentcatalog.config import Settings
from agentcatalog.fetcher import Fetcher, build_http_client
from agentcatalog.installer import Installer
from agentcatalog.ledger import InstallLedger
from agentcatalog.logging_config import configure_logging
from agentcatalog.registry import RegistryClient

log = structlog.get_logger()


@dataclass
class AppState:
    settings: Settings
    http_client: httpx.AsyncClient
    registry: RegistryClient
    ledger: InstallLedger
    installer: Installer
    owns_http_client: bool = True

    async def aclose(self) -> None:
        await self.registry.aclose()
        if self.owns_http_client:
            await self.http_client.aclose()


def build_app_state(
    settings: Settings,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> AppState:
    """Construct every component from *settings*. Starts nothing."""
    owns_http_client = http_client is None
    client = http_client if http_client is not None else build_http_client(settings.registry)
    registry = RegistryClient(Fetcher(client), settings.registry, settings.cache)
    ledger = InstallLedger(settings.install.directory)
    installer = Installer(
        registry,
        ledger,
        target=settings.install.target,
        max_concurrency=settings.install.max_concurrency,
    )
    return AppState(
        settings=settings,
        http_client=client,
        registry=registry,
        ledger=ledger,
        installer=installer,
        owns_http_client=owns_http_client,
    )


@asynccontextmanager
async def open_app_state(
    settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncIterator[AppState]:
    settings = settings if settings is not None else Settings()
    configure_logging(settings.logging)

    state = build_app_state(settings, http_client=http_client)
    state.registry.start()
    log.info(
        "app_started",
        registry=settings.registry.url,
        install_dir=str(state.ledger.install_dir),
        target=state.installer.target.value,
    )
    try:
        yield state
    finally:
        await state.aclose()
        log.info("app_stopped")

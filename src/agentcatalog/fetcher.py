"""HTTP transport for the remote catalog.

Every response is read as UTF-8 text. A non-2xx status or a transport-level
failure (connect error, timeout, ...) becomes a ``TransportError``; a body that
does not validate against the expected model becomes a ``ParseError``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from agentcatalog.errors import ErrorCode, ParseError, TransportError

if TYPE_CHECKING:
    from agentcatalog.config import RegistrySettings

log = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)

_USER_AGENT = "agentcatalog/0.1"


def build_http_client(settings: RegistrySettings | None = None) -> httpx.AsyncClient:
    """Create the shared AsyncClient with the configured request timeout."""
    timeout = settings.request_timeout_seconds if settings is not None else 30.0
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        headers={"User-Agent": _USER_AGENT},
    )


class Fetcher:
    """Thin wrapper mapping httpx outcomes onto agentcatalog errors."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def fetch_text(self, url: str) -> str:
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            log.warning("fetch_failed", url=url, error=str(exc))
            raise TransportError(
                f"Request to {url} failed: {exc}",
                suggestion="Check your network connection and the registry URL.",
            ) from exc

        if response.status_code == 404:
            raise TransportError(
                f"{url} returned 404",
                code=ErrorCode.NOT_FOUND_REMOTE,
                suggestion="Check the item id; it may not exist in the registry.",
                recoverable=False,
            )
        if not response.is_success:
            log.warning("fetch_bad_status", url=url, status=response.status_code)
            raise TransportError(f"{url} returned HTTP {response.status_code}")

        response.encoding = "utf-8"
        return response.text

    async def fetch_json(self, url: str, model: type[M]) -> M:
        """Fetch *url* and validate the body as *model*."""
        body = await self.fetch_text(url)
        try:
            return model.model_validate_json(body)
        except ValidationError as exc:
            log.warning("parse_failed", url=url, errors=exc.error_count())
            raise ParseError(f"Could not parse response from {url}: {exc}") from exc

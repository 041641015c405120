"""Shared fixtures: a sample catalog, a fake clock and test settings."""

from __future__ import annotations

from typing import Any

import pytest
import structlog

from agentcatalog.config import Settings
from tests.factories import BASE_URL, FakeClock, make_entry


@pytest.fixture()
def catalog_payload() -> dict[str, Any]:
    entries = [
        make_entry(
            "code-reviewer",
            name="Code Reviewer",
            tags=["review", "quality"],
            downloads=5,
            rating=4.5,
            updated_at="2024-03-01T00:00:00Z",
            description="Reviews pull requests",
        ),
        make_entry(
            "alice/test-writer",
            name="Test Writer",
            author="alice",
            tags=["testing", "quality"],
            downloads=50,
            rating=3.9,
            updated_at="2024-05-01T00:00:00Z",
            description="Writes unit tests",
        ),
        make_entry(
            "bob/doc-helper",
            name="Doc Helper",
            author="bob",
            category="documentation",
            tags=["docs"],
            downloads=20,
            rating=4.8,
            updated_at="2024-01-15T00:00:00Z",
            description="Drafts READMEs",
            description_zh="文档助手",
        ),
    ]
    return {
        "version": "1.0",
        "lastUpdated": "2024-05-01T00:00:00Z",
        "totalAgents": len(entries),
        "agents": {e["id"]: e for e in entries},
        "categories": {
            "development": {"name": {"en": "Development", "zh": "开发"}, "icon": "code"},
        },
        "stats": {"totalDownloads": 75, "activeUsers": 4, "topAgents": ["alice/test-writer"]},
    }


@pytest.fixture(autouse=True)
def _reset_logging():
    """Undo structlog configuration installed by open_app_state."""
    yield
    structlog.reset_defaults()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        registry={"url": BASE_URL, "cache_ttl_seconds": 300},
        install={"directory": str(tmp_path / "agents"), "max_concurrency": 4},
        logging={"level": "WARNING"},
    )

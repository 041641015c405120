from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from agentcatalog.models.registry import validate_item_id

PLACEHOLDER_VERSION = "latest"


class InstalledRecord(BaseModel):
    """One row of the local ledger. Unique by ``id``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    version: str = PLACEHOLDER_VERSION
    installed_at: datetime
    path: str


class InstallSpec(BaseModel):
    """An item id plus an optional pinned version."""

    id: str
    version: str | None = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return validate_item_id(v)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    def __str__(self) -> str:
        return f"{self.id}@{self.version}" if self.version else self.id


class BatchFailure(BaseModel):
    id: str
    code: str
    message: str


class BatchResult(BaseModel):
    """Summary of a batch install/update. The caller decides the exit status."""

    succeeded: list[str] = []
    skipped: list[str] = []
    failed: list[BatchFailure] = []
    planned: dict[str, str] = {}  # id -> install path, dry runs only

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def failed_ids(self) -> list[str]:
        return [f.id for f in self.failed]

    @property
    def ok(self) -> bool:
        return not self.failed


class UpdateStatus(BaseModel):
    id: str
    installed_version: str
    latest_version: str

    @property
    def updatable(self) -> bool:
        # Versions are opaque strings: any difference counts as drift.
        return self.installed_version != self.latest_version

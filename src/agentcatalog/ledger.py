"""Installation ledger: the local record of installed items.

The ledger is one JSON array stored at ``{install_dir}/.registry.json``. It
is the sole source of truth for "installed": a content file on disk without
a matching row is not installed.

Every mutation is read-modify-write of the whole file, run inside a single
lock and finished with an atomic rename, so concurrent installs of different
ids in one process never lose a write and a crash never leaves a half-written
ledger behind. There is no cross-process locking.
"""

from __future__ import annotations

import os
import tempfile
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from pydantic import TypeAdapter, ValidationError

from agentcatalog.errors import FilesystemError, LedgerCorruptError, NotFoundError
from agentcatalog.models.ledger import PLACEHOLDER_VERSION, InstalledRecord
from agentcatalog.models.registry import validate_item_id

if TYPE_CHECKING:
    from collections.abc import Callable

log = structlog.get_logger()

_RECORDS = TypeAdapter(list[InstalledRecord])


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InstallLedger:
    """Durable bookkeeping of installed items, backed by a single JSON file."""

    LEDGER_FILE = ".registry.json"

    def __init__(
        self,
        install_dir: str | Path,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.install_dir = Path(install_dir).expanduser().absolute()
        self.ledger_path = self.install_dir / self.LEDGER_FILE
        self._now = now
        self._lock = threading.Lock()

    def resolve_path(self, item_id: str) -> Path:
        """Content file location for *item_id*. Touches neither ledger nor disk."""
        return self.install_dir / f"{validate_item_id(item_id)}.md"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_installed(self) -> list[InstalledRecord]:
        try:
            raw = self.ledger_path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise FilesystemError(f"Could not read ledger {self.ledger_path}: {exc}") from exc

        try:
            records = _RECORDS.validate_json(raw)
        except ValidationError as exc:
            raise LedgerCorruptError(
                f"Ledger {self.ledger_path} is not valid: {exc}",
                suggestion="Fix or remove the file by hand; it is never reset automatically.",
            ) from exc

        seen: set[str] = set()
        for record in records:
            if record.id in seen:
                raise LedgerCorruptError(
                    f"Ledger {self.ledger_path} lists {record.id!r} more than once",
                    suggestion="Remove the duplicate row by hand.",
                )
            seen.add(record.id)
        return records

    def get_installed(self, item_id: str) -> InstalledRecord:
        for record in self.list_installed():
            if record.id == item_id:
                return record
        raise NotFoundError(f"Agent {item_id!r} is not installed")

    def is_installed(self, item_id: str) -> bool:
        return any(record.id == item_id for record in self.list_installed())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def record_install(
        self,
        item_id: str,
        path: str | Path,
        version: str | None = None,
    ) -> InstalledRecord:
        """Upsert the row for *item_id*.

        An existing row keeps its position and gets a fresh timestamp and
        path (and *version*, when given). A new row is appended, with the
        placeholder version when none is given.
        """
        item_id = validate_item_id(item_id)
        path = str(Path(path).absolute())

        with self._lock:
            records = self.list_installed()
            now = self._now()
            for index, existing in enumerate(records):
                if existing.id == item_id:
                    update: dict[str, object] = {"installed_at": now, "path": path}
                    if version:
                        update["version"] = version
                    record = existing.model_copy(update=update)
                    records[index] = record
                    break
            else:
                record = InstalledRecord(
                    id=item_id,
                    version=version or PLACEHOLDER_VERSION,
                    installed_at=now,
                    path=path,
                )
                records.append(record)
            self._write(records)

        log.info("ledger_recorded_install", item_id=item_id, version=record.version, path=path)
        return record

    def record_uninstall(self, item_id: str) -> bool:
        """Remove the row for *item_id*. Returns False (and writes nothing) if absent."""
        with self._lock:
            records = self.list_installed()
            remaining = [record for record in records if record.id != item_id]
            if len(remaining) == len(records):
                return False
            self._write(remaining)

        log.info("ledger_recorded_uninstall", item_id=item_id)
        return True

    def _write(self, records: list[InstalledRecord]) -> None:
        """Replace the ledger file with *records* via temp file + rename."""
        payload = _RECORDS.dump_json(records, by_alias=True, indent=2)
        tmp_name: str | None = None
        try:
            self.install_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "wb",
                dir=self.install_dir,
                prefix=".registry.",
                suffix=".tmp",
                delete=False,
            ) as fh:
                tmp_name = fh.name
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.ledger_path)
        except OSError as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise FilesystemError(f"Could not write ledger {self.ledger_path}: {exc}") from exc

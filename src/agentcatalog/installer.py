"""Batch install, update and uninstall of catalog items.

Each item runs the same sequence: metadata -> version -> compatibility ->
content -> write file -> ledger upsert. Items in a batch run concurrently
(bounded by ``max_concurrency``), while the sequence for any one id is
serialized by a per-id lock. A failure in one item is recorded in the
``BatchResult`` and never stops the rest of the batch.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
from collections import Counter
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from agentcatalog.errors import (
    AgentCatalogError,
    CompatibilityError,
    FilesystemError,
    InvalidItemIdError,
    NotFoundError,
)
from agentcatalog.models.ledger import (
    BatchFailure,
    BatchResult,
    InstalledRecord,
    InstallSpec,
    UpdateStatus,
)
from agentcatalog.models.registry import Target

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
    from pathlib import Path

    from agentcatalog.ledger import InstallLedger
    from agentcatalog.registry import RegistryClient

log = structlog.get_logger()


def parse_install_spec(spec: str) -> InstallSpec:
    """Parse ``id`` or ``id@version``. The last ``@`` separates the version."""
    spec = spec.strip()
    at = spec.rfind("@")
    if 0 < at < len(spec) - 1:
        item_id, version = spec[:at], spec[at + 1 :]
    else:
        item_id, version = spec, None
    try:
        return InstallSpec(id=item_id, version=version)
    except ValidationError as exc:
        raise InvalidItemIdError(f"Invalid install spec {spec!r}") from exc


def parse_spec_lines(text: str) -> list[str]:
    """Spec strings from a list file: one per line, ``#`` comments and blanks skipped."""
    specs = []
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            specs.append(line)
    return specs


def _resolve_target(target: Target | str) -> Target:
    try:
        return Target(target)
    except ValueError as exc:
        known = ", ".join(t.value for t in Target)
        raise CompatibilityError(f"Unknown target {target!r} (expected one of: {known})") from exc


def _write_content(path: Path, content: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise FilesystemError(f"Could not write {path}: {exc}") from exc


def _remove_content(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        raise FilesystemError(f"Could not remove {path}: {exc}") from exc


class Installer:
    """Drives install/update/uninstall against a registry and a ledger."""

    def __init__(
        self,
        registry: RegistryClient,
        ledger: InstallLedger,
        *,
        target: Target | str = Target.CLAUDE_CODE,
        max_concurrency: int = 4,
    ) -> None:
        self._registry = registry
        self._ledger = ledger
        self._target = _resolve_target(target)
        self._max_concurrency = max(1, max_concurrency)
        # Per-id locks, dropped again once no task holds or awaits them
        self._item_locks: dict[str, asyncio.Lock] = {}
        self._item_lock_users: Counter[str] = Counter()

    @property
    def target(self) -> Target:
        return self._target

    @contextlib.asynccontextmanager
    async def _item_lock(self, item_id: str) -> AsyncIterator[None]:
        lock = self._item_locks.get(item_id)
        if lock is None:
            lock = self._item_locks[item_id] = asyncio.Lock()
        self._item_lock_users[item_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._item_lock_users[item_id] -= 1
            if not self._item_lock_users[item_id]:
                del self._item_lock_users[item_id]
                del self._item_locks[item_id]

    # ------------------------------------------------------------------
    # Single item
    # ------------------------------------------------------------------

    async def install_one(
        self, spec: InstallSpec | str, target: Target | str | None = None
    ) -> InstalledRecord:
        if isinstance(spec, str):
            spec = parse_install_spec(spec)
        resolved_target = _resolve_target(target) if target is not None else self._target

        async with self._item_lock(spec.id):
            metadata = await self._registry.fetch_item_metadata(spec.id)
            version = spec.version or metadata.latest
            if spec.version and metadata.versions and spec.version not in metadata.versions:
                raise NotFoundError(
                    f"Version {spec.version!r} of {spec.id!r} is not published",
                    suggestion=f"Latest is {metadata.latest!r}.",
                )

            if metadata.compatibility.for_target(resolved_target) is None:
                raise CompatibilityError(
                    f"Agent {spec.id!r} does not declare support for {resolved_target.value}"
                )

            if version != metadata.latest:
                # The registry only serves the current agent.md.
                log.warning(
                    "install_version_not_latest",
                    item_id=spec.id,
                    requested=version,
                    latest=metadata.latest,
                )
            content = await self._registry.fetch_item_content(spec.id, version)

            path = self._ledger.resolve_path(spec.id)
            await asyncio.to_thread(_write_content, path, content)
            record = await asyncio.to_thread(
                self._ledger.record_install, spec.id, path, version=version
            )

        log.info(
            "install_complete",
            item_id=spec.id,
            version=version,
            target=resolved_target.value,
        )
        return record

    async def uninstall(self, item_id: str) -> InstalledRecord:
        """Remove the content file and the ledger row for *item_id*."""
        async with self._item_lock(item_id):
            record = self._ledger.get_installed(item_id)
            # Always the canonical location, whatever path the ledger row claims
            path = self._ledger.resolve_path(item_id)
            await asyncio.to_thread(_remove_content, path)
            await asyncio.to_thread(self._ledger.record_uninstall, item_id)

        log.info("uninstall_complete", item_id=item_id)
        return record

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def install_batch(
        self,
        specs: Iterable[InstallSpec | str],
        target: Target | str | None = None,
        dry_run: bool = False,
    ) -> BatchResult:
        resolved_target = _resolve_target(target) if target is not None else self._target
        specs = list(specs)

        if dry_run:
            return self._plan(specs)

        async def install(spec: InstallSpec | str) -> str:
            await self.install_one(spec, resolved_target)
            return "ok"

        jobs = [(_spec_id(spec), functools.partial(install, spec)) for spec in specs]
        result = await self._run_batch(jobs)
        log.info(
            "install_batch_complete",
            succeeded=result.success_count,
            failed=result.failure_count,
        )
        return result

    async def install_all(
        self, target: Target | str | None = None, dry_run: bool = False
    ) -> BatchResult:
        """Install every item currently listed in the catalog."""
        entries = await self._registry.list_all_items()
        return await self.install_batch(sorted(e.id for e in entries), target, dry_run)

    async def check_updates(self) -> list[UpdateStatus]:
        """Compare every ledger row with the latest published version.

        Items whose metadata cannot be fetched are left out of the result.
        """
        records = self._ledger.list_installed()
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def check(record: InstalledRecord) -> UpdateStatus | None:
            async with semaphore:
                try:
                    metadata = await self._registry.fetch_item_metadata(record.id)
                except AgentCatalogError as exc:
                    log.warning("update_check_skipped", item_id=record.id, error=exc.message)
                    return None
            return UpdateStatus(
                id=record.id,
                installed_version=record.version,
                latest_version=metadata.latest,
            )

        statuses = await asyncio.gather(*(check(r) for r in records))
        return [s for s in statuses if s is not None]

    async def update_batch(
        self, ids: Iterable[str] | None = None, dry_run: bool = False
    ) -> BatchResult:
        """Reinstall drifted items at their latest version.

        With *ids* of None, every installed item is considered; an empty
        iterable updates nothing. Ids that are not installed fail with
        NOT_FOUND; items already current are skipped. A dry run still fetches
        metadata but writes nothing: drifted ids land in ``planned``.
        """
        installed = {record.id: record for record in self._ledger.list_installed()}
        wanted = list(ids) if ids is not None else list(installed)
        planned: dict[str, str] = {}

        async def update(item_id: str) -> str:
            record = installed.get(item_id)
            if record is None:
                raise NotFoundError(f"Agent {item_id!r} is not installed")
            metadata = await self._registry.fetch_item_metadata(item_id)
            if metadata.latest == record.version:
                log.debug("update_not_needed", item_id=item_id, version=record.version)
                return "skipped"
            if dry_run:
                planned[item_id] = str(self._ledger.resolve_path(item_id))
                return "planned"
            log.info("update_started", item_id=item_id, old=record.version, new=metadata.latest)
            try:
                spec = InstallSpec(id=item_id, version=metadata.latest)
            except ValidationError as exc:
                raise InvalidItemIdError(f"Ledger holds an invalid id {item_id!r}") from exc
            await self.install_one(spec)
            return "ok"

        result = await self._run_batch([(i, functools.partial(update, i)) for i in wanted])
        result.planned = {i: planned[i] for i in wanted if i in planned}
        log.info(
            "update_batch_complete",
            updated=result.success_count,
            planned=len(result.planned),
            skipped=len(result.skipped),
            failed=result.failure_count,
            dry_run=dry_run,
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _plan(self, specs: list[InstallSpec | str]) -> BatchResult:
        result = BatchResult()
        for spec in specs:
            try:
                parsed = parse_install_spec(spec) if isinstance(spec, str) else spec
                result.planned[parsed.id] = str(self._ledger.resolve_path(parsed.id))
            except AgentCatalogError as exc:
                result.failed.append(_failure(_spec_id(spec), exc))
        return result

    async def _run_batch(
        self, jobs: list[tuple[str, Callable[[], Awaitable[str]]]]
    ) -> BatchResult:
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def run(
            item_id: str, job: Callable[[], Awaitable[str]]
        ) -> tuple[str, str | AgentCatalogError]:
            # "ok", "skipped", "planned", or the error that failed the item
            async with semaphore:
                try:
                    return item_id, await job()
                except AgentCatalogError as exc:
                    log.warning(
                        "item_failed", item_id=item_id, code=exc.code.value, error=exc.message
                    )
                    return item_id, exc

        outcomes = await asyncio.gather(*(run(item_id, job) for item_id, job in jobs))

        result = BatchResult()
        for item_id, outcome in outcomes:
            if isinstance(outcome, AgentCatalogError):
                result.failed.append(_failure(item_id, outcome))
            elif outcome == "skipped":
                result.skipped.append(item_id)
            elif outcome == "planned":
                continue
            else:
                result.succeeded.append(item_id)
        return result


def _spec_id(spec: InstallSpec | str) -> str:
    """Best-effort id for reporting, even when *spec* does not parse."""
    if isinstance(spec, InstallSpec):
        return spec.id
    try:
        return parse_install_spec(spec).id
    except InvalidItemIdError:
        return spec.strip()


def _failure(item_id: str, exc: AgentCatalogError) -> BatchFailure:
    return BatchFailure(id=item_id, code=exc.code.value, message=exc.message)

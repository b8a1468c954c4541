"""Restore tracked files from another machine's backup slots.

Every machine pushes into its own slot ``<dotfiles>/<app>/<machine>/<file>``
and registers itself in ``<dotfiles>/.dotsync/machines.json``::

    {
      "machines": [
        {"name": "laptop", "last_sync": "2026-01-01T00:00:00+00:00"}
      ]
    }

The registry lives inside the dotfiles store, so it is committed along
with the slots and every clone sees the same machine list.

``Restorer`` maps another machine's slots back onto this machine's
configured paths.  Before a local file is replaced, a copy can be kept
under ``<state_dir>/restore/<app>/<file>.<YYYYmmdd-HHMMSS>.bak``.
Restores do not touch the baselines: the next sync sees the restored
file as a local change and backs it up into this machine's slot.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from dotsync.config_schema import DotsyncConfig
from dotsync.file_handler import copy_path, should_skip, write_text_atomic
from dotsync.sync.hashing import HashCache
from dotsync.sync.mapper import SlotMapper, TrackedFile
from dotsync.sync.models import (
    Machine,
    RestorableFile,
    RestoredFile,
    RestoreFailure,
    RestoreResult,
)
from dotsync.sync.state import StateParseError

logger = logging.getLogger(__name__)

MACHINES_FILE = Path(".dotsync") / "machines.json"


class MachineNotFoundError(Exception):
    """The requested source machine is not in the registry."""


class RestoreError(Exception):
    """A single file cannot be restored (untracked, or no backup slot)."""


class MachineRegistry:
    """Read and update the machines registered in a dotfiles store.

    Args:
        dotfiles_root: Root of the dotfiles store.
    """

    def __init__(self, dotfiles_root: Path) -> None:
        self.path = Path(dotfiles_root) / MACHINES_FILE

    def load(self) -> list[Machine]:
        """Return registered machines in registration order.

        Raises:
            StateParseError: If the registry exists but is malformed.
            OSError: If the registry exists but cannot be read.
        """
        if not self.path.exists():
            return []
        with open(self.path, encoding="utf-8") as fh:
            try:
                data = json.load(fh)
            except json.JSONDecodeError as exc:
                raise StateParseError(
                    f"Corrupt machines file {self.path}: {exc}"
                ) from exc
        if not isinstance(data, dict) or not isinstance(
            data.get("machines", []), list
        ):
            raise StateParseError(
                f"Corrupt machines file {self.path}: expected "
                f"an object with a 'machines' list"
            )
        try:
            return [Machine.model_validate(m) for m in data.get("machines", [])]
        except ValidationError as exc:
            raise StateParseError(
                f"Corrupt machines file {self.path}: {exc}"
            ) from exc

    def get(self, name: str) -> Machine | None:
        for machine in self.load():
            if machine.name == name:
                return machine
        return None

    def touch(self, name: str) -> Machine:
        """Register *name* (or refresh its ``last_sync``) and save."""
        now = datetime.now(timezone.utc).isoformat()
        machines = self.load()
        entry = Machine(name=name, last_sync=now)
        for i, machine in enumerate(machines):
            if machine.name == name:
                machines[i] = entry
                break
        else:
            machines.append(entry)

        document = {"machines": [m.model_dump() for m in machines]}
        write_text_atomic(self.path, json.dumps(document, indent=2))
        logger.debug("Registered machine %s in %s", name, self.path)
        return entry


class Restorer:
    """Copy another machine's backup slots over this machine's files.

    Args:
        mapper: Resolves tracked files and slot paths.
        registry: Machines registered in the dotfiles store.
        restore_dir: Where replaced local files are kept.
        hash_cache: Digest cache used to compare slots with local files.
    """

    def __init__(
        self,
        mapper: SlotMapper,
        registry: MachineRegistry,
        restore_dir: Path,
        hash_cache: HashCache | None = None,
    ) -> None:
        self.mapper = mapper
        self.registry = registry
        self.restore_dir = Path(restore_dir)
        self.hash_cache = hash_cache or HashCache()

    @classmethod
    def from_config(cls, config: DotsyncConfig) -> Restorer:
        mapper = SlotMapper(config)
        return cls(
            mapper=mapper,
            registry=MachineRegistry(mapper.dotfiles_root),
            restore_dir=Path(config.state_dir).expanduser() / "restore",
        )

    def list_machines(self) -> list[Machine]:
        return self.registry.load()

    def restorable_files(self, machine: str) -> list[RestorableFile]:
        """Tracked files for which *machine* has a backup slot.

        Raises:
            MachineNotFoundError: If *machine* is not registered.
            OSError: If a slot or local file cannot be read.
        """
        self._require_machine(machine)
        files: list[RestorableFile] = []
        for tracked in self.mapper.tracked_files():
            source = self._source(machine, tracked)
            if not source.exists():
                continue
            local_exists = tracked.local_path.exists()
            identical = local_exists and (
                self.hash_cache.digest(source)
                == self.hash_cache.digest(tracked.local_path)
            )
            mtime = datetime.fromtimestamp(
                source.stat().st_mtime, tz=timezone.utc
            )
            files.append(
                RestorableFile(
                    app_id=tracked.app_id,
                    rel_path=tracked.rel_path,
                    source_path=str(source),
                    local_path=str(tracked.local_path),
                    size=_slot_size(source),
                    modified_at=mtime.isoformat(),
                    local_exists=local_exists,
                    identical=identical,
                )
            )
        return files

    def restore_file(
        self,
        machine: str,
        app_id: str,
        name: str,
        keep_current: bool = True,
    ) -> RestoredFile:
        """Restore one tracked file from *machine*'s backup slot.

        Raises:
            MachineNotFoundError: If *machine* is not registered.
            RestoreError: If the file is untracked or has no slot there.
            OSError: If a copy fails.  A failed copy leaves local as it was.
        """
        self._require_machine(machine)
        tracked = self.mapper.find(app_id, name)
        if tracked is None:
            raise RestoreError(f"{app_id}/{name} is not tracked")
        return self._restore(machine, tracked, keep_current)

    def restore(
        self,
        machine: str,
        targets: list[str] | None = None,
        keep_current: bool = True,
    ) -> RestoreResult:
        """Restore several ``<app>/<file>`` targets from *machine*.

        With no *targets*, every restorable file that differs from local (or
        is missing locally) is restored.  Failures are collected per file.

        Raises:
            MachineNotFoundError: If *machine* is not registered.
        """
        self._require_machine(machine)
        if targets is None:
            targets = [
                f"{f.app_id}/{f.rel_path}"
                for f in self.restorable_files(machine)
                if not f.identical
            ]

        restored: list[RestoredFile] = []
        failures: list[RestoreFailure] = []
        for target in targets:
            app_id, _, name = target.partition("/")
            if not app_id or not name:
                failures.append(
                    RestoreFailure(
                        target=target,
                        error=f"invalid file name: {target}",
                    )
                )
                continue
            try:
                restored.append(
                    self.restore_file(machine, app_id, name, keep_current)
                )
            except (RestoreError, OSError) as exc:
                logger.error("Restore of %s failed: %s", target, exc)
                failures.append(RestoreFailure(target=target, error=str(exc)))

        return RestoreResult(
            source_machine=machine, restored=restored, failures=failures
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_machine(self, machine: str) -> None:
        if self.registry.get(machine) is None:
            raise MachineNotFoundError(f"source machine '{machine}' not found")

    def _source(self, machine: str, tracked: TrackedFile) -> Path:
        return self.mapper.backup_path(
            tracked.app_id, tracked.rel_path, machine
        )

    def _restore(
        self, machine: str, tracked: TrackedFile, keep_current: bool
    ) -> RestoredFile:
        source = self._source(machine, tracked)
        if not source.exists():
            raise RestoreError(
                f"{machine} has no backup of "
                f"{tracked.app_id}/{tracked.rel_path}"
            )

        local = tracked.local_path
        saved: Path | None = None
        if keep_current and local.exists():
            stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
            saved = (
                self.restore_dir
                / tracked.app_id
                / f"{tracked.rel_path}.{stamp}.bak"
            )
            copy_path(local, saved)

        copy_path(source, local)
        self.hash_cache.invalidate(local)
        logger.info(
            "Restored %s/%s from %s",
            tracked.app_id,
            tracked.rel_path,
            machine,
            extra={"app_id": tracked.app_id, "rel_path": tracked.rel_path},
        )
        return RestoredFile(
            app_id=tracked.app_id,
            rel_path=tracked.rel_path,
            source_path=str(source),
            local_path=str(local),
            saved_copy=str(saved) if saved is not None else None,
        )


def _slot_size(path: Path) -> int:
    if not path.is_dir():
        return path.stat().st_size
    return sum(
        p.stat().st_size
        for p in path.rglob("*")
        if p.is_file()
        and not any(should_skip(part) for part in p.relative_to(path).parts)
    )

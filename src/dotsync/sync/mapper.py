"""Config-driven slot mapper for tracked files.

Translates each configured file path into the replica slots it owns in
the dotfiles store, and resolves the storage mode of every file.

Mode resolution (first match wins):

1. **File override** -- ``file_modes["<app>/<filename>"]``, or the
   configured path itself as the key.
2. **App mode** -- ``apps[<app>].mode``.
3. **Default** -- ``default_mode``.

Slot layout:

- backup slot: ``<dotfiles>/<app>/<machine>/<filename>``
- sync slot:   ``<dotfiles>/<app>/<filename>``
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from dotsync.config_schema import DotsyncConfig, SyncMode


@dataclass(frozen=True)
class TrackedFile:
    """One configured file: owning app, slot name and local path."""

    app_id: str
    rel_path: str
    local_path: Path


class SlotMapper:
    """Map tracked files to their modes and dotfiles slots.

    Args:
        config: Validated configuration.
    """

    def __init__(self, config: DotsyncConfig) -> None:
        self._config = config
        self.dotfiles_root = Path(config.dotfiles_path).expanduser()

    @property
    def machine_name(self) -> str:
        return self._config.machine_name

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def mode_for(self, app_id: str, file_path: str) -> SyncMode:
        """Return the effective mode of *file_path* within *app_id*."""
        return self.effective_mode(app_id, file_path)[0]

    def effective_mode(
        self, app_id: str, file_path: str
    ) -> tuple[SyncMode, str]:
        """Return ``(mode, source)`` where source is file, app or default."""
        overrides = self._config.file_modes
        key = _file_key(app_id, file_path)
        if key in overrides:
            return overrides[key], "file"
        if file_path in overrides:
            return overrides[file_path], "file"

        app = self._config.apps.get(app_id)
        if app is not None and app.mode is not None:
            return app.mode, "app"

        return self._config.default_mode, "default"

    def is_synced(self, app_id: str, file_path: str) -> bool:
        return self.mode_for(app_id, file_path) == SyncMode.SYNC

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    def backup_path(
        self, app_id: str, file_path: str, machine: str | None = None
    ) -> Path:
        """Per-machine slot: ``<dotfiles>/<app>/<machine>/<filename>``.

        *machine* defaults to this machine.
        """
        return (
            self.dotfiles_root
            / app_id
            / (machine or self.machine_name)
            / _basename(file_path)
        )

    def sync_path(self, app_id: str, file_path: str) -> Path:
        """Shared slot: ``<dotfiles>/<app>/<filename>``."""
        return self.dotfiles_root / app_id / _basename(file_path)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def tracked_files(self) -> list[TrackedFile]:
        """All configured files, in config order."""
        tracked: list[TrackedFile] = []
        for app_id, app in self._config.apps.items():
            for raw in app.files:
                tracked.append(
                    TrackedFile(
                        app_id=app_id,
                        rel_path=_basename(raw),
                        local_path=Path(os.path.expanduser(raw)),
                    )
                )
        return tracked

    def find(self, app_id: str, name: str) -> TrackedFile | None:
        """Look up a tracked file by app and filename (or configured path)."""
        for tracked in self.tracked_files():
            if tracked.app_id != app_id:
                continue
            if name in (tracked.rel_path, str(tracked.local_path)):
                return tracked
            if Path(os.path.expanduser(name)) == tracked.local_path:
                return tracked
        return None


def _basename(file_path: str) -> str:
    return PurePosixPath(file_path.rstrip("/")).name


def _file_key(app_id: str, file_path: str) -> str:
    """Normalise a path to the ``<app>/<filename>`` override key."""
    if file_path.startswith(f"{app_id}/"):
        return file_path
    return f"{app_id}/{_basename(file_path)}"

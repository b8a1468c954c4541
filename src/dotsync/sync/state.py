"""Baseline persistence layer.

Manages the JSON document that records, for every tracked file, the
digests of both replicas at the moment of the last successful sync.
The document lives at ``<state_dir>/sync_state.json``::

    {
      "last_sync": "2026-01-01T00:00:00+00:00",
      "files": {
        "zsh/.zshrc": {
          "app_id": "zsh",
          "rel_path": ".zshrc",
          "local_hash": "...",
          "remote_hash": "...",
          "synced_at": "2026-01-01T00:00:00+00:00"
        }
      }
    }

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **No auto-repair** -- a document that fails to parse raises
  ``StateParseError``; a missing document is simply an empty store.
* **Deferred errors** -- ``set()``/``remove()`` only mutate memory; I/O
  errors surface from ``save()``.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from dotsync.file_handler import write_text_atomic
from dotsync.sync.models import BaselineRecord, FileIdentity

logger = logging.getLogger(__name__)

STATE_FILENAME = "sync_state.json"


class StateParseError(Exception):
    """The baseline document exists but cannot be parsed."""


class SyncState:
    """Load, save, and query per-file baselines.

    Args:
        state_dir: Directory holding ``sync_state.json``
            (typically ``~/.config/dotsync``).
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = Path(state_dir)
        self._files: dict[str, BaselineRecord] = {}
        self._last_sync: str | None = None

    @property
    def path(self) -> Path:
        return self._state_dir / STATE_FILENAME

    @property
    def last_sync(self) -> str | None:
        return self._last_sync

    def __len__(self) -> int:
        return len(self._files)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load baselines from disk, replacing in-memory state.

        Raises:
            StateParseError: If the document is not valid baseline JSON.
            OSError: If the document exists but cannot be read.
        """
        path = self.path
        if not path.exists():
            logger.debug("No baseline document at %s", path)
            self._files = {}
            self._last_sync = None
            return

        with open(path, encoding="utf-8") as fh:
            try:
                data = json.load(fh)
            except json.JSONDecodeError as exc:
                raise StateParseError(
                    f"Corrupt baseline document {path}: {exc}"
                ) from exc

        if not isinstance(data, dict):
            raise StateParseError(
                f"Corrupt baseline document {path}: root is "
                f"{type(data).__name__}, expected object"
            )
        raw_files = data.get("files") or {}
        if not isinstance(raw_files, dict):
            raise StateParseError(
                f"Corrupt baseline document {path}: 'files' is not an object"
            )

        files: dict[str, BaselineRecord] = {}
        for key, raw in raw_files.items():
            try:
                files[key] = BaselineRecord.model_validate(raw)
            except ValidationError as exc:
                raise StateParseError(
                    f"Corrupt baseline entry '{key}' in {path}: {exc}"
                ) from exc

        self._files = files
        self._last_sync = data.get("last_sync")
        logger.debug("Loaded %d baselines from %s", len(files), path)

    def save(self) -> None:
        """Persist baselines atomically, creating ``state_dir`` if needed."""
        document = {
            "last_sync": self._last_sync,
            "files": {
                key: record.model_dump()
                for key, record in sorted(self._files.items())
            },
        }

        write_text_atomic(self.path, json.dumps(document, indent=2))

    # ------------------------------------------------------------------
    # Baseline helpers
    # ------------------------------------------------------------------

    def get(self, identity: FileIdentity) -> BaselineRecord | None:
        """Return the baseline for *identity*, or ``None`` if absent."""
        return self._files.get(identity.key)

    def set(
        self, identity: FileIdentity, local_hash: str, remote_hash: str
    ) -> BaselineRecord:
        """Upsert the baseline for *identity* stamped with the current time."""
        now = datetime.now(timezone.utc).isoformat()
        record = BaselineRecord(
            app_id=identity.app_id,
            rel_path=identity.rel_path,
            local_hash=local_hash,
            remote_hash=remote_hash,
            synced_at=now,
        )
        self._files[identity.key] = record
        self._last_sync = now
        return record

    def remove(self, identity: FileIdentity) -> None:
        """Remove the baseline for *identity*. No-op if not present."""
        self._files.pop(identity.key, None)

    def clear(self) -> None:
        """Forget every baseline (testing / reset)."""
        self._files = {}
        self._last_sync = None

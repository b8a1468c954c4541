"""Detection pass: digest both replicas of every tracked file and classify.

Each tracked file is turned into a ``FileInfo`` snapshot.  An I/O error
while digesting one file is recorded on that file (``state=None``) and
never stops the pass.
"""

from __future__ import annotations

import logging
from pathlib import Path

from dotsync.sync.classifier import classify
from dotsync.sync.hashing import HashCache
from dotsync.sync.mapper import SlotMapper, TrackedFile
from dotsync.sync.models import DetectionResult, FileInfo
from dotsync.sync.state import SyncState

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Classify tracked files against the persisted baseline.

    Args:
        mapper: Resolves modes and slot paths.
        hash_cache: Digest cache shared with the engine.
        state: Loaded baseline store (read only here).
    """

    def __init__(
        self,
        mapper: SlotMapper,
        hash_cache: HashCache,
        state: SyncState,
    ) -> None:
        self.mapper = mapper
        self.hash_cache = hash_cache
        self.state = state

    def describe(self, tracked: TrackedFile) -> FileInfo:
        """Build the path-only ``FileInfo`` of *tracked* (no digests)."""
        synced = self.mapper.is_synced(tracked.app_id, tracked.rel_path)
        sync_path = None
        if synced:
            sync_path = str(
                self.mapper.sync_path(tracked.app_id, tracked.rel_path)
            )
        return FileInfo(
            app_id=tracked.app_id,
            rel_path=tracked.rel_path,
            local_path=str(tracked.local_path),
            backup_path=str(
                self.mapper.backup_path(tracked.app_id, tracked.rel_path)
            ),
            sync_path=sync_path,
            synced=synced,
        )

    def detect_file(self, tracked: TrackedFile) -> FileInfo:
        """Digest and classify a single tracked file."""
        info = self.describe(tracked)
        try:
            local_hash = self._digest_if_exists(info.local_path)
            remote_hash = self._digest_if_exists(info.remote_path)
        except OSError as exc:
            logger.warning(
                "Cannot read %s/%s: %s", info.app_id, info.rel_path, exc
            )
            return info.model_copy(update={"error": str(exc)})

        state = classify(
            local_hash, remote_hash, self.state.get(info.identity)
        )
        logger.debug(
            "%s/%s classified as %s",
            info.app_id,
            info.rel_path,
            state.value,
        )
        return info.model_copy(
            update={
                "local_hash": local_hash,
                "remote_hash": remote_hash,
                "state": state,
            }
        )

    def detect_all(
        self, tracked: list[TrackedFile] | None = None
    ) -> DetectionResult:
        """Classify *tracked* (default: every configured file) in order."""
        if tracked is None:
            tracked = self.mapper.tracked_files()
        return DetectionResult(
            files=[self.detect_file(t) for t in tracked]
        )

    def _digest_if_exists(self, path: str) -> str | None:
        p = Path(path)
        if not p.exists():
            return None
        return self.hash_cache.digest(p)

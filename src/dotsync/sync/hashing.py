"""Content digesting with mtime/size-gated memoization.

``HashCache`` computes SHA-256 digests of tracked files and directories
and remembers them keyed by path.  A cached digest is reused only while
the live ``(mtime, size)`` of the path matches the values seen when it
was computed; any difference triggers a recompute.  Content changes that
preserve both mtime and size are not detected -- callers that overwrite
a file must call ``invalidate()``.

Directory digests hash the sorted ``(relative path, bytes)`` pairs of all
descendant regular files, skipping the deny-list in
``dotsync.file_handler``.  For directories the cache gate is a stat-only
fingerprint of the whole tree (newest mtime, total size, file count).

Walking is strict by default: an unreadable entry raises ``OSError``.
Pass ``skip_unreadable=True`` to opt in to a best-effort walk that logs
and skips such entries.
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path

from dotsync.file_handler import should_skip

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class _CacheEntry:
    fingerprint: tuple[int, int, int]
    digest: str


class HashCache:
    """Thread-safe digest cache owned by one sync run.

    Args:
        skip_unreadable: Best-effort directory walks (see module docs).
    """

    def __init__(self, skip_unreadable: bool = False) -> None:
        self.skip_unreadable = skip_unreadable
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def digest(self, path: str | Path) -> str:
        """Return the digest of *path*, served from cache when unchanged.

        Raises:
            OSError: If the path cannot be stat'ed or read.
        """
        key = str(path)
        p = Path(path)
        fingerprint = self._fingerprint(p)

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.fingerprint == fingerprint:
                self.hits += 1
                return entry.digest

        # Hash outside the lock so unrelated paths don't serialise.
        if p.is_dir():
            value = compute_dir_hash(p, self.skip_unreadable)
        else:
            value = compute_file_hash(p)

        with self._lock:
            self.misses += 1
            self._entries[key] = _CacheEntry(fingerprint, value)
        return value

    def invalidate(self, path: str | Path) -> None:
        """Drop the cached digest for *path* (no-op if absent)."""
        with self._lock:
            self._entries.pop(str(path), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def _fingerprint(self, path: Path) -> tuple[int, int, int]:
        """``(mtime_ns, size, file_count)`` of a file or whole tree."""
        st = path.stat()
        if not path.is_dir():
            return st.st_mtime_ns, st.st_size, 1

        newest = st.st_mtime_ns
        total = 0
        count = 0
        for file_path in _walk_files(path, self.skip_unreadable):
            try:
                fst = file_path.stat()
            except OSError:
                if not self.skip_unreadable:
                    raise
                logger.warning("Skipping unreadable %s", file_path)
                continue
            newest = max(newest, fst.st_mtime_ns)
            total += fst.st_size
            count += 1
        return newest, total, count


def compute_file_hash(path: Path) -> str:
    """SHA-256 hex digest of a file's bytes (uncached)."""
    hasher = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def compute_dir_hash(path: Path, skip_unreadable: bool = False) -> str:
    """SHA-256 hex digest over the sorted files of a directory (uncached).

    Each file contributes its POSIX relative path and its bytes, so the
    result does not depend on filesystem enumeration order.
    """
    hasher = hashlib.sha256()
    rel_paths = sorted(
        f.relative_to(path).as_posix()
        for f in _walk_files(path, skip_unreadable)
    )
    for rel in rel_paths:
        try:
            with open(path / rel, "rb") as fh:
                data = fh.read()
        except OSError:
            if not skip_unreadable:
                raise
            logger.warning("Skipping unreadable %s", path / rel)
            continue
        hasher.update(rel.encode("utf-8"))
        hasher.update(b"\0")
        hasher.update(data)
        hasher.update(b"\0")
    return hasher.hexdigest()


def compute_hash(path: Path, skip_unreadable: bool = False) -> str:
    """Uncached digest of a file or directory."""
    if path.is_dir():
        return compute_dir_hash(path, skip_unreadable)
    return compute_file_hash(path)


def quick_hash(digest: str) -> str:
    """First 8 characters of a digest, for display."""
    return digest[:8]


def _walk_files(root: Path, skip_unreadable: bool) -> list[Path]:
    """Regular files under *root*, minus deny-listed names."""

    def _on_error(exc: OSError) -> None:
        if not skip_unreadable:
            raise exc
        logger.warning("Skipping unreadable %s: %s", exc.filename, exc)

    files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames[:] = [d for d in dirnames if not should_skip(d)]
        for name in filenames:
            if should_skip(name):
                continue
            full = Path(dirpath) / name
            if full.is_file():
                files.append(full)
    return files

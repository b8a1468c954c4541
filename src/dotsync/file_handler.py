"""File handler module: encoding-aware read/write and replica copies.

Provides the filesystem infrastructure for the reconciliation engine:
charset-aware text reads for diffing and merging, and all-or-nothing
copies between a local file and its dotfiles slots.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

logger = logging.getLogger(__name__)

# Names never hashed or copied inside tracked directories.
SKIP_NAMES: frozenset[str] = frozenset(
    {
        ".DS_Store",
        ".git",
        "node_modules",
        "__pycache__",
        ".cache",
        "Cache",
    }
)


def should_skip(name: str) -> bool:
    """Return ``True`` if *name* is on the fixed deny-list."""
    return name in SKIP_NAMES


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # ascii is a strict subset of utf-8
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)


def write_file(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Write content to a file, creating parent directories as needed.

    Args:
        path: Path to the output file.
        content: String content to write.
        encoding: Encoding to use (default: utf-8).

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    path.write_bytes(encoded)
    return len(encoded)


def write_text_atomic(path: Path, content: str) -> None:
    """Replace *path* with UTF-8 *content* via a temp file and ``os.replace``.

    Readers see either the old or the new document, never a partial one.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        Path(tmp_path).unlink(missing_ok=True)
        raise


# =============================================================================
# Replica copies
# =============================================================================


def copy_file(src: Path, dst: Path) -> None:
    """Copy *src* to *dst* byte-for-byte, keeping permission bits.

    The source is copied into a temp file beside *dst* first and then
    atomically moved into place, so a failure leaves *dst* untouched.

    Raises:
        OSError: If the source cannot be read or the destination written.
    """
    dst.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(dst.parent), prefix=f".{dst.name}.", suffix=".tmp"
    )
    os.close(fd)
    try:
        shutil.copyfile(src, tmp_path)
        shutil.copymode(src, tmp_path)
        os.replace(tmp_path, dst)
    except BaseException:
        Path(tmp_path).unlink(missing_ok=True)
        raise


def copy_tree(src: Path, dst: Path) -> None:
    """Copy directory *src* to *dst*, skipping deny-listed names.

    The tree is staged in a sibling temp directory and swapped in only
    after the whole copy succeeded.

    Raises:
        OSError: If any part of the copy fails.
    """
    dst.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(
        tempfile.mkdtemp(dir=str(dst.parent), prefix=f".{dst.name}.")
    )
    try:
        shutil.copytree(
            src,
            staging,
            ignore=lambda _dir, names: [n for n in names if should_skip(n)],
            dirs_exist_ok=True,
        )
        shutil.copymode(src, staging)
        if dst.is_dir() and not dst.is_symlink():
            shutil.rmtree(dst)
        elif dst.exists():
            dst.unlink()
        os.replace(staging, dst)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise


def copy_path(src: Path, dst: Path) -> None:
    """Copy a file or directory replica from *src* to *dst*."""
    if src.is_dir():
        logger.debug("Copying tree %s -> %s", src, dst)
        copy_tree(src, dst)
    else:
        logger.debug("Copying file %s -> %s", src, dst)
        copy_file(src, dst)

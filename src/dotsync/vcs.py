"""Thin git wrapper for the dotfiles store.

All operations shell out to the ``git`` executable with ``-C <path>``.
A directory that is not a repository (or a machine without git) turns
every operation into a no-op returning ``False``, so the engine can run
in local-only mode.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 60


class VersioningError(Exception):
    """A git subcommand failed."""

    def __init__(self, args: list[str], returncode: int, stderr: str) -> None:
        self.command = args
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"git {' '.join(args)} failed: {detail}")


class VersioningUnavailableError(VersioningError):
    """The ``git`` executable could not be found."""

    def __init__(self) -> None:
        super().__init__([], 127, "git executable not found")


class GitRepo:
    """Git operations on one working tree.

    Args:
        path: Root of the dotfiles store.
        timeout: Seconds allowed per git invocation.
    """

    def __init__(self, path: Path, timeout: int = _DEFAULT_TIMEOUT) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self._available: bool | None = None

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    def is_repo(self) -> bool:
        """Return ``True`` if ``path`` is inside a git work tree."""
        if self._available is None:
            try:
                out = self._git("rev-parse", "--is-inside-work-tree")
            except VersioningUnavailableError:
                logger.warning(
                    "git not found; running without version control"
                )
                self._available = False
            except VersioningError:
                self._available = False
            else:
                self._available = out.strip() == "true"
        return self._available

    def has_remote(self) -> bool:
        if not self.is_repo():
            return False
        return bool(self._git("remote").strip())

    def has_changes(self) -> bool:
        """Return ``True`` if the work tree has uncommitted changes."""
        if not self.is_repo():
            return False
        return bool(self._git("status", "--porcelain").strip())

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def fetch(self) -> bool:
        """Fetch from the default remote.

        Best-effort: a failure (offline, auth) is logged and reported as
        ``False`` rather than raised.
        """
        if not self.has_remote():
            return False
        try:
            self._git("fetch")
        except VersioningError as exc:
            logger.warning("Fetch failed, continuing offline: %s", exc)
            return False
        return True

    def add_all(self) -> bool:
        """Stage every change in the work tree (``git add -A``).

        Raises:
            VersioningError: If git reports a failure.
        """
        if not self.is_repo():
            return False
        self._git("add", "-A")
        return True

    def commit(self, message: str) -> bool:
        """Commit staged changes; ``False`` when there is nothing to commit.

        Raises:
            VersioningError: If git reports a failure.
        """
        if not self.is_repo():
            return False
        if not self._git("diff", "--cached", "--name-only").strip():
            logger.info("Nothing staged; skipping commit")
            return False
        self._git("commit", "-m", message)
        logger.info("Committed: %s", message)
        return True

    def push(self) -> bool:
        """Push to the default remote.

        Raises:
            VersioningError: If git reports a failure.
        """
        if not self.has_remote():
            return False
        self._git("push")
        return True

    def pull(self) -> bool:
        """Pull from the default remote.

        Raises:
            VersioningError: If git reports a failure.
        """
        if not self.has_remote():
            return False
        self._git("pull")
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _git(self, *args: str) -> str:
        cmd = ["git", "-C", str(self.path), *args]
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=True,
            )
        except FileNotFoundError as exc:
            raise VersioningUnavailableError() from exc
        except subprocess.CalledProcessError as exc:
            raise VersioningError(
                list(args), exc.returncode, exc.stderr or ""
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise VersioningError(
                list(args), -1, f"timed out after {self.timeout}s"
            ) from exc
        return result.stdout

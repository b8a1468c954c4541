"""Tests for the git wrapper.

``subprocess.run`` is patched throughout; no real git is invoked.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from dotsync.vcs import GitRepo, VersioningError, VersioningUnavailableError


def _completed(stdout: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess([], 0, stdout=stdout, stderr="")


class _FakeGit:
    """Dispatches git subcommands to canned outputs or errors."""

    def __init__(self, outputs: dict[str, object] | None = None) -> None:
        self.outputs = {
            "rev-parse": "true\n",
            "remote": "origin\n",
            "diff": "dot_zshrc\n",
        }
        self.outputs.update(outputs or {})
        self.commands: list[list[str]] = []

    def __call__(self, cmd, **kwargs):
        args = cmd[3:]
        self.commands.append(args)
        out = self.outputs.get(args[0], "")
        if isinstance(out, BaseException):
            raise out
        return _completed(out)


class TestProbing:
    def test_is_repo(self):
        fake = _FakeGit()
        with patch("dotsync.vcs.subprocess.run", side_effect=fake) as run:
            repo = GitRepo(Path("/store"))
            assert repo.is_repo()
            assert repo.is_repo()
        assert run.call_count == 1
        cmd = run.call_args.args[0]
        assert cmd[:3] == ["git", "-C", "/store"]

    def test_missing_git_is_not_a_repo(self):
        with patch(
            "dotsync.vcs.subprocess.run", side_effect=FileNotFoundError("git")
        ):
            assert not GitRepo(Path("/store")).is_repo()

    def test_outside_work_tree(self):
        err = subprocess.CalledProcessError(
            128, ["git"], stderr="fatal: not a git repository"
        )
        fake = _FakeGit({"rev-parse": err})
        with patch("dotsync.vcs.subprocess.run", side_effect=fake):
            repo = GitRepo(Path("/store"))
            assert not repo.is_repo()
            assert not repo.has_remote()
            assert not repo.add_all()
            assert not repo.commit("msg")
        assert fake.commands == [["rev-parse", "--is-inside-work-tree"]]

    def test_has_changes(self):
        fake = _FakeGit({"status": " M dot_zshrc\n"})
        with patch("dotsync.vcs.subprocess.run", side_effect=fake):
            assert GitRepo(Path("/store")).has_changes()


class TestOperations:
    def test_fetch_failure_is_not_raised(self):
        err = subprocess.CalledProcessError(
            1, ["git"], stderr="Could not resolve host"
        )
        fake = _FakeGit({"fetch": err})
        with patch("dotsync.vcs.subprocess.run", side_effect=fake):
            assert GitRepo(Path("/store")).fetch() is False

    def test_fetch_without_remote(self):
        fake = _FakeGit({"remote": ""})
        with patch("dotsync.vcs.subprocess.run", side_effect=fake):
            assert GitRepo(Path("/store")).fetch() is False
        assert ["fetch"] not in fake.commands

    def test_commit_with_nothing_staged(self):
        fake = _FakeGit({"diff": ""})
        with patch("dotsync.vcs.subprocess.run", side_effect=fake):
            assert GitRepo(Path("/store")).commit("sync: update configs") is False
        assert not any(c[0] == "commit" for c in fake.commands)

    def test_commit(self):
        fake = _FakeGit()
        with patch("dotsync.vcs.subprocess.run", side_effect=fake):
            repo = GitRepo(Path("/store"))
            assert repo.add_all()
            assert repo.commit("sync: update zsh (1 files)")
        assert ["add", "-A"] in fake.commands
        assert ["commit", "-m", "sync: update zsh (1 files)"] in fake.commands

    def test_commit_failure_raises(self):
        err = subprocess.CalledProcessError(1, ["git"], stderr="hook failed\n")
        fake = _FakeGit({"commit": err})
        with patch("dotsync.vcs.subprocess.run", side_effect=fake):
            with pytest.raises(VersioningError) as exc_info:
                GitRepo(Path("/store")).commit("msg")
        assert exc_info.value.returncode == 1
        assert exc_info.value.command == ["commit", "-m", "msg"]
        assert "hook failed" in str(exc_info.value)

    def test_timeout_raises(self):
        fake = _FakeGit({"push": subprocess.TimeoutExpired(["git"], 5)})
        with patch("dotsync.vcs.subprocess.run", side_effect=fake):
            with pytest.raises(VersioningError, match="timed out"):
                GitRepo(Path("/store"), timeout=5).push()

    def test_pull(self):
        fake = _FakeGit()
        with patch("dotsync.vcs.subprocess.run", side_effect=fake):
            assert GitRepo(Path("/store")).pull()
        assert ["pull"] in fake.commands


class TestErrors:
    def test_unavailable_is_versioning_error(self):
        exc = VersioningUnavailableError()
        assert isinstance(exc, VersioningError)
        assert exc.returncode == 127

    def test_message_falls_back_to_exit_status(self):
        exc = VersioningError(["push"], 1, "")
        assert str(exc) == "git push failed: exit status 1"

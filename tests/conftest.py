"""Shared pytest fixtures for dotsync tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from dotsync.config_schema import AppConfig, DotsyncConfig, SyncMode
from dotsync.sync.engine import SyncEngine
from dotsync.sync.mapper import SlotMapper
from dotsync.sync.state import SyncState
from dotsync.vcs import VersioningError


class FakeRepo:
    """In-memory stand-in for ``GitRepo``.

    Records every call; ``fail_commit`` makes ``commit()`` raise.
    """

    def __init__(self, fail_commit: bool = False) -> None:
        self.fail_commit = fail_commit
        self.calls: list[tuple] = []
        self.commits: list[str] = []

    def is_repo(self) -> bool:
        return True

    def has_remote(self) -> bool:
        return True

    def fetch(self) -> bool:
        self.calls.append(("fetch",))
        return True

    def add_all(self) -> bool:
        self.calls.append(("add_all",))
        return True

    def commit(self, message: str) -> bool:
        self.calls.append(("commit", message))
        if self.fail_commit:
            raise VersioningError(["commit", "-m", message], 1, "hook failed")
        self.commits.append(message)
        return True

    def push(self) -> bool:
        self.calls.append(("push",))
        return True

    def pull(self) -> bool:
        self.calls.append(("pull",))
        return True


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """Directory standing in for the user's home (local replicas)."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def make_config(tmp_path: Path, home: Path):
    """Factory building a config whose paths all live under tmp_path.

    ``apps`` maps app id to ``(mode, [file names under home])``.
    """

    def _make(apps: dict[str, tuple[SyncMode | None, list[str]]], **kw):
        return DotsyncConfig(
            dotfiles_path=str(tmp_path / "dotfiles"),
            machine_name="laptop",
            state_dir=str(tmp_path / "state"),
            apps={
                app_id: AppConfig(
                    mode=mode, files=[str(home / name) for name in names]
                )
                for app_id, (mode, names) in apps.items()
            },
            **kw,
        )

    return _make


@pytest.fixture
def make_engine(tmp_path: Path):
    """Factory building a ``SyncEngine`` with a ``FakeRepo``."""

    def _make(config: DotsyncConfig, repo: FakeRepo | None = None):
        return SyncEngine(
            mapper=SlotMapper(config),
            state=SyncState(tmp_path / "state"),
            repo=repo if repo is not None else FakeRepo(),
        )

    return _make


@pytest.fixture
def fake_repo() -> FakeRepo:
    return FakeRepo()


@pytest.fixture
def failing_repo() -> FakeRepo:
    return FakeRepo(fail_commit=True)

"""Unified configuration schema for dotsync.

Defines Pydantic models for the config structure with dedicated sections
for tracked apps, per-file mode overrides, the editor, and logging.

Usage:
    from dotsync.config_loader import load_hierarchical_config
    from dotsync.config_schema import build_config

    raw = load_hierarchical_config()
    config = build_config(raw)
"""

from __future__ import annotations

import logging
import socket
from enum import Enum

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class SyncMode(str, Enum):
    """Storage mode of a tracked file.

    ``backup`` keeps a per-machine copy only; ``sync`` additionally keeps a
    copy shared by every machine.
    """

    BACKUP = "backup"
    SYNC = "sync"


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class AppConfig(BaseModel):
    """One tracked application and its config files."""

    files: list[str] = Field(
        default_factory=list,
        description="Paths of tracked files or directories (~ expanded)",
    )
    mode: SyncMode | None = Field(
        default=None, description="App-level mode (overrides default_mode)"
    )

    model_config = {"frozen": True}


class EditorConfig(BaseModel):
    """External merge/diff editor settings."""

    editor: str = Field(
        default="auto",
        description="Editor to use: auto, code, cursor or zed",
    )
    priority: list[str] = Field(
        default_factory=lambda: ["cursor", "code", "zed"],
        description="Auto-detection order",
    )
    wait_timeout: float = Field(
        default=3600.0,
        gt=0,
        description="Seconds to wait for a merge before giving up",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


class DotsyncConfig(BaseModel):
    """Top-level configuration.

    Every section has sensible defaults, so ``DotsyncConfig()``
    (zero-config) is always valid.
    """

    dotfiles_path: str = Field(
        default="~/dotfiles", description="Root of the dotfiles store"
    )
    machine_name: str = Field(
        default_factory=socket.gethostname,
        description="Name of this machine's backup slot",
    )
    state_dir: str = Field(
        default="~/.config/dotsync",
        description="Directory holding sync_state.json",
    )
    default_mode: SyncMode = SyncMode.BACKUP
    apps: dict[str, AppConfig] = Field(default_factory=dict)
    file_modes: dict[str, SyncMode] = Field(
        default_factory=dict,
        description="Per-file overrides keyed by '<app>/<filename>'",
    )
    editor: EditorConfig = Field(default_factory=EditorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> DotsyncConfig:
    """Construct a ``DotsyncConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``DotsyncConfig`` instance.
    """
    if not raw_data:
        return DotsyncConfig()

    return DotsyncConfig(**raw_data)

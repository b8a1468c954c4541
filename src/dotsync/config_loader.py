"""
Layered YAML configuration for dotsync.

Config files are discovered by convention, may pull in fragments with
``!include``, and are merged so that the most specific file wins.
``${VAR}`` references are expanded from the environment once the layers
are combined.

Usage:
    from dotsync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DOTSYNC_CONFIG"
PROJECT_CONFIG = Path(".dotsync") / "config.yml"
GLOBAL_CONFIG = Path(".config") / "dotsync" / "config.yml"

# Sections merged key by key across layers instead of replaced wholesale.
_KEYED_SECTIONS = ("apps", "file_modes")

# ---------------------------------------------------------------------------
# Environment references
# ---------------------------------------------------------------------------

# ${NAME} or ${NAME:-fallback}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${NAME}`` and ``${NAME:-fallback}`` in *value*.

    An unset or empty variable yields its fallback, or ``""`` without
    one.  A ``${`` that is never closed is kept as written.
    """

    def _expand(match: re.Match) -> str:
        name, fallback = match.group(1), match.group(2)
        return os.environ.get(name) or (fallback or "")

    return _ENV_REF.sub(_expand, value)


def _interpolate_recursive(node: Any) -> Any:
    """Expand environment references in every string of a YAML tree."""
    if isinstance(node, str):
        return interpolate_env_vars(node)
    if isinstance(node, list):
        return [_interpolate_recursive(item) for item in node]
    if isinstance(node, dict):
        return {key: _interpolate_recursive(val) for key, val in node.items()}
    return node


# ---------------------------------------------------------------------------
# !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """``SafeLoader`` that understands ``!include <path>``.

    The tag is registered on this subclass only.  Each instance carries
    the chain of files being loaded so a cycle can be reported.
    """

    include_chain: tuple[Path, ...] = ()


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Load the referenced file in place of the ``!include`` node."""
    raw = Path(loader.construct_scalar(node)).expanduser()
    including = Path(loader.name).resolve()
    target = (raw if raw.is_absolute() else including.parent / raw).resolve()

    if target in loader.include_chain:
        cycle = " -> ".join(str(p) for p in (*loader.include_chain, target))
        raise ValueError(f"Circular include detected: {cycle}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {including})"
        )

    return _load_yaml_with_includes(
        target, _chain=(*loader.include_chain, target)
    )


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path, *, _chain: tuple[Path, ...] | None = None
) -> Any:
    """Parse one YAML file, resolving ``!include`` tags relative to it."""
    path = path.resolve()
    with open(path, encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader.include_chain = _chain or (path,)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Existing config files, most specific first.

    Candidates, in order:
        1. The file named by ``$DOTSYNC_CONFIG``.
        2. ``.dotsync/config.yml`` under the current directory.
        3. ``~/.config/dotsync/config.yml``.
    """
    candidates: list[Path] = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    candidates.append(Path.cwd() / PROJECT_CONFIG)
    candidates.append(Path.home() / GLOBAL_CONFIG)
    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# dotsync configuration
#
# dotfiles_path: ~/dotfiles
# machine_name: my-laptop        # defaults to the hostname
# state_dir: ~/.config/dotsync
# default_mode: backup           # backup | sync
#
# apps:
#   zsh:
#     mode: sync
#     files:
#       - ~/.zshrc
#   nvim:
#     files:
#       - ~/.config/nvim
#
# file_modes:
#   zsh/.zshrc: backup
#
# editor:
#   editor: auto                 # auto | code | cursor | zed
#   priority: [cursor, code, zed]
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """The file ``init`` and ``load`` should use.

    The most specific existing file, else ``~/.config/dotsync/config.yml``.
    Nothing is created here.
    """
    found = discover_config_files()
    return found[0] if found else Path.home() / GLOBAL_CONFIG


def ensure_config(target: Path | None = None) -> Path:
    """Return an existing config file, or write the commented starter one.

    Args:
        target: Where to create the starter file; defaults to
            ``resolve_config_path()``.
    """
    found = discover_config_files()
    if found:
        logger.debug("Using existing config %s", found[0])
        return found[0]

    path = target or resolve_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", path)
    return path


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def _merge_layer(merged: dict[str, Any], layer: dict[str, Any]) -> None:
    for key, value in layer.items():
        current = merged.get(key)
        if (
            key in _KEYED_SECTIONS
            and isinstance(current, dict)
            and isinstance(value, dict)
        ):
            merged[key] = {**current, **value}
        else:
            merged[key] = value


def load_hierarchical_config() -> dict[str, Any]:
    """Load every discovered config file and merge them.

    Layers are applied from the global file up to the most specific
    one.  A later layer replaces earlier top-level keys, except that
    ``apps`` and ``file_modes`` are merged entry by entry so a project
    file can add apps to the global set.  Environment references are
    expanded after merging.

    Returns an empty dict when no file exists.

    Raises:
        OSError: If a config or included file cannot be read.
        ValueError: On circular includes.
        yaml.YAMLError: On malformed YAML.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config layer %s", path)
        data = _load_yaml_with_includes(path)
        if isinstance(data, dict):
            _merge_layer(merged, data)
        elif data is not None:
            logger.warning(
                "Ignoring config file %s: root is %s, not a mapping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)

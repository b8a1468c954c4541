"""Command-line interface for dotsync.

Subcommands:

- ``status``  -- classify every tracked file.
- ``sync``    -- batch run: back up changed files, report sync-mode files.
- ``push``    -- copy one local file to its slot(s).
- ``pull``    -- copy one remote replica over the local file.
- ``diff``    -- show a unified diff of local against remote.
- ``merge``   -- resolve a sync-mode conflict in an editor (or pick a side).
- ``machines`` -- list machines registered in the dotfiles store.
- ``restore`` -- restore files from another machine's backups.
- ``init``    -- write a starter config file.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from . import __version__
from .config_loader import ensure_config, load_hierarchical_config
from .config_schema import DotsyncConfig, build_config
from .editor import (
    EditorNotFoundError,
    FileWatcher,
    detect_editor,
    wait_for_merge,
)
from .logger import setup_logging
from .sync.differ import compute_diff, format_unified_diff
from .sync.engine import SyncEngine
from .sync.merger import NotFullyResolvedError
from .sync.models import FileInfo, SyncAction, SyncOutcome, SyncResult
from .sync.reporter import (
    format_detection,
    format_machines,
    format_restorable,
    format_restore_result,
    format_sync_report,
    generate_commit_message,
    report_to_json,
)
from .sync.restore import MachineNotFoundError, Restorer, RestoreError
from .sync.state import StateParseError
from .vcs import VersioningError

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """A user-facing command failure (bad arguments, unknown file)."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_config() -> DotsyncConfig:
    return build_config(load_hierarchical_config())


def _find_file(engine: SyncEngine, app_id: str, name: str) -> FileInfo:
    tracked = engine.mapper.find(app_id, name)
    if tracked is None:
        raise CommandError(f"{app_id}/{name} is not tracked")
    engine.state.load()
    info = engine.detector.detect_file(tracked)
    if info.error:
        raise CommandError(f"cannot read {app_id}/{name}: {info.error}")
    return info


def _print_result(result: SyncResult) -> int:
    label = f"{result.file.app_id}/{result.file.rel_path}"
    if not result.success:
        print(f"{result.action.value} failed for {label}: {result.error}",
              file=sys.stderr)
        return 1
    print(f"{label}: {result.action.value}")
    return 0


def _maybe_commit(engine: SyncEngine, args, result: SyncResult) -> None:
    if getattr(args, "commit", False) and result.success:
        message = generate_commit_message([result.file])
        if engine.commit_and_push(message):
            print(f"Committed: {message}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_init(args, config: DotsyncConfig) -> int:
    path = ensure_config(Path(args.path) if args.path else None)
    print(f"Config: {path}")
    return 0


def cmd_status(args, config: DotsyncConfig) -> int:
    engine = SyncEngine.from_config(config)
    engine.state.load()
    detection = engine.detect()
    if args.json:
        print(json.dumps(detection.model_dump(mode="json"), indent=2))
    else:
        print(format_detection(detection))
    return 0


def cmd_sync(args, config: DotsyncConfig) -> int:
    engine = SyncEngine.from_config(config)
    report = engine.run()
    if args.json:
        print(json.dumps(report_to_json(report), indent=2))
    else:
        print(format_sync_report(report))

    if report.outcome == SyncOutcome.FAILED:
        return 1
    if args.push and report.committed and engine.repo is not None:
        engine.repo.push()
    return 0


def cmd_push(args, config: DotsyncConfig) -> int:
    engine = SyncEngine.from_config(config)
    info = _find_file(engine, args.app, args.file)
    result = engine.push_file(info)
    _maybe_commit(engine, args, result)
    return _print_result(result)


def cmd_pull(args, config: DotsyncConfig) -> int:
    engine = SyncEngine.from_config(config)
    info = _find_file(engine, args.app, args.file)
    result = engine.pull_file(info)
    _maybe_commit(engine, args, result)
    return _print_result(result)


def cmd_diff(args, config: DotsyncConfig) -> int:
    engine = SyncEngine.from_config(config)
    info = _find_file(engine, args.app, args.file)
    diff = compute_diff(info.remote_path, info.local_path)
    if diff.identical:
        print("No changes")
    else:
        print(format_unified_diff(diff), end="")
        print(diff.summary())
    return 0


def cmd_merge(args, config: DotsyncConfig) -> int:
    engine = SyncEngine.from_config(config)
    info = _find_file(engine, args.app, args.file)
    action = engine.determine_action(info)
    if action != SyncAction.MERGE:
        state = info.state.value if info.state else "unknown"
        raise CommandError(
            f"{args.app}/{args.file} has nothing to merge "
            f"(state: {state}, action: {action.value})"
        )

    if args.keep_local or args.use_remote:
        merge = engine.merge_file(info)
        if args.keep_local:
            merge.keep_all_local()
        else:
            merge.use_all_remote()
        result = engine.apply_merge(info, merge)
        _maybe_commit(engine, args, result)
        return _print_result(result)

    editor = detect_editor(config.editor)
    watcher = FileWatcher(Path(info.local_path))
    editor.open_merge(info.local_path, info.remote_path, info.local_path)
    print(f"Waiting for {editor.name} to finish the merge...")
    watch = wait_for_merge(editor, watcher, config.editor.wait_timeout)
    if not watch.modified:
        raise CommandError(
            f"merge not completed: {watch.error or 'file unchanged'}"
        )

    engine.hash_cache.invalidate(info.local_path)
    result = engine.push_file(info)
    _maybe_commit(engine, args, result)
    return _print_result(result)


def cmd_machines(args, config: DotsyncConfig) -> int:
    restorer = Restorer.from_config(config)
    machines = restorer.list_machines()
    current = restorer.mapper.machine_name
    if args.json:
        data = [
            {**m.model_dump(), "current": m.name == current} for m in machines
        ]
        print(json.dumps(data, indent=2))
    else:
        print(format_machines(machines, current))
    return 0


def cmd_restore(args, config: DotsyncConfig) -> int:
    restorer = Restorer.from_config(config)
    if not args.files and not args.all:
        files = restorer.restorable_files(args.machine)
        print(format_restorable(args.machine, files))
        return 0

    result = restorer.restore(
        args.machine,
        targets=args.files or None,
        keep_current=not args.no_backup,
    )
    print(format_restore_result(result))
    return 0 if result.success else 1


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dotsync",
        description="Back up and sync dotfiles across machines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show the state of every tracked file
  dotsync status

  # Back up changed files and list sync-mode files that need attention
  dotsync sync

  # Resolve a conflict in your editor
  dotsync merge git .gitconfig

  # See what another machine has backed up, then restore one file
  dotsync restore desktop
  dotsync restore desktop zsh/.zshrc
        """,
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--log-file", help="Append log records to this file"
    )
    parser.add_argument(
        "--debug-format",
        choices=["text", "json"],
        default="text",
        help="Log record format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"dotsync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="Write a starter config file")
    p.add_argument("--path", help="Where to create the config")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("status", help="Classify every tracked file")
    p.add_argument("--json", action="store_true", help="JSON output")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("sync", help="Back up changes and report the rest")
    p.add_argument("--json", action="store_true", help="JSON output")
    p.add_argument(
        "--push",
        action="store_true",
        help="Push the commit to the remote afterwards",
    )
    p.set_defaults(func=cmd_sync)

    for name, func, text in (
        ("push", cmd_push, "Copy a local file to the dotfiles store"),
        ("pull", cmd_pull, "Copy a file from the dotfiles store"),
        ("diff", cmd_diff, "Diff a local file against its remote"),
        ("merge", cmd_merge, "Resolve a conflicting file"),
    ):
        p = sub.add_parser(name, help=text)
        p.add_argument("app", help="App ID")
        p.add_argument("file", help="File name or configured path")
        if name != "diff":
            p.add_argument(
                "--commit",
                action="store_true",
                help="Commit (and push) the change",
            )
        if name == "merge":
            side = p.add_mutually_exclusive_group()
            side.add_argument(
                "--keep-local",
                action="store_true",
                help="Resolve every hunk with the local lines",
            )
            side.add_argument(
                "--use-remote",
                action="store_true",
                help="Resolve every hunk with the remote lines",
            )
        p.set_defaults(func=func)

    p = sub.add_parser("machines", help="List registered machines")
    p.add_argument("--json", action="store_true", help="JSON output")
    p.set_defaults(func=cmd_machines)

    p = sub.add_parser(
        "restore", help="Restore files from another machine's backups"
    )
    p.add_argument("machine", help="Machine to restore from")
    p.add_argument(
        "files",
        nargs="*",
        help="<app>/<file> to restore (lists restorable files if omitted)",
    )
    p.add_argument(
        "--all",
        action="store_true",
        help="Restore every file that differs from the local copy",
    )
    p.add_argument(
        "--no-backup",
        action="store_true",
        help="Do not keep a copy of the files being replaced",
    )
    p.set_defaults(func=cmd_restore)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return the exit code."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        config = _load_config()
    except (OSError, ValueError, ValidationError, yaml.YAMLError) as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return 1

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or config.logging.file,
        debug_format=args.debug_format,
        level=config.logging.level,
    )

    try:
        return args.func(args, config)
    except (
        CommandError,
        EditorNotFoundError,
        MachineNotFoundError,
        NotFullyResolvedError,
        RestoreError,
        StateParseError,
        VersioningError,
        OSError,
    ) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()

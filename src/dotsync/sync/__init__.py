"""Reconciliation engine for tracked dotfiles.

Public API for classifying tracked files against a persisted baseline and
reconciling them with the dotfiles store.

Architecture
------------
Every tracked file has a *local* replica and a *remote* replica (the
shared sync slot when sync mode is enabled, otherwise the per-machine
backup slot).  Each replica is compared against its own digest recorded
at the last successful sync, so the engine can tell which side changed.

Modules:

- ``engine``     -- ``SyncEngine``: policy, push/pull and batch runs.
- ``detector``   -- ``ConflictDetector``: digest and classify files.
- ``classifier`` -- ``classify``: pure seven-state classification.
- ``hashing``    -- ``HashCache``: memoized SHA-256 digests.
- ``differ``     -- ``compute_diff``: line diff with context hunks.
- ``merger``     -- ``MergeResult``: hunk-by-hunk merge resolution.
- ``state``      -- ``SyncState``: load/save the baseline document.
- ``mapper``     -- ``SlotMapper``: modes and slot paths.
- ``models``     -- core data contracts.
- ``reporter``   -- commit messages, text and JSON reports.
- ``restore``    -- ``Restorer``: restore files from another machine.

Usage example
-------------
::

    from dotsync.config_loader import load_hierarchical_config
    from dotsync.config_schema import build_config
    from dotsync.sync import SyncEngine, format_sync_report

    engine = SyncEngine.from_config(build_config(load_hierarchical_config()))
    report = engine.run()
    print(format_sync_report(report))
"""

from .classifier import classify
from .detector import ConflictDetector
from .differ import compute_diff, format_unified_diff
from .engine import SyncEngine
from .hashing import HashCache
from .mapper import SlotMapper, TrackedFile
from .merger import (
    MergeHunk,
    MergeResolution,
    MergeResult,
    NotFullyResolvedError,
)
from .models import (
    BaselineRecord,
    DetectionResult,
    DiffResult,
    FileIdentity,
    FileInfo,
    FileState,
    Machine,
    RestorableFile,
    RestoredFile,
    RestoreResult,
    SyncAction,
    SyncOutcome,
    SyncReport,
    SyncResult,
)
from .reporter import (
    format_detection,
    format_sync_report,
    generate_commit_message,
    report_to_json,
)
from .restore import (
    MachineNotFoundError,
    MachineRegistry,
    Restorer,
    RestoreError,
)
from .state import StateParseError, SyncState

__all__ = [
    "BaselineRecord",
    "ConflictDetector",
    "DetectionResult",
    "DiffResult",
    "FileIdentity",
    "FileInfo",
    "FileState",
    "HashCache",
    "Machine",
    "MachineNotFoundError",
    "MachineRegistry",
    "MergeHunk",
    "MergeResolution",
    "MergeResult",
    "NotFullyResolvedError",
    "RestorableFile",
    "RestoredFile",
    "RestoreError",
    "RestoreResult",
    "Restorer",
    "SlotMapper",
    "StateParseError",
    "SyncAction",
    "SyncEngine",
    "SyncOutcome",
    "SyncReport",
    "SyncResult",
    "SyncState",
    "TrackedFile",
    "classify",
    "compute_diff",
    "format_detection",
    "format_sync_report",
    "format_unified_diff",
    "generate_commit_message",
    "report_to_json",
]

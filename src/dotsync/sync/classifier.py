"""Pure classification of a tracked file against its baseline.

Each replica is compared with its own digest in the baseline, so the
result says *who* changed since the last sync, not just *whether* the two
replicas differ.  Existence is checked before content: a replica that is
missing short-circuits to DELETED / LOCAL_NEW / REMOTE_NEW.
"""

from __future__ import annotations

from dotsync.sync.models import BaselineRecord, FileState


def classify(
    local_hash: str | None,
    remote_hash: str | None,
    baseline: BaselineRecord | None,
) -> FileState:
    """Classify one file.

    Args:
        local_hash: Digest of the local replica, ``None`` if it is absent.
        remote_hash: Digest of the remote replica, ``None`` if absent.
        baseline: Digests recorded at the last sync, if any.

    Returns:
        Exactly one ``FileState``.  The function has no side effects.
    """
    if local_hash is None and remote_hash is None:
        return FileState.DELETED
    if local_hash is None:
        return FileState.REMOTE_NEW
    if remote_hash is None:
        return FileState.LOCAL_NEW

    if local_hash == remote_hash:
        return FileState.SYNCED

    # First contact with differing content: neither side is trusted.
    if baseline is None:
        return FileState.CONFLICT

    local_changed = local_hash != baseline.local_hash
    remote_changed = remote_hash != baseline.remote_hash

    match (local_changed, remote_changed):
        case (True, True):
            # Converged edits were caught by the equality check above.
            return FileState.CONFLICT
        case (True, False):
            return FileState.LOCAL_MODIFIED
        case (False, True):
            return FileState.REMOTE_MODIFIED
        case _:
            return FileState.SYNCED

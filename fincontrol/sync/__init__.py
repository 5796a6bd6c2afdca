"""
Sync Package

Optimistic local mutation of the ledger, mirrored to a remote record store,
with remote snapshots replacing local state.
"""

from fincontrol.sync.codec import (
    change_operation,
    decode_snapshot,
    from_remote_document,
    sanitize_changes,
    strip_none,
    to_remote_document,
)
from fincontrol.sync.engine import (
    REMOTE_FAILURE_MESSAGE,
    CloudLinkError,
    CloudLinkState,
    SyncEngine,
    collection_path_for,
)

__all__ = [
    # Codec
    "change_operation",
    "decode_snapshot",
    "from_remote_document",
    "sanitize_changes",
    "strip_none",
    "to_remote_document",
    # Engine
    "REMOTE_FAILURE_MESSAGE",
    "CloudLinkError",
    "CloudLinkState",
    "SyncEngine",
    "collection_path_for",
]

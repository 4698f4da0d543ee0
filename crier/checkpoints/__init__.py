"""Durable checkpoint storage for the notification pipeline."""

from __future__ import annotations

from .storage import (
    CheckpointMarker,
    IssueCheckpoint,
    PendingIssueRecord,
    init_checkpoint_storage,
)
from .store import CheckpointStore, PendingIssue, SqlCheckpointStore

__all__ = [
    "CheckpointMarker",
    "CheckpointStore",
    "IssueCheckpoint",
    "PendingIssue",
    "PendingIssueRecord",
    "SqlCheckpointStore",
    "init_checkpoint_storage",
]

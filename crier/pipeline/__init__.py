"""Notification pipeline: feed, history, sessions, and dispatch."""

from __future__ import annotations

from .dispatcher import (
    CycleSummary,
    IssueOutcome,
    IssueState,
    NotificationDispatcher,
)
from .feed import FeedExtractor, latest_per_issue
from .history import EditHistoryResolver
from .observability import (
    CycleContext,
    DispatchEventLogger,
    DispatchEventType,
    ErrorCategory,
    categorize_error,
)
from .sessions import EditSession, group_by_author

__all__ = [
    "CycleContext",
    "CycleSummary",
    "DispatchEventLogger",
    "DispatchEventType",
    "EditHistoryResolver",
    "EditSession",
    "ErrorCategory",
    "FeedExtractor",
    "IssueOutcome",
    "IssueState",
    "NotificationDispatcher",
    "categorize_error",
    "group_by_author",
    "latest_per_issue",
]

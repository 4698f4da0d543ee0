"""Render notifications as Slack mrkdwn text."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from crier.pipeline.sessions import EditSession
    from crier.tracker.models import FieldChange, Issue

MAX_VALUE_LENGTH = 120
_ELLIPSIS = "…"
_EMPTY_VALUE = "(none)"


def escape_mrkdwn(text: str) -> str:
    """Escape the three characters Slack treats as control sequences."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def truncate(text: str, limit: int = MAX_VALUE_LENGTH) -> str:
    """Shorten ``text`` to ``limit`` characters, marking the cut."""
    if len(text) <= limit:
        return text
    return text[: limit - len(_ELLIPSIS)] + _ELLIPSIS


def issue_link(issue: Issue, url: str) -> str:
    """Return a Slack link labelled with the issue key and title."""
    label = issue.key if not issue.title else f"{issue.key}: {issue.title}"
    return f"<{url}|{escape_mrkdwn(truncate(label))}>"


def _render_values(values: tuple[str, ...]) -> str:
    if not values:
        return _EMPTY_VALUE
    return escape_mrkdwn(truncate(", ".join(values)))


def format_field_change(change: FieldChange) -> str:
    """Render one field change as a bullet line."""
    return (
        f"• *{escape_mrkdwn(change.field)}*: "
        f"{_render_values(change.old_values)} → {_render_values(change.new_values)}"
    )


def format_issue_created(issue: Issue, url: str) -> str:
    """Return the message announcing a newly created issue."""
    return f"{issue_link(issue, url)} was created"


def format_edit_session(issue: Issue, session: EditSession, url: str) -> str:
    """Return the message summarising one author's edits of ``issue``."""
    lines = [f"*{escape_mrkdwn(session.author)}* updated {issue_link(issue, url)}"]
    lines.extend(
        format_field_change(change)
        for record in session.records
        for change in record.changes
    )
    return "\n".join(lines)

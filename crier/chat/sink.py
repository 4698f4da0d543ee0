"""ChatSink protocol for delivering notifications.

This module defines the port through which the dispatcher publishes
notifications. Adapters implement it for a concrete chat system; the
dispatcher only relies on failures surfacing as
:class:`~crier.chat.errors.ChatPostError`.

Usage
-----
Type-check a concrete adapter:

>>> from crier.chat.sink import ChatSink
>>> from crier.chat.slack import SlackWebhookSink
>>> issubclass(SlackWebhookSink, ChatSink)
True

"""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from crier.pipeline.sessions import EditSession
    from crier.tracker.models import Issue


@typ.runtime_checkable
class ChatSink(typ.Protocol):
    """Protocol for posting issue notifications to a chat system."""

    async def post_issue_created(self, issue: Issue) -> None:
        """Announce that ``issue`` was created."""
        ...

    async def post_edit_session(self, issue: Issue, session: EditSession) -> None:
        """Announce the edits one author made to ``issue``."""
        ...

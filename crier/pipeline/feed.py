"""Feed extraction: which issues changed since the last checkpoint."""

from __future__ import annotations

import typing as typ

from crier.common.time import ensure_utc

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from crier.tracker.client import IssueTrackerClient
    from crier.tracker.models import ChangeEvent, Issue


def latest_per_issue(events: cabc.Iterable[ChangeEvent]) -> list[ChangeEvent]:
    """Collapse duplicates to each issue's newest event, ordered oldest first.

    Events sharing a publish timestamp are ordered by issue key so repeated
    fetches of the same feed always yield the same sequence.
    """
    newest: dict[Issue, ChangeEvent] = {}
    for event in events:
        current = newest.get(event.issue)
        if current is None or event.published > current.published:
            newest[event.issue] = event
    return sorted(
        newest.values(), key=lambda event: (event.published, event.issue.key)
    )


class FeedExtractor:
    """Fetch the ordered, deduplicated list of changed issues."""

    def __init__(self, client: IssueTrackerClient) -> None:
        """Bind the extractor to a tracker client."""
        self._client = client

    async def fetch(
        self, since: dt.datetime | None, *, deployment_time: dt.datetime
    ) -> list[ChangeEvent]:
        """Return issues changed strictly after ``since``, oldest first.

        ``since`` is ``None`` on the very first run, in which case
        ``deployment_time`` bounds the feed instead. Transport errors from the
        client propagate unchanged; retrying is the caller's decision.
        """
        bound = ensure_utc(since or deployment_time, field="since")
        events = await self._client.list_changed_issues(bound)
        return latest_per_issue(event for event in events if event.published > bound)

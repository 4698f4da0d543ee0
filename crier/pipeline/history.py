"""Edit history resolution for a single issue."""

from __future__ import annotations

import typing as typ

from crier.common.time import ensure_utc

if typ.TYPE_CHECKING:
    import datetime as dt

    from crier.tracker.client import IssueTrackerClient
    from crier.tracker.models import EditRecord, Issue


class EditHistoryResolver:
    """Fetch the edits of an issue newer than a lower bound."""

    def __init__(self, client: IssueTrackerClient) -> None:
        """Bind the resolver to a tracker client."""
        self._client = client

    async def fetch_edits(
        self, issue: Issue, since_exclusive: dt.datetime
    ) -> list[EditRecord]:
        """Return edits of ``issue`` strictly newer than ``since_exclusive``.

        The result is ascending by timestamp; records sharing a timestamp keep
        the order the tracker reported them in. An empty list means nothing
        qualifies and is not an error.
        """
        bound = ensure_utc(since_exclusive, field="since_exclusive")
        records = await self._client.list_edits(issue, bound)
        return sorted(
            (record for record in records if record.timestamp > bound),
            key=lambda record: record.timestamp,
        )

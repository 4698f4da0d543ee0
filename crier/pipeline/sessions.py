"""Group edit records into per-author notification units."""

from __future__ import annotations

import dataclasses
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from crier.tracker.models import EditRecord


@dataclasses.dataclass(frozen=True, slots=True)
class EditSession:
    """Edits of one issue by one author, posted as a single notification."""

    author: str
    records: tuple[EditRecord, ...]

    def __post_init__(self) -> None:
        """Reject empty sessions; ``updated`` needs at least one record."""
        if not self.records:
            msg = "an edit session needs at least one record"
            raise ValueError(msg)

    @property
    def updated(self) -> dt.datetime:
        """Return the timestamp of the session's last record."""
        return self.records[-1].timestamp


def group_by_author(records: cabc.Iterable[EditRecord]) -> dict[str, EditSession]:
    """Partition ``records`` into one session per author.

    The partition is stable: each session holds its author's records in the
    same relative order as ``records``. Sessions are keyed in order of each
    author's first appearance, so ``[A@10, B@11, A@12]`` yields
    ``{"A": [A@10, A@12], "B": [B@11]}``.
    """
    by_author: dict[str, list[EditRecord]] = {}
    for record in records:
        by_author.setdefault(record.author, []).append(record)
    return {
        author: EditSession(author=author, records=tuple(grouped))
        for author, grouped in by_author.items()
    }

"""Typed domain models produced by the issue tracker client."""

from __future__ import annotations

import dataclasses
import re
import typing as typ

if typ.TYPE_CHECKING:
    import datetime as dt

_ISSUE_KEY_PATTERN = re.compile(r"^(?P<prefix>[A-Za-z][A-Za-z0-9_]*)-(?P<number>\d+)$")


@dataclasses.dataclass(frozen=True, slots=True)
class Issue:
    """Issue identity within a tracker project.

    Equality and hashing only consider the project prefix and number, so the
    same issue observed with a changed title still compares equal.
    """

    prefix: str
    number: int
    title: str | None = dataclasses.field(default=None, compare=False)

    @property
    def key(self) -> str:
        """Return the human-readable key, e.g. ``ASOC-12``."""
        return f"{self.prefix}-{self.number}"

    @classmethod
    def from_key(cls, key: str, *, title: str | None = None) -> Issue:
        """Parse an issue key such as ``ASOC-12``."""
        match = _ISSUE_KEY_PATTERN.match(key.strip())
        if match is None:
            msg = f"invalid issue key: {key!r}"
            raise ValueError(msg)
        return cls(
            prefix=match.group("prefix"),
            number=int(match.group("number")),
            title=title,
        )

    def __str__(self) -> str:
        """Return the issue key."""
        return self.key


@dataclasses.dataclass(frozen=True, slots=True)
class ChangeEvent:
    """One issue reported as changed by the tracker feed."""

    issue: Issue
    published: dt.datetime


@dataclasses.dataclass(frozen=True, slots=True)
class FieldChange:
    """Old and new values of a single field within an edit."""

    field: str
    old_values: tuple[str, ...] = ()
    new_values: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True, slots=True)
class EditRecord:
    """One atomic edit of an issue by a single author."""

    author: str
    timestamp: dt.datetime
    changes: tuple[FieldChange, ...] = ()

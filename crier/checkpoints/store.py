"""Durable checkpoint store backed by SQLAlchemy.

Checkpoints record how far notification processing has progressed: the
global feed position, the newest notified change per issue, the deployment
time that bounds history replay, and issues queued for retry. Every write is
committed immediately so that a crash loses at most the in-flight issue.
"""

from __future__ import annotations

import dataclasses
import typing as typ

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from crier.common.time import ensure_utc
from crier.errors import CheckpointReadError, CheckpointWriteError
from crier.tracker.models import ChangeEvent, Issue

from .storage import (
    DEPLOYMENT_TIME_MARKER,
    FEED_POSITION_MARKER,
    CheckpointMarker,
    IssueCheckpoint,
    PendingIssueRecord,
)

if typ.TYPE_CHECKING:
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    SessionFactory: typ.TypeAlias = async_sessionmaker[AsyncSession]


@dataclasses.dataclass(frozen=True, slots=True)
class PendingIssue:
    """Issue queued for another resolution attempt."""

    event: ChangeEvent
    attempts: int
    last_error: str | None = None


@typ.runtime_checkable
class CheckpointStore(typ.Protocol):
    """Durable processing state consumed by the notification dispatcher.

    Implementations raise :class:`~crier.errors.CheckpointReadError` and
    :class:`~crier.errors.CheckpointWriteError`; callers decide whether a
    failure is fatal.
    """

    async def get_global_position(self) -> dt.datetime | None:
        """Return the publish timestamp of the last processed feed event."""
        ...

    async def set_global_position(self, position: dt.datetime) -> None:
        """Record the publish timestamp of the last processed feed event."""
        ...

    async def get_issue_position(self, issue: Issue) -> dt.datetime | None:
        """Return the last notified timestamp of ``issue``, if any."""
        ...

    async def set_issue_position(
        self, issue: Issue, position: dt.datetime
    ) -> dt.datetime:
        """Advance the notified timestamp of ``issue`` and return the stored value."""
        ...

    async def ensure_deployment_time(self, default: dt.datetime) -> dt.datetime:
        """Return the persisted deployment time, recording ``default`` if absent."""
        ...

    async def list_pending(self) -> list[PendingIssue]:
        """Return issues queued for retry, oldest publish timestamp first."""
        ...

    async def mark_pending(self, event: ChangeEvent, error: str) -> int:
        """Queue ``event`` for retry and return its failed attempt count."""
        ...

    async def clear_pending(self, issue: Issue) -> None:
        """Remove ``issue`` from the retry queue."""
        ...


class SqlCheckpointStore:
    """SQLAlchemy implementation of :class:`CheckpointStore`."""

    def __init__(self, session_factory: SessionFactory) -> None:
        """Bind the store to an async session factory."""
        self._session_factory = session_factory

    async def get_global_position(self) -> dt.datetime | None:
        """Return the persisted feed position."""
        return await self._get_marker(FEED_POSITION_MARKER)

    async def set_global_position(self, position: dt.datetime) -> None:
        """Persist the feed position; earlier values never overwrite later ones."""
        await self._advance_marker(FEED_POSITION_MARKER, position)

    async def get_issue_position(self, issue: Issue) -> dt.datetime | None:
        """Return the last notified timestamp of ``issue``."""
        try:
            async with self._session_factory() as session:
                return await session.scalar(
                    select(IssueCheckpoint.last_notified_at).where(
                        IssueCheckpoint.issue_key == issue.key
                    )
                )
        except SQLAlchemyError as exc:
            raise CheckpointReadError.for_key(issue.key) from exc

    async def set_issue_position(
        self, issue: Issue, position: dt.datetime
    ) -> dt.datetime:
        """Advance the checkpoint of ``issue`` to ``position`` when it is newer."""
        position = ensure_utc(position, field="position")
        try:
            async with self._session_factory() as session, session.begin():
                row = await session.get(IssueCheckpoint, issue.key)
                if row is None:
                    session.add(
                        IssueCheckpoint(issue_key=issue.key, last_notified_at=position)
                    )
                    return position
                if position > row.last_notified_at:
                    row.last_notified_at = position
                return row.last_notified_at
        except SQLAlchemyError as exc:
            raise CheckpointWriteError.for_key(issue.key) from exc

    async def ensure_deployment_time(self, default: dt.datetime) -> dt.datetime:
        """Return the recorded deployment time, storing ``default`` on first use."""
        default = ensure_utc(default, field="default")
        try:
            async with self._session_factory() as session, session.begin():
                row = await session.get(CheckpointMarker, DEPLOYMENT_TIME_MARKER)
                if row is not None:
                    return row.position
                session.add(
                    CheckpointMarker(name=DEPLOYMENT_TIME_MARKER, position=default)
                )
                return default
        except SQLAlchemyError as exc:
            raise CheckpointWriteError.for_key(DEPLOYMENT_TIME_MARKER) from exc

    async def list_pending(self) -> list[PendingIssue]:
        """Return the retry queue ordered by publish timestamp then key."""
        try:
            async with self._session_factory() as session:
                rows = (
                    await session.scalars(
                        select(PendingIssueRecord).order_by(
                            PendingIssueRecord.published_at,
                            PendingIssueRecord.issue_key,
                        )
                    )
                ).all()
        except SQLAlchemyError as exc:
            raise CheckpointReadError.for_key("pending_issues") from exc
        return [
            PendingIssue(
                event=ChangeEvent(
                    issue=Issue.from_key(row.issue_key, title=row.title),
                    published=row.published_at,
                ),
                attempts=row.attempts,
                last_error=row.last_error,
            )
            for row in rows
        ]

    async def mark_pending(self, event: ChangeEvent, error: str) -> int:
        """Queue ``event`` for retry, incrementing its attempt counter."""
        key = event.issue.key
        try:
            async with self._session_factory() as session, session.begin():
                row = await session.get(PendingIssueRecord, key)
                if row is None:
                    row = PendingIssueRecord(
                        issue_key=key,
                        title=event.issue.title,
                        published_at=event.published,
                        attempts=0,
                    )
                    session.add(row)
                elif event.published > row.published_at:
                    row.published_at = event.published
                row.attempts += 1
                row.last_error = error
                return row.attempts
        except SQLAlchemyError as exc:
            raise CheckpointWriteError.for_key(f"pending:{key}") from exc

    async def clear_pending(self, issue: Issue) -> None:
        """Drop ``issue`` from the retry queue; absent entries are ignored."""
        try:
            async with self._session_factory() as session, session.begin():
                await session.execute(
                    delete(PendingIssueRecord).where(
                        PendingIssueRecord.issue_key == issue.key
                    )
                )
        except SQLAlchemyError as exc:
            raise CheckpointWriteError.for_key(f"pending:{issue.key}") from exc

    async def _get_marker(self, name: str) -> dt.datetime | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(CheckpointMarker, name)
                return None if row is None else row.position
        except SQLAlchemyError as exc:
            raise CheckpointReadError.for_key(name) from exc

    async def _advance_marker(self, name: str, position: dt.datetime) -> None:
        position = ensure_utc(position, field="position")
        try:
            async with self._session_factory() as session, session.begin():
                row = await session.get(CheckpointMarker, name)
                if row is None:
                    session.add(CheckpointMarker(name=name, position=position))
                elif position > row.position:
                    row.position = position
        except SQLAlchemyError as exc:
            raise CheckpointWriteError.for_key(name) from exc

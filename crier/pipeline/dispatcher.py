"""Notification dispatcher: the per-issue state machine.

Each cycle reads the global feed position, fetches changed issues, and
walks them strictly in publish order. For every issue the dispatcher
resolves the edits made since the issue was last notified, posts one chat
message per author session (or a single "created" message for an issue
that has never been reported), and advances the per-issue checkpoint. The
global feed position advances after every event, whether or not the
issue succeeded, so one broken issue never stalls the feed.

Issues whose history could not be resolved are queued in the checkpoint
store and retried at the start of later cycles with the same lower bound.
"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from crier.common.time import ensure_utc, utcnow
from crier.errors import (
    CheckpointStoreError,
    ConfigurationError,
    MalformedDataError,
    TransportError,
)

from .observability import CycleContext, DispatchEventLogger
from .sessions import group_by_author

if typ.TYPE_CHECKING:
    import datetime as dt

    from crier.chat.sink import ChatSink
    from crier.checkpoints.store import CheckpointStore, PendingIssue
    from crier.tracker.models import ChangeEvent, EditRecord, Issue

    from .feed import FeedExtractor
    from .history import EditHistoryResolver

DEFAULT_MAX_RESOLVE_ATTEMPTS = 5


class IssueState(enum.StrEnum):
    """Progress of one issue through a cycle."""

    NEW = "new"
    RESOLVING = "resolving"
    NOTIFIED = "notified"
    CREATED = "created"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclasses.dataclass(slots=True)
class IssueOutcome:
    """What happened to one change event during a cycle.

    Attributes
    ----------
    since
        Exclusive lower bound used for the edit history, once known.
    retry
        True when the history could not be resolved and the issue belongs
        in the retry queue.
    checkpoint
        Per-issue checkpoint as stored after processing, or ``None`` when
        it was not written.

    """

    event: ChangeEvent
    state: IssueState = IssueState.NEW
    since: dt.datetime | None = None
    edits: int = 0
    messages_posted: int = 0
    messages_failed: int = 0
    checkpoint: dt.datetime | None = None
    retry: bool = False
    error: BaseException | None = None


@dataclasses.dataclass(slots=True)
class CycleSummary:
    """Outcomes of every event processed in one cycle."""

    outcomes: list[IssueOutcome] = dataclasses.field(default_factory=list)
    feed_position: dt.datetime | None = None

    @property
    def processed(self) -> int:
        """Return the number of events attempted."""
        return len(self.outcomes)

    @property
    def notified(self) -> int:
        """Return the number of issues with at least one edit message posted."""
        return self._count(IssueState.NOTIFIED)

    @property
    def created(self) -> int:
        """Return the number of issues announced as created."""
        return self._count(IssueState.CREATED)

    @property
    def unchanged(self) -> int:
        """Return the number of issues with nothing new to report."""
        return self._count(IssueState.UNCHANGED)

    @property
    def failed(self) -> int:
        """Return the number of issues that ended in failure."""
        return self._count(IssueState.FAILED)

    @property
    def messages_posted(self) -> int:
        """Return the number of chat messages delivered."""
        return sum(outcome.messages_posted for outcome in self.outcomes)

    @property
    def messages_failed(self) -> int:
        """Return the number of chat messages that could not be posted."""
        return sum(outcome.messages_failed for outcome in self.outcomes)

    def _count(self, state: IssueState) -> int:
        return sum(1 for outcome in self.outcomes if outcome.state is state)


@dataclasses.dataclass(frozen=True, slots=True)
class _QueuedEvent:
    event: ChangeEvent
    from_feed: bool
    was_pending: bool


class NotificationDispatcher:
    """Drive feed extraction, history resolution, and chat notification.

    Parameters
    ----------
    feed
        Source of changed issues.
    resolver
        Source of per-issue edit history.
    sink
        Chat destination for notifications.
    store
        Durable checkpoint state.
    deployment_time
        Lower bound used when no checkpoint exists. When omitted, the store
        records the dispatcher's creation time on first use and every later
        cycle reuses the persisted value.
    max_resolve_attempts
        Failed resolutions tolerated before an issue leaves the retry queue.

    Raises
    ------
    ConfigurationError
        If a collaborator is missing or ``max_resolve_attempts`` is below 1.

    """

    def __init__(  # noqa: PLR0913
        self,
        feed: FeedExtractor,
        resolver: EditHistoryResolver,
        sink: ChatSink,
        store: CheckpointStore,
        *,
        deployment_time: dt.datetime | None = None,
        max_resolve_attempts: int = DEFAULT_MAX_RESOLVE_ATTEMPTS,
        event_logger: DispatchEventLogger | None = None,
    ) -> None:
        """Validate and bind the collaborators."""
        for name, collaborator in (
            ("feed", feed),
            ("resolver", resolver),
            ("sink", sink),
            ("store", store),
        ):
            if collaborator is None:
                raise ConfigurationError.missing_collaborator(name)
        if max_resolve_attempts < 1:
            msg = "max_resolve_attempts must be at least 1"
            raise ConfigurationError(msg)
        self._feed = feed
        self._resolver = resolver
        self._sink = sink
        self._store = store
        self._configured_deployment_time = (
            None
            if deployment_time is None
            else ensure_utc(deployment_time, field="deployment_time")
        )
        self._fallback_deployment_time = utcnow()
        self._max_resolve_attempts = max_resolve_attempts
        self._event_logger = event_logger or DispatchEventLogger()
        self._position: dt.datetime | None = None
        self.last_summary: CycleSummary | None = None

    @property
    def position(self) -> dt.datetime | None:
        """Return the in-memory feed position reached by previous cycles."""
        return self._position

    async def run_cycle(self) -> int:
        """Process every pending and newly changed issue once.

        Returns
        -------
        int
            Number of change events attempted, including retried issues.
            Zero when the feed could not be fetched.

        """
        started_at = utcnow()
        deployment_time = await self._deployment_time()
        position = await self._read_position()
        context = CycleContext(started_at=started_at, feed_position=position)
        self._event_logger.log_cycle_started(context)

        try:
            events = await self._feed.fetch(position, deployment_time=deployment_time)
        except (TransportError, MalformedDataError) as exc:
            self._event_logger.log_cycle_aborted(context, "feed", exc)
            return 0

        summary = CycleSummary(feed_position=position)
        queue = self._build_queue(await self._read_pending(), events)
        for queued in queue:
            outcome = await self.process_event(queued.event, deployment_time)
            summary.outcomes.append(outcome)
            self._event_logger.log_issue_processed(outcome)
            await self._settle_pending(outcome, was_pending=queued.was_pending)
            if queued.from_feed:
                await self._advance_position(queued.event.published)

        summary.feed_position = self._position
        self.last_summary = summary
        self._event_logger.log_cycle_completed(
            context, summary, utcnow() - started_at
        )
        return summary.processed

    async def process_event(
        self, event: ChangeEvent, deployment_time: dt.datetime
    ) -> IssueOutcome:
        """Notify the chat sink about one change event.

        Chat and resolver failures are contained in the returned outcome.
        The global feed position and retry queue are left to the caller.
        """
        outcome = IssueOutcome(event=event)
        issue = event.issue
        try:
            stored = await self._store.get_issue_position(issue)
        except CheckpointStoreError as exc:
            return self._fail(outcome, "checkpoint_read", exc, retry=True)

        outcome.since = stored or deployment_time
        outcome.state = IssueState.RESOLVING
        try:
            records = await self._resolver.fetch_edits(issue, outcome.since)
        except (TransportError, MalformedDataError) as exc:
            return self._fail(outcome, "resolve", exc, retry=True)

        if records:
            await self._notify_edits(outcome, records)
            await self._record_issue_position(
                outcome, max(record.timestamp for record in records)
            )
        elif stored is None:
            await self._notify_created(outcome)
            await self._record_issue_position(outcome, event.published)
        else:
            outcome.state = IssueState.UNCHANGED
            await self._record_issue_position(outcome, event.published)
        return outcome

    async def _notify_created(self, outcome: IssueOutcome) -> None:
        try:
            await self._sink.post_issue_created(outcome.event.issue)
        except TransportError as exc:
            outcome.messages_failed += 1
            self._fail(outcome, "post", exc)
            return
        outcome.messages_posted += 1
        outcome.state = IssueState.CREATED

    async def _notify_edits(
        self, outcome: IssueOutcome, records: list[EditRecord]
    ) -> None:
        outcome.edits = len(records)
        issue = outcome.event.issue
        for session in group_by_author(records).values():
            try:
                await self._sink.post_edit_session(issue, session)
            except TransportError as exc:
                outcome.messages_failed += 1
                outcome.error = exc
                self._event_logger.log_issue_failed(outcome.event, "post", exc)
                continue
            outcome.messages_posted += 1
        outcome.state = (
            IssueState.NOTIFIED if outcome.messages_posted else IssueState.FAILED
        )

    async def _record_issue_position(
        self, outcome: IssueOutcome, position: dt.datetime
    ) -> None:
        issue = outcome.event.issue
        try:
            outcome.checkpoint = await self._store.set_issue_position(
                issue, position
            )
        except CheckpointStoreError as exc:
            self._event_logger.log_checkpoint_write_failed(issue.key, exc)

    def _fail(
        self,
        outcome: IssueOutcome,
        stage: str,
        exc: BaseException,
        *,
        retry: bool = False,
    ) -> IssueOutcome:
        outcome.state = IssueState.FAILED
        outcome.error = exc
        outcome.retry = retry
        self._event_logger.log_issue_failed(outcome.event, stage, exc)
        return outcome

    @staticmethod
    def _build_queue(
        pending: list[PendingIssue], events: list[ChangeEvent]
    ) -> list[_QueuedEvent]:
        """Order retried issues before the feed, letting the feed win ties."""
        pending_issues: set[Issue] = {item.event.issue for item in pending}
        in_feed: set[Issue] = {event.issue for event in events}
        queue = [
            _QueuedEvent(event=item.event, from_feed=False, was_pending=True)
            for item in pending
            if item.event.issue not in in_feed
        ]
        queue.extend(
            _QueuedEvent(
                event=event,
                from_feed=True,
                was_pending=event.issue in pending_issues,
            )
            for event in events
        )
        return queue

    async def _settle_pending(
        self, outcome: IssueOutcome, *, was_pending: bool
    ) -> None:
        event = outcome.event
        if outcome.retry:
            try:
                attempts = await self._store.mark_pending(event, str(outcome.error))
            except CheckpointStoreError as exc:
                self._event_logger.log_checkpoint_write_failed(
                    f"pending:{event.issue.key}", exc
                )
                return
            if attempts < self._max_resolve_attempts:
                return
            self._event_logger.log_pending_dropped(event, attempts)
        elif not was_pending:
            return
        try:
            await self._store.clear_pending(event.issue)
        except CheckpointStoreError as exc:
            self._event_logger.log_checkpoint_write_failed(
                f"pending:{event.issue.key}", exc
            )

    async def _advance_position(self, published: dt.datetime) -> None:
        if self._position is None or published > self._position:
            self._position = published
        try:
            await self._store.set_global_position(published)
        except CheckpointStoreError as exc:
            self._event_logger.log_checkpoint_write_failed("feed_position", exc)

    async def _deployment_time(self) -> dt.datetime:
        if self._configured_deployment_time is not None:
            return self._configured_deployment_time
        try:
            return await self._store.ensure_deployment_time(
                self._fallback_deployment_time
            )
        except CheckpointStoreError as exc:
            self._event_logger.log_checkpoint_read_failed("deployment_time", exc)
            return self._fallback_deployment_time

    async def _read_position(self) -> dt.datetime | None:
        try:
            stored = await self._store.get_global_position()
        except CheckpointStoreError as exc:
            self._event_logger.log_checkpoint_read_failed("feed_position", exc)
            return self._position
        if stored is None or (self._position is not None and stored < self._position):
            return self._position
        self._position = stored
        return stored

    async def _read_pending(self) -> list[PendingIssue]:
        try:
            return await self._store.list_pending()
        except CheckpointStoreError as exc:
            self._event_logger.log_checkpoint_read_failed("pending_issues", exc)
            return []

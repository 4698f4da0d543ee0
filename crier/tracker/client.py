"""YouTrack REST client used by the notification pipeline."""

from __future__ import annotations

import typing as typ

import httpx
import msgspec

from crier.common.time import ensure_utc, from_epoch_millis

from .auth import build_auth
from .errors import TrackerAPIError, TrackerResponseShapeError
from .models import ChangeEvent, EditRecord, FieldChange, Issue
from .urls import YouTrackUrls

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from crier.config import TrackerSettings

T = typ.TypeVar("T")


class IssueTrackerClient(typ.Protocol):
    """Interface for reading the tracker feed and issue edit history."""

    async def list_changed_issues(self, since: dt.datetime) -> list[ChangeEvent]:
        """Return issues reported as changed after ``since``."""
        ...

    async def list_edits(self, issue: Issue, since: dt.datetime) -> list[EditRecord]:
        """Return edits of ``issue`` made after ``since``."""
        ...


class _Field(msgspec.Struct, rename="camel"):
    name: str
    value: typ.Any = None
    old_value: typ.Any = None
    new_value: typ.Any = None


class _IssuePayload(msgspec.Struct):
    id: str
    field: list[_Field] = msgspec.field(default_factory=list)


class _ChangePayload(msgspec.Struct):
    field: list[_Field] = msgspec.field(default_factory=list)


class _ChangesPayload(msgspec.Struct):
    change: list[_ChangePayload] = msgspec.field(default_factory=list)


# Change entries carry who/when as pseudo fields next to the real deltas.
_AUTHOR_FIELD = "updaterName"
_TIMESTAMP_FIELD = "updated"
_CHANGE_META_FIELDS = frozenset(
    {_AUTHOR_FIELD, _TIMESTAMP_FIELD, "updaterFullName"}
)

_HTTP_ERROR_STATUS_THRESHOLD = 400


def _as_strings(value: object) -> tuple[str, ...]:
    """Flatten a YouTrack field value into display strings."""
    if value is None:
        return ()
    if isinstance(value, list):
        flattened: list[str] = []
        for item in value:
            flattened.extend(_as_strings(item))
        return tuple(flattened)
    if isinstance(value, dict):
        inner = value.get("value", value.get("fullName"))
        return _as_strings(inner) if inner is not None else ()
    return (str(value),)


def _single(fields: dict[str, _Field], name: str) -> str | None:
    field = fields.get(name)
    if field is None:
        return None
    values = _as_strings(field.value)
    return values[0] if values else None


def _issue_from_payload(payload: _IssuePayload) -> Issue:
    fields = {field.name: field for field in payload.field}
    title = _single(fields, "summary")
    prefix = _single(fields, "projectShortName")
    number = _single(fields, "numberInProject")
    if prefix is not None and number is not None and number.isdigit():
        return Issue(prefix=prefix, number=int(number), title=title)
    try:
        return Issue.from_key(payload.id, title=title)
    except ValueError as exc:
        raise TrackerResponseShapeError.missing("issue.id") from exc


def _change_event_from_payload(payload: _IssuePayload) -> ChangeEvent:
    issue = _issue_from_payload(payload)
    updated = _single({field.name: field for field in payload.field}, "updated")
    if updated is None:
        raise TrackerResponseShapeError.missing(f"{issue.key}.updated")
    return ChangeEvent(issue=issue, published=from_epoch_millis(updated))


def _edit_record_from_payload(issue: Issue, payload: _ChangePayload) -> EditRecord:
    fields = {field.name: field for field in payload.field}
    author = _single(fields, _AUTHOR_FIELD)
    timestamp = _single(fields, _TIMESTAMP_FIELD)
    if author is None:
        raise TrackerResponseShapeError.missing(
            f"{issue.key}.change.{_AUTHOR_FIELD}"
        )
    if timestamp is None:
        raise TrackerResponseShapeError.missing(
            f"{issue.key}.change.{_TIMESTAMP_FIELD}"
        )
    changes = tuple(
        FieldChange(
            field=field.name,
            old_values=_as_strings(field.old_value),
            new_values=_as_strings(field.new_value),
        )
        for field in payload.field
        if field.name not in _CHANGE_META_FIELDS
    )
    return EditRecord(
        author=author, timestamp=from_epoch_millis(timestamp), changes=changes
    )


class YouTrackClient:
    """YouTrack implementation of :class:`IssueTrackerClient`."""

    def __init__(
        self,
        urls: YouTrackUrls,
        projects: cabc.Sequence[str],
        *,
        auth: httpx.Auth | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = 20.0,
    ) -> None:
        """Create a client polling ``projects`` on the tracker at ``urls``."""
        self._urls = urls
        self._projects = tuple(projects)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            auth=auth,
            timeout=timeout_s,
            headers={"Accept": "application/json", "User-Agent": "crier/0.1"},
        )

    @classmethod
    def from_settings(cls, settings: TrackerSettings) -> YouTrackClient:
        """Build a client, with its own HTTP pool, from tracker settings."""
        return cls(
            YouTrackUrls(settings.base_url, settings.external_base_url),
            settings.projects,
            auth=build_auth(settings),
            timeout_s=settings.timeout_s,
        )

    @property
    def urls(self) -> YouTrackUrls:
        """Return the URL builder this client talks to."""
        return self._urls

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def list_changed_issues(self, since: dt.datetime) -> list[ChangeEvent]:
        """Return issues of every configured project updated after ``since``."""
        since_utc = ensure_utc(since, field="since")
        events: list[ChangeEvent] = []
        for project in self._projects:
            url = self._urls.feed_url(project, since_utc)
            payloads = await self._get_json(url, list[_IssuePayload])
            events.extend(
                event
                for event in map(_change_event_from_payload, payloads)
                if event.published > since_utc
            )
        return events

    async def list_edits(self, issue: Issue, since: dt.datetime) -> list[EditRecord]:
        """Return edits of ``issue`` made strictly after ``since``."""
        since_utc = ensure_utc(since, field="since")
        url = self._urls.changes_url(issue)
        payload = await self._get_json(url, _ChangesPayload)
        records = [
            _edit_record_from_payload(issue, change) for change in payload.change
        ]
        return [record for record in records if record.timestamp > since_utc]

    async def _get_json(self, url: str, payload_type: type[T]) -> T:
        """Fetch ``url`` and decode the JSON body as ``payload_type``."""
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as exc:
            raise TrackerAPIError.timeout(url) from exc
        except httpx.RequestError as exc:
            raise TrackerAPIError.network_error(url, str(exc)) from exc
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise TrackerAPIError.http_error(response.status_code, url)
        try:
            return msgspec.json.decode(response.content, type=payload_type)
        except msgspec.DecodeError as exc:
            raise TrackerResponseShapeError.invalid_json(url, str(exc)) from exc


__all__ = ["IssueTrackerClient", "YouTrackClient"]

"""Unit tests for the YouTrack REST client."""

from __future__ import annotations

import typing as typ

import httpx
import pytest

from crier.errors import MalformedDataError
from crier.tracker import YouTrackClient, YouTrackUrls
from crier.tracker.errors import TrackerAPIError, TrackerResponseShapeError
from crier.tracker.models import FieldChange, Issue
from tests.unit.pipeline_test_helpers import at

_BASE_URL = "https://youtrack.example.test"
_HTTP_SERVER_ERROR = 503
_OUT_OF_RANGE_MILLIS = "99999999999999999999"


def _millis(minutes: int) -> str:
    return str(int(at(minutes).timestamp() * 1000))


def _issue_payload(key: str, minutes: int, summary: str) -> dict[str, typ.Any]:
    prefix, number = key.split("-")
    return {
        "id": key,
        "field": [
            {"name": "projectShortName", "value": prefix},
            {"name": "numberInProject", "value": number},
            {"name": "summary", "value": summary},
            {"name": "updated", "value": _millis(minutes)},
        ],
    }


def _change_payload(
    author: str, minutes: int, *fields: dict[str, typ.Any]
) -> dict[str, typ.Any]:
    return {
        "field": [
            {"name": "updaterName", "value": author},
            {"name": "updated", "value": _millis(minutes)},
            *fields,
        ]
    }


def _make_client(
    handler: typ.Callable[[httpx.Request], httpx.Response],
    projects: tuple[str, ...] = ("ASOC",),
) -> tuple[YouTrackClient, list[httpx.Request]]:
    calls: list[httpx.Request] = []

    def _recording(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(_recording))
    client = YouTrackClient(
        YouTrackUrls(_BASE_URL), projects, http_client=http_client
    )
    return client, calls


class TestListChangedIssues:
    """Tests for feed polling."""

    @pytest.mark.asyncio
    async def test_parses_feed_for_every_project(self) -> None:
        """Each configured project is queried with updatedAfter millis."""
        feeds = {
            "ASOC": [_issue_payload("ASOC-1", 2, "Crash on start")],
            "OPS": [_issue_payload("OPS-7", 3, "Disk full")],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            project = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json=feeds[project])

        client, calls = _make_client(handler, ("ASOC", "OPS"))

        events = await client.list_changed_issues(at(0))

        assert [call.url.params["updatedAfter"] for call in calls] == [
            _millis(0),
            _millis(0),
        ], "Expected the bound in epoch milliseconds"
        assert [(e.issue.key, e.published) for e in events] == [
            ("ASOC-1", at(2)),
            ("OPS-7", at(3)),
        ]
        assert events[0].issue.title == "Crash on start"

    @pytest.mark.asyncio
    async def test_filters_events_at_or_before_bound(self) -> None:
        """The tracker's inclusive filter is tightened to strictly after."""

        def handler(request: httpx.Request) -> httpx.Response:
            del request
            return httpx.Response(
                200,
                json=[
                    _issue_payload("ASOC-1", 0, "old"),
                    _issue_payload("ASOC-2", 1, "new"),
                ],
            )

        client, _ = _make_client(handler)

        events = await client.list_changed_issues(at(0))

        assert [e.issue.key for e in events] == ["ASOC-2"]

    @pytest.mark.asyncio
    async def test_http_error_raises_api_error(self) -> None:
        """Non-2xx responses become TrackerAPIError with the status."""
        client, _ = _make_client(
            lambda request: httpx.Response(_HTTP_SERVER_ERROR, request=request)
        )

        with pytest.raises(TrackerAPIError) as excinfo:
            await client.list_changed_issues(at(0))

        assert excinfo.value.status_code == _HTTP_SERVER_ERROR

    @pytest.mark.asyncio
    async def test_network_error_raises_api_error(self) -> None:
        """Connection failures become TrackerAPIError without a status."""

        def handler(request: httpx.Request) -> httpx.Response:
            msg = "connection refused"
            raise httpx.ConnectError(msg, request=request)

        client, _ = _make_client(handler)

        with pytest.raises(TrackerAPIError) as excinfo:
            await client.list_changed_issues(at(0))

        assert excinfo.value.status_code is None

    @pytest.mark.asyncio
    async def test_invalid_json_raises_shape_error(self) -> None:
        """Undecodable bodies are malformed data."""
        client, _ = _make_client(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(TrackerResponseShapeError):
            await client.list_changed_issues(at(0))

    @pytest.mark.asyncio
    async def test_missing_updated_field_raises_shape_error(self) -> None:
        """Feed entries without a timestamp cannot be ordered."""
        client, _ = _make_client(
            lambda request: httpx.Response(200, json=[{"id": "ASOC-1", "field": []}])
        )

        with pytest.raises(TrackerResponseShapeError, match="updated"):
            await client.list_changed_issues(at(0))

    @pytest.mark.asyncio
    async def test_out_of_range_updated_raises_malformed_data(self) -> None:
        """Timestamps beyond the datetime range are bad data, not crashes."""
        entry = _issue_payload("ASOC-1", 1, "Crash on start")
        entry["field"][-1]["value"] = _OUT_OF_RANGE_MILLIS
        client, _ = _make_client(lambda request: httpx.Response(200, json=[entry]))

        with pytest.raises(MalformedDataError, match=_OUT_OF_RANGE_MILLIS):
            await client.list_changed_issues(at(0))


class TestListEdits:
    """Tests for edit history retrieval."""

    @pytest.mark.asyncio
    async def test_parses_changes_into_edit_records(self) -> None:
        """Author and timestamp pseudo fields are split from real deltas."""
        body = {
            "change": [
                _change_payload(
                    "alice",
                    1,
                    {"name": "State", "oldValue": ["Open"], "newValue": ["Fixed"]},
                ),
                _change_payload(
                    "bob",
                    2,
                    {"name": "Assignee", "oldValue": [], "newValue": ["bob"]},
                ),
            ]
        }

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/rest/issue/ASOC-1/changes"
            return httpx.Response(200, json=body)

        client, _ = _make_client(handler)

        records = await client.list_edits(Issue.from_key("ASOC-1"), at(0))

        assert [(r.author, r.timestamp) for r in records] == [
            ("alice", at(1)),
            ("bob", at(2)),
        ]
        assert records[0].changes == (
            FieldChange(field="State", old_values=("Open",), new_values=("Fixed",)),
        )
        assert records[1].changes == (
            FieldChange(field="Assignee", old_values=(), new_values=("bob",)),
        )

    @pytest.mark.asyncio
    async def test_excludes_changes_at_or_before_bound(self) -> None:
        """Only changes strictly newer than the bound are returned."""
        body = {"change": [_change_payload("alice", 1), _change_payload("bob", 2)]}
        client, _ = _make_client(lambda request: httpx.Response(200, json=body))

        records = await client.list_edits(Issue.from_key("ASOC-1"), at(1))

        assert [r.author for r in records] == ["bob"]

    @pytest.mark.asyncio
    async def test_change_without_author_raises_shape_error(self) -> None:
        """Every change must name its author."""
        body = {"change": [{"field": [{"name": "updated", "value": _millis(1)}]}]}
        client, _ = _make_client(lambda request: httpx.Response(200, json=body))

        with pytest.raises(TrackerResponseShapeError, match="updaterName"):
            await client.list_edits(Issue.from_key("ASOC-1"), at(0))

    @pytest.mark.asyncio
    async def test_out_of_range_change_timestamp_raises_malformed_data(
        self,
    ) -> None:
        """A change stamped beyond the datetime range is bad data."""
        change = _change_payload("alice", 1)
        change["field"][1]["value"] = _OUT_OF_RANGE_MILLIS
        body = {"change": [change]}
        client, _ = _make_client(lambda request: httpx.Response(200, json=body))

        with pytest.raises(MalformedDataError, match=_OUT_OF_RANGE_MILLIS):
            await client.list_edits(Issue.from_key("ASOC-1"), at(0))


@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open() -> None:
    """Injected HTTP clients are owned by the caller."""
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200))
    )
    client = YouTrackClient(YouTrackUrls(_BASE_URL), ["ASOC"], http_client=http_client)

    await client.aclose()

    assert not http_client.is_closed
    await http_client.aclose()

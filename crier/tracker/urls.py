"""URL scheme of the YouTrack legacy REST API.

The runtime only needs the feed, change history and public issue links.
``issue_url`` and ``attachments_url`` complete the URL set of the legacy
integration so the mapping stays in one place.
"""

from __future__ import annotations

import dataclasses
import typing as typ
import urllib.parse

from crier.common.time import to_epoch_millis

if typ.TYPE_CHECKING:
    import datetime as dt

    from .models import Issue


@dataclasses.dataclass(frozen=True, slots=True)
class YouTrackUrls:
    """Build YouTrack REST and browser URLs.

    ``base_url`` is the address crier talks to; ``external_base_url`` is the
    address people click in chat messages and falls back to ``base_url``.
    """

    base_url: str
    external_base_url: str | None = None

    def __post_init__(self) -> None:
        """Strip trailing slashes so joined paths never double up."""
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))
        if self.external_base_url is not None:
            object.__setattr__(
                self, "external_base_url", self.external_base_url.rstrip("/")
            )

    @property
    def public_base_url(self) -> str:
        """Return the base URL used for links shown to people."""
        return self.external_base_url or self.base_url

    def issue_url(self, issue: Issue) -> str:
        """Return the browser URL of ``issue`` on the internal host."""
        return f"{self.base_url}/issue/{issue.key}"

    def external_issue_url(self, issue: Issue) -> str:
        """Return the browser URL of ``issue`` on the public host."""
        return f"{self.public_base_url}/issue/{issue.key}"

    def issue_rest_url(self, issue: Issue) -> str:
        """Return the REST resource URL of ``issue``."""
        return f"{self.base_url}/rest/issue/{issue.key}"

    def feed_url(self, project: str, since: dt.datetime) -> str:
        """Return the URL listing issues of ``project`` updated after ``since``."""
        query = urllib.parse.urlencode({"updatedAfter": to_epoch_millis(since)})
        project_path = urllib.parse.quote(project, safe="")
        return f"{self.base_url}/rest/issue/byproject/{project_path}?{query}"

    def changes_url(self, issue: Issue) -> str:
        """Return the URL of the change history of ``issue``."""
        return f"{self.issue_rest_url(issue)}/changes"

    def attachments_url(self, issue: Issue) -> str:
        """Return the URL of the attachments of ``issue``."""
        return f"{self.issue_rest_url(issue)}/attachment"

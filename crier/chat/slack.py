"""Slack incoming-webhook adapter for the ChatSink protocol."""

from __future__ import annotations

import typing as typ

import httpx

from .errors import ChatConfigError, ChatPostError
from .formatting import format_edit_session, format_issue_created

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from crier.config import ChatSettings
    from crier.pipeline.sessions import EditSession
    from crier.tracker.models import Issue
    from crier.tracker.urls import YouTrackUrls

_HTTP_ERROR_STATUS_THRESHOLD = 400


class SlackWebhookSink:
    """Post notifications through a Slack incoming webhook.

    Parameters
    ----------
    webhook_url
        Incoming webhook endpoint.
    urls
        Tracker URL builder used to link issues in messages.
    default_channel
        Channel override sent with every message whose project has no entry
        in ``channel_mapping``. ``None`` keeps the webhook's own channel.
    channel_mapping
        Project prefix to channel name.

    """

    def __init__(  # noqa: PLR0913
        self,
        webhook_url: str,
        urls: YouTrackUrls,
        *,
        default_channel: str | None = None,
        channel_mapping: cabc.Mapping[str, str] | None = None,
        username: str | None = None,
        icon_emoji: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = 10.0,
    ) -> None:
        """Initialise the sink; an empty ``webhook_url`` is rejected."""
        if not webhook_url.strip():
            raise ChatConfigError.missing_webhook()
        self._webhook_url = webhook_url
        self._urls = urls
        self._default_channel = default_channel
        self._channel_mapping = dict(channel_mapping or {})
        self._username = username
        self._icon_emoji = icon_emoji
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout_s)

    @classmethod
    def from_settings(
        cls, settings: ChatSettings, urls: YouTrackUrls
    ) -> SlackWebhookSink:
        """Build a sink, with its own HTTP pool, from chat settings."""
        return cls(
            settings.webhook_url or "",
            urls,
            default_channel=settings.default_channel,
            channel_mapping=settings.channel_mapping,
            username=settings.username,
            icon_emoji=settings.icon_emoji,
            timeout_s=settings.timeout_s,
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    def channel_for(self, issue: Issue) -> str | None:
        """Return the channel that receives notifications about ``issue``."""
        return self._channel_mapping.get(issue.prefix, self._default_channel)

    async def post_issue_created(self, issue: Issue) -> None:
        """Announce that ``issue`` was created."""
        text = format_issue_created(issue, self._urls.external_issue_url(issue))
        await self._post(issue, text)

    async def post_edit_session(self, issue: Issue, session: EditSession) -> None:
        """Announce one author's edits of ``issue``."""
        text = format_edit_session(
            issue, session, self._urls.external_issue_url(issue)
        )
        await self._post(issue, text)

    def _payload(self, issue: Issue, text: str) -> dict[str, str]:
        payload = {"text": text}
        channel = self.channel_for(issue)
        if channel:
            payload["channel"] = channel
        if self._username:
            payload["username"] = self._username
        if self._icon_emoji:
            payload["icon_emoji"] = self._icon_emoji
        return payload

    async def _post(self, issue: Issue, text: str) -> None:
        try:
            response = await self._client.post(
                self._webhook_url, json=self._payload(issue, text)
            )
        except httpx.TimeoutException as exc:
            raise ChatPostError.timeout() from exc
        except httpx.RequestError as exc:
            raise ChatPostError.network_error(str(exc)) from exc
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise ChatPostError.http_error(response.status_code, response.text)

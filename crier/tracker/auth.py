"""Authentication schemes for the YouTrack REST API.

YouTrack accepts either plain credentials or a JetBrains Hub OAuth2 token.
Both are expressed as :class:`httpx.Auth` objects so the client stays
agnostic of which one is configured.
"""

from __future__ import annotations

import dataclasses
import typing as typ

import httpx
import msgspec

from .errors import TrackerAPIError, TrackerConfigError, TrackerResponseShapeError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from crier.config import TrackerSettings

CREDENTIALS_AUTH_TYPE = "credentials"
HUB_AUTH_TYPE = "hub"

_HTTP_UNAUTHORIZED = 401
_HTTP_ERROR_STATUS_THRESHOLD = 400


class _HubTokenResponse(msgspec.Struct):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class HubCredentials:
    """Service credentials used to obtain a Hub access token."""

    hub_url: str
    client_id: str
    client_secret: str
    resource_server_id: str

    @property
    def token_url(self) -> str:
        """Return the Hub OAuth2 token endpoint."""
        return f"{self.hub_url.rstrip('/')}/api/rest/oauth2/token"


class HubOAuth(httpx.Auth):
    """Client-credentials OAuth2 flow against JetBrains Hub.

    The token is requested lazily before the first API call and requested
    again once when the tracker answers 401, which covers expiry without
    tracking ``expires_in``.
    """

    requires_response_body = True

    def __init__(self, credentials: HubCredentials) -> None:
        """Store the service credentials; no token is fetched yet."""
        self._credentials = credentials
        self._token: str | None = None

    def _token_request(self) -> httpx.Request:
        basic = httpx.BasicAuth(
            self._credentials.client_id, self._credentials.client_secret
        )
        request = httpx.Request(
            "POST",
            self._credentials.token_url,
            data={
                "grant_type": "client_credentials",
                "scope": self._credentials.resource_server_id,
            },
            headers={"Accept": "application/json"},
        )
        return next(basic.auth_flow(request))

    def _store_token(self, response: httpx.Response) -> None:
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise TrackerAPIError.authentication_failed(response.status_code)
        try:
            token = msgspec.json.decode(response.content, type=_HubTokenResponse)
        except msgspec.DecodeError as exc:
            raise TrackerResponseShapeError.missing("access_token") from exc
        self._token = token.access_token

    def auth_flow(
        self, request: httpx.Request
    ) -> cabc.Generator[httpx.Request, httpx.Response, None]:
        """Attach a bearer token, fetching or refreshing it as required."""
        if self._token is None:
            token_response = yield self._token_request()
            self._store_token(token_response)

        request.headers["Authorization"] = f"Bearer {self._token}"
        response = yield request
        if response.status_code != _HTTP_UNAUTHORIZED:
            return

        token_response = yield self._token_request()
        self._store_token(token_response)
        request.headers["Authorization"] = f"Bearer {self._token}"
        yield request


def _require(value: str | None, name: str) -> str:
    if value is None or not value.strip():
        raise TrackerConfigError.missing_setting(name)
    return value


def build_auth(settings: TrackerSettings) -> httpx.Auth:
    """Return the :class:`httpx.Auth` matching ``settings.auth_type``."""
    auth_type = settings.auth_type.lower()
    if auth_type == CREDENTIALS_AUTH_TYPE:
        return httpx.BasicAuth(
            _require(settings.username, "username"),
            _require(settings.password, "password"),
        )
    if auth_type == HUB_AUTH_TYPE:
        return HubOAuth(
            HubCredentials(
                hub_url=_require(settings.hub_url, "hub_url"),
                client_id=_require(settings.hub_client_id, "hub_client_id"),
                client_secret=_require(
                    settings.hub_client_secret, "hub_client_secret"
                ),
                resource_server_id=_require(
                    settings.hub_resource_server_id, "hub_resource_server_id"
                ),
            )
        )
    raise TrackerConfigError.unknown_auth_type(settings.auth_type)

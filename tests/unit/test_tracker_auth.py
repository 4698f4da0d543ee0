"""Unit tests for YouTrack authentication."""

from __future__ import annotations

import base64
import secrets

import httpx
import pytest

from crier.config import TrackerSettings
from crier.tracker import HubCredentials, HubOAuth, build_auth
from crier.tracker.errors import TrackerAPIError, TrackerConfigError

_SECRET = secrets.token_hex(8)
_HTTP_UNAUTHORIZED = 401
_HUB_URL = "https://hub.example.test/hub"
_API_URL = "https://youtrack.example.test/rest/issue/ASOC-1"


def _credentials() -> HubCredentials:
    return HubCredentials(
        hub_url=_HUB_URL,
        client_id="crier",
        client_secret=_SECRET,
        resource_server_id="youtrack-service",
    )


def _token_response(token: str) -> httpx.Response:
    return httpx.Response(200, json={"access_token": token, "token_type": "Bearer"})


class TestHubOAuth:
    """Tests for the Hub client-credentials flow."""

    @pytest.mark.asyncio
    async def test_fetches_token_before_first_request(self) -> None:
        """The token request uses basic auth and the resource scope."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path.endswith("/oauth2/token"):
                return _token_response("tok-1")
            return httpx.Response(200, json={})

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), auth=HubOAuth(_credentials())
        ) as client:
            await client.get(_API_URL)

        token_request, api_request = seen
        expected_basic = base64.b64encode(f"crier:{_SECRET}".encode()).decode()
        assert token_request.headers["Authorization"] == f"Basic {expected_basic}"
        assert b"grant_type=client_credentials" in token_request.content
        assert b"scope=youtrack-service" in token_request.content
        assert api_request.headers["Authorization"] == "Bearer tok-1"

    @pytest.mark.asyncio
    async def test_refreshes_token_once_on_unauthorized(self) -> None:
        """A 401 triggers a single token refresh and retry."""
        tokens = iter(["stale", "fresh"])
        api_calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/oauth2/token"):
                return _token_response(next(tokens))
            api_calls.append(request.headers["Authorization"])
            if request.headers["Authorization"] == "Bearer stale":
                return httpx.Response(_HTTP_UNAUTHORIZED)
            return httpx.Response(200, json={})

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), auth=HubOAuth(_credentials())
        ) as client:
            response = await client.get(_API_URL)

        assert response.status_code == 200
        assert api_calls == ["Bearer stale", "Bearer fresh"]

    @pytest.mark.asyncio
    async def test_rejected_credentials_raise(self) -> None:
        """Hub refusing the client credentials is an API error."""

        def handler(request: httpx.Request) -> httpx.Response:
            del request
            return httpx.Response(_HTTP_UNAUTHORIZED, json={"error": "invalid"})

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), auth=HubOAuth(_credentials())
        ) as client:
            with pytest.raises(TrackerAPIError) as excinfo:
                await client.get(_API_URL)

        assert excinfo.value.status_code == _HTTP_UNAUTHORIZED


class TestBuildAuth:
    """Tests for selecting the auth scheme from settings."""

    def test_credentials_use_basic_auth(self) -> None:
        """auth_type credentials yields httpx.BasicAuth."""
        settings = TrackerSettings(
            base_url="https://yt", projects=["ASOC"], username="u", password="p"
        )
        assert isinstance(build_auth(settings), httpx.BasicAuth)

    def test_hub_uses_oauth(self) -> None:
        """auth_type hub yields HubOAuth."""
        settings = TrackerSettings(
            base_url="https://yt",
            projects=["ASOC"],
            auth_type="hub",
            hub_url=_HUB_URL,
            hub_client_id="crier",
            hub_client_secret=_SECRET,
            hub_resource_server_id="youtrack-service",
        )
        assert isinstance(build_auth(settings), HubOAuth)

    def test_missing_password_is_config_error(self) -> None:
        """Credentials auth requires a password."""
        settings = TrackerSettings(
            base_url="https://yt", projects=["ASOC"], username="u"
        )
        with pytest.raises(TrackerConfigError, match="password"):
            build_auth(settings)

    def test_unknown_auth_type_is_config_error(self) -> None:
        """Unsupported schemes are rejected."""
        settings = TrackerSettings(
            base_url="https://yt", projects=["ASOC"], auth_type="kerberos"
        )
        with pytest.raises(TrackerConfigError, match="kerberos"):
            build_auth(settings)

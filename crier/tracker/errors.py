"""Issue tracker client errors."""

from __future__ import annotations

from crier.errors import ConfigurationError, MalformedDataError, TransportError


class TrackerAPIError(TransportError):
    """Raised when the tracker is unreachable or returns an error response."""

    @classmethod
    def http_error(cls, status_code: int, url: str) -> TrackerAPIError:
        """Return an error for non-2xx HTTP responses."""
        return cls(f"tracker HTTP {status_code} for {url}", status_code=status_code)

    @classmethod
    def timeout(cls, url: str) -> TrackerAPIError:
        """Return an error for a request that timed out."""
        return cls(f"tracker request timed out: {url}")

    @classmethod
    def network_error(cls, url: str, detail: str) -> TrackerAPIError:
        """Return an error for connection-level failures."""
        return cls(f"tracker request failed for {url}: {detail}")

    @classmethod
    def authentication_failed(cls, status_code: int) -> TrackerAPIError:
        """Return an error when an OAuth token cannot be obtained."""
        return cls(
            f"Hub token request failed with HTTP {status_code}",
            status_code=status_code,
        )


class TrackerResponseShapeError(MalformedDataError):
    """Raised when tracker payloads are missing expected fields."""

    @classmethod
    def missing(cls, field: str) -> TrackerResponseShapeError:
        """Return an error for a missing payload field."""
        return cls(f"tracker response missing expected field: {field}")

    @classmethod
    def invalid_json(cls, url: str, detail: str) -> TrackerResponseShapeError:
        """Return an error for payloads that are not the expected JSON."""
        return cls(f"tracker response from {url} is not valid: {detail}")


class TrackerConfigError(ConfigurationError):
    """Raised when tracker client configuration is invalid."""

    @classmethod
    def missing_setting(cls, name: str) -> TrackerConfigError:
        """Return an error for a required setting that is empty."""
        return cls(f"tracker setting {name!r} is required")

    @classmethod
    def unknown_auth_type(cls, auth_type: str) -> TrackerConfigError:
        """Return an error for an unsupported authentication type."""
        return cls(f"unsupported tracker auth_type: {auth_type!r}")

"""Chat sink errors."""

from __future__ import annotations

from crier.errors import ConfigurationError, TransportError

# Slack's error bodies are short tokens; anything longer is truncated.
_BODY_PREVIEW_LIMIT = 100


class ChatPostError(TransportError):
    """Raised when a chat message could not be delivered."""

    @classmethod
    def http_error(cls, status_code: int, body: str = "") -> ChatPostError:
        """Return an error for non-2xx webhook responses."""
        detail = body.strip()[:_BODY_PREVIEW_LIMIT]
        suffix = f": {detail}" if detail else ""
        return cls(f"chat webhook HTTP {status_code}{suffix}", status_code=status_code)

    @classmethod
    def timeout(cls) -> ChatPostError:
        """Return an error for a webhook request that timed out."""
        return cls("chat webhook request timed out")

    @classmethod
    def network_error(cls, detail: str) -> ChatPostError:
        """Return an error for connection-level failures."""
        return cls(f"chat webhook request failed: {detail}")


class ChatConfigError(ConfigurationError):
    """Raised when chat sink configuration is invalid."""

    @classmethod
    def missing_webhook(cls) -> ChatConfigError:
        """Return an error when no webhook URL is configured."""
        return cls("CRIER_SLACK_WEBHOOK_URL or chat.webhook_url is required")

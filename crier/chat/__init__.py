"""Chat sink port, Slack adapter, and message formatting."""

from __future__ import annotations

from .errors import ChatConfigError, ChatPostError
from .sink import ChatSink
from .slack import SlackWebhookSink

__all__ = ["ChatConfigError", "ChatPostError", "ChatSink", "SlackWebhookSink"]

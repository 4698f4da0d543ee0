"""Issue tracker client and domain models."""

from __future__ import annotations

from .auth import HubCredentials, HubOAuth, build_auth
from .client import IssueTrackerClient, YouTrackClient
from .errors import TrackerAPIError, TrackerConfigError, TrackerResponseShapeError
from .models import ChangeEvent, EditRecord, FieldChange, Issue
from .urls import YouTrackUrls

__all__ = [
    "ChangeEvent",
    "EditRecord",
    "FieldChange",
    "HubCredentials",
    "HubOAuth",
    "Issue",
    "IssueTrackerClient",
    "TrackerAPIError",
    "TrackerConfigError",
    "TrackerResponseShapeError",
    "YouTrackClient",
    "YouTrackUrls",
    "build_auth",
]

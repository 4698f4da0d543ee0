"""Configuration loading for crier.

Configuration lives in a YAML 1.2 file validated into msgspec structs.
Secrets and deployment-specific knobs can be supplied through environment
variables instead, which take precedence over the file.

Usage
-----
A minimal configuration file::

    tracker:
      base_url: https://youtrack.example.com
      projects: [ASOC]
      username: crier
    chat:
      webhook_url: https://hooks.slack.com/services/T000/B000/XXXX
      channel_mapping:
        ASOC: "#asoc-dev"

>>> env = {"CRIER_TRACKER_PASSWORD": "s3cret"}
>>> config = load_config("crier.yaml", environ=env)
>>> config.tracker.projects
['ASOC']

"""

from __future__ import annotations

import datetime as dt
import os
import typing as typ
from pathlib import Path

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from crier.common.time import parse_iso_timestamp
from crier.errors import ConfigurationError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

YAML_VERSION = (1, 2)
CONFIG_PATH_ENV = "CRIER_CONFIG"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///crier.db"

# Environment variable -> (section, key); section None means top level.
_ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "CRIER_DATABASE_URL": (None, "database_url"),
    "CRIER_LOG_LEVEL": (None, "log_level"),
    "CRIER_DEPLOYMENT_TIME": (None, "deployment_time"),
    "CRIER_TRACKER_USERNAME": ("tracker", "username"),
    "CRIER_TRACKER_PASSWORD": ("tracker", "password"),
    "CRIER_HUB_CLIENT_SECRET": ("tracker", "hub_client_secret"),
    "CRIER_SLACK_WEBHOOK_URL": ("chat", "webhook_url"),
}


class CrierConfigError(ConfigurationError):
    """Raised when the configuration file or overrides are invalid.

    Attributes
    ----------
    issues
        Every problem found, so operators can fix them in one pass.

    """

    def __init__(self, issues: cabc.Sequence[str]) -> None:
        """Store the issues and build a combined message."""
        self.issues = tuple(issues)
        super().__init__("invalid configuration: " + "; ".join(self.issues))


class TrackerSettings(msgspec.Struct, kw_only=True, frozen=True):
    """Connection settings for the YouTrack instance.

    Attributes
    ----------
    base_url : str
        Address crier uses for REST calls.
    projects : list[str]
        Project short names whose feed is polled.
    external_base_url : str, optional
        Address used in links posted to chat; defaults to ``base_url``.
    auth_type : str
        ``credentials`` for basic auth or ``hub`` for Hub OAuth2.

    """

    base_url: str
    projects: list[str]
    external_base_url: str | None = None
    auth_type: str = "credentials"
    username: str | None = None
    password: str | None = None
    hub_url: str | None = None
    hub_client_id: str | None = None
    hub_client_secret: str | None = None
    hub_resource_server_id: str | None = None
    timeout_s: float = 20.0


class ChatSettings(msgspec.Struct, kw_only=True, frozen=True):
    """Slack webhook settings."""

    webhook_url: str | None = None
    default_channel: str | None = None
    channel_mapping: dict[str, str] = msgspec.field(default_factory=dict)
    username: str | None = "crier"
    icon_emoji: str | None = None
    timeout_s: float = 10.0


class CrierConfig(msgspec.Struct, kw_only=True, frozen=True):
    """Top-level crier configuration.

    Attributes
    ----------
    deployment_time : datetime, optional
        Lower bound for feed and history replay when no checkpoint exists.
        When unset, the first cycle records its start time in the checkpoint
        store and reuses it afterwards.
    poll_interval_s : float
        Seconds between cycles when running as a long-lived process.
    max_resolve_attempts : int
        Failed history resolutions tolerated before a pending issue is
        dropped from the retry queue.

    """

    tracker: TrackerSettings
    chat: ChatSettings = msgspec.field(default_factory=ChatSettings)
    database_url: str = DEFAULT_DATABASE_URL
    deployment_time: dt.datetime | None = None
    poll_interval_s: float = 60.0
    max_resolve_attempts: int = 5
    log_level: str = "INFO"


def _yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    return yaml


def _read_yaml(path: Path) -> dict[str, typ.Any]:
    try:
        loaded = _yaml().load(path.read_text(encoding="utf-8"))
    except (OSError, YAMLError) as exc:
        raise CrierConfigError([f"failed to read {path}: {exc}"]) from exc
    if loaded is None:
        raise CrierConfigError([f"configuration file {path} is empty"])
    if not isinstance(loaded, dict):
        raise CrierConfigError([f"configuration file {path} must be a mapping"])
    return loaded


def _apply_env_overrides(
    raw: dict[str, typ.Any], environ: cabc.Mapping[str, str]
) -> dict[str, typ.Any]:
    merged = {
        key: dict(value) if isinstance(value, dict) else value
        for key, value in raw.items()
    }
    for env_var, (section, key) in _ENV_OVERRIDES.items():
        value = environ.get(env_var, "").strip()
        if not value:
            continue
        if section is None:
            merged[key] = value
        else:
            merged.setdefault(section, {})[key] = value
    return merged


def _coerce_deployment_time(raw: dict[str, typ.Any]) -> list[str]:
    """Normalise ``deployment_time`` into an aware datetime in place."""
    value = raw.get("deployment_time")
    if value is None:
        return []
    try:
        if isinstance(value, str):
            raw["deployment_time"] = parse_iso_timestamp(
                value, field="deployment_time"
            )
        elif isinstance(value, dt.datetime) and value.tzinfo is None:
            return ["deployment_time must include a UTC offset"]
    except ValueError as exc:
        return [f"deployment_time is invalid: {exc}"]
    return []


def validate_config(config: CrierConfig) -> CrierConfig:
    """Check cross-field constraints msgspec cannot express."""
    issues: list[str] = []
    if not config.tracker.base_url.strip():
        issues.append("tracker.base_url must not be empty")
    if not config.tracker.projects:
        issues.append("tracker.projects must list at least one project")
    if config.poll_interval_s <= 0:
        issues.append("poll_interval_s must be positive")
    if config.max_resolve_attempts < 1:
        issues.append("max_resolve_attempts must be at least 1")
    if issues:
        raise CrierConfigError(issues)
    return config


def config_from_mapping(
    raw: dict[str, typ.Any], *, environ: cabc.Mapping[str, str] | None = None
) -> CrierConfig:
    """Build a validated configuration from an already-parsed mapping."""
    merged = _apply_env_overrides(raw, os.environ if environ is None else environ)
    issues = _coerce_deployment_time(merged)
    if issues:
        raise CrierConfigError(issues)
    try:
        config = msgspec.convert(merged, type=CrierConfig)
    except msgspec.ValidationError as exc:
        raise CrierConfigError([f"schema validation failed: {exc}"]) from exc
    return validate_config(config)


def load_config(
    path: Path | str | None = None,
    *,
    environ: cabc.Mapping[str, str] | None = None,
) -> CrierConfig:
    """Load configuration from ``path`` or the file named by ``CRIER_CONFIG``.

    Raises
    ------
    CrierConfigError
        If no file is given, it cannot be parsed, or validation fails.

    """
    env = os.environ if environ is None else environ
    resolved = path or env.get(CONFIG_PATH_ENV, "").strip()
    if not resolved:
        raise CrierConfigError([f"pass --config or set {CONFIG_PATH_ENV}"])
    return config_from_mapping(_read_yaml(Path(resolved)), environ=env)

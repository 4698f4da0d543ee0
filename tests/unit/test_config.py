"""Unit tests for crier configuration loading."""

from __future__ import annotations

import datetime as dt
import typing as typ

import pytest

from crier.config import (
    DEFAULT_DATABASE_URL,
    CrierConfigError,
    config_from_mapping,
    load_config,
)

if typ.TYPE_CHECKING:
    from pathlib import Path

_MINIMAL_YAML = """\
tracker:
  base_url: https://youtrack.example.com
  projects: [ASOC, OPS]
  username: crier
chat:
  webhook_url: https://hooks.slack.test/services/T000/B000/XXXX
  channel_mapping:
    ASOC: "#asoc-dev"
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "crier.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    """Tests for load_config."""

    def test_loads_minimal_file_with_defaults(self, tmp_path: Path) -> None:
        """Unspecified settings take their defaults."""
        config = load_config(_write(tmp_path, _MINIMAL_YAML), environ={})

        assert config.tracker.projects == ["ASOC", "OPS"]
        assert config.chat.channel_mapping == {"ASOC": "#asoc-dev"}
        assert config.database_url == DEFAULT_DATABASE_URL
        assert config.deployment_time is None
        assert config.max_resolve_attempts == 5

    def test_environment_overrides_file_values(self, tmp_path: Path) -> None:
        """Secrets and deployment knobs come from the environment."""
        env = {
            "CRIER_TRACKER_PASSWORD": "s3cret",
            "CRIER_SLACK_WEBHOOK_URL": "https://hooks.slack.test/other",
            "CRIER_DATABASE_URL": "sqlite+aiosqlite:////var/lib/crier/crier.db",
            "CRIER_DEPLOYMENT_TIME": "2024-07-14T10:00:00Z",
        }

        config = load_config(_write(tmp_path, _MINIMAL_YAML), environ=env)

        assert config.tracker.password == "s3cret"
        assert config.chat.webhook_url == "https://hooks.slack.test/other"
        assert config.database_url.endswith("/var/lib/crier/crier.db")
        assert config.deployment_time == dt.datetime(2024, 7, 14, 10, tzinfo=dt.UTC)

    def test_path_falls_back_to_environment(self, tmp_path: Path) -> None:
        """CRIER_CONFIG names the file when no path is passed."""
        path = _write(tmp_path, _MINIMAL_YAML)
        config = load_config(environ={"CRIER_CONFIG": str(path)})
        assert config.tracker.base_url == "https://youtrack.example.com"

    def test_missing_path_is_an_error(self) -> None:
        """Without a path or CRIER_CONFIG there is nothing to load."""
        with pytest.raises(CrierConfigError, match="CRIER_CONFIG"):
            load_config(environ={})

    def test_duplicate_keys_are_rejected(self, tmp_path: Path) -> None:
        """YAML duplicate keys fail loudly."""
        text = _MINIMAL_YAML + "tracker:\n  base_url: https://other\n"
        with pytest.raises(CrierConfigError, match="failed to read"):
            load_config(_write(tmp_path, text), environ={})

    def test_empty_file_is_rejected(self, tmp_path: Path) -> None:
        """An empty document is not a configuration."""
        with pytest.raises(CrierConfigError, match="empty"):
            load_config(_write(tmp_path, ""), environ={})


class TestValidation:
    """Tests for schema and cross-field validation."""

    def test_reports_every_issue(self) -> None:
        """All cross-field problems are listed together."""
        raw = {
            "tracker": {"base_url": " ", "projects": []},
            "poll_interval_s": 0,
        }

        with pytest.raises(CrierConfigError) as excinfo:
            config_from_mapping(raw, environ={})

        assert len(excinfo.value.issues) == 3, (
            "Expected base_url, projects, and poll interval issues"
        )

    def test_schema_errors_are_wrapped(self) -> None:
        """Type mismatches surface as CrierConfigError."""
        raw = {"tracker": {"base_url": "https://yt", "projects": "ASOC"}}
        with pytest.raises(CrierConfigError, match="schema validation failed"):
            config_from_mapping(raw, environ={})

    def test_naive_deployment_time_is_rejected(self) -> None:
        """Deployment time must carry a UTC offset."""
        raw = {
            "tracker": {"base_url": "https://yt", "projects": ["ASOC"]},
            "deployment_time": "2024-07-14T10:00:00",
        }
        with pytest.raises(CrierConfigError, match="deployment_time"):
            config_from_mapping(raw, environ={})

"""Unit tests for the crier runtime entrypoint."""

from __future__ import annotations

import contextlib
import typing as typ

import pytest
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import create_async_engine

import crier.runtime as runtime
from crier.chat import ChatConfigError
from crier.config import CrierConfig, config_from_mapping
from crier.pipeline import NotificationDispatcher

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

_CONFIG_YAML = """\
tracker:
  base_url: https://youtrack.example.com
  projects: [ASOC]
  username: crier
  password: s3cret
chat:
  webhook_url: https://hooks.slack.test/services/T000/B000/XXXX
"""


def _config(tmp_path: Path, **overrides: typ.Any) -> CrierConfig:  # noqa: ANN401
    raw: dict[str, typ.Any] = {
        "tracker": {
            "base_url": "https://youtrack.example.com",
            "projects": ["ASOC"],
            "username": "crier",
            "password": "s3cret",
        },
        "chat": {"webhook_url": "https://hooks.slack.test/services/T000/B000/X"},
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'crier.db'}",
        "poll_interval_s": 0.001,
    }
    raw.update(overrides)
    return config_from_mapping(raw, environ={})


class _CountingDispatcher:
    def __init__(self) -> None:
        self.cycles = 0

    async def run_cycle(self) -> int:
        self.cycles += 1
        return 0


class TestOpenDispatcher:
    """Tests for dispatcher wiring."""

    @pytest.mark.asyncio
    async def test_builds_dispatcher_and_creates_tables(self, tmp_path: Path) -> None:
        """The checkpoint tables exist once the dispatcher is open."""
        config = _config(tmp_path)

        async with runtime.open_dispatcher(config) as dispatcher:
            assert isinstance(dispatcher, NotificationDispatcher)

        engine = create_async_engine(config.database_url)
        try:
            async with engine.connect() as conn:
                tables = await conn.run_sync(
                    lambda sync_conn: inspect(sync_conn).get_table_names()
                )
        finally:
            await engine.dispose()
        assert {"checkpoint_markers", "issue_checkpoints", "pending_issues"} <= set(
            tables
        )

    @pytest.mark.asyncio
    async def test_missing_webhook_is_rejected(self, tmp_path: Path) -> None:
        """A dispatcher cannot be built without a chat destination."""
        config = _config(tmp_path, chat={})

        with pytest.raises(ChatConfigError):
            async with runtime.open_dispatcher(config):
                pass


@pytest.mark.asyncio
async def test_run_forever_stops_after_max_cycles(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """run_forever keeps cycling until the bound is reached."""
    dispatcher = _CountingDispatcher()

    @contextlib.asynccontextmanager
    async def fake_open(config: CrierConfig) -> cabc.AsyncIterator[typ.Any]:
        del config
        yield dispatcher

    monkeypatch.setattr(runtime, "open_dispatcher", fake_open)

    await runtime.run_forever(_config(tmp_path), max_cycles=3)

    assert dispatcher.cycles == 3


class TestMain:
    """Tests for the command-line interface."""

    @pytest.fixture(autouse=True)
    def _quiet_logging(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            runtime, "configure_logging", lambda level: ("INFO", level == "nope")
        )

    def test_once_runs_single_cycle(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """--once runs one cycle and exits cleanly."""
        path = tmp_path / "crier.yaml"
        path.write_text(_CONFIG_YAML, encoding="utf-8")
        seen: list[CrierConfig] = []

        async def fake_run_once(config: CrierConfig) -> int:
            seen.append(config)
            return 0

        monkeypatch.setattr(runtime, "run_once", fake_run_once)

        status = runtime.main(["--config", str(path), "--once", "--log-level", "nope"])

        assert status == 0
        assert [config.tracker.projects for config in seen] == [["ASOC"]]

    def test_invalid_configuration_exits_with_error(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Configuration problems produce a non-zero exit status."""
        monkeypatch.delenv("CRIER_CONFIG", raising=False)
        assert runtime.main(["--once"]) == 2

"""Crier runtime entrypoint.

Wires the tracker client, chat sink, and checkpoint store into a
:class:`~crier.pipeline.NotificationDispatcher` and runs notification cycles,
either once or on a fixed poll interval.

Configuration comes from the YAML file named by ``--config`` or
``CRIER_CONFIG``; see :mod:`crier.config` for the environment overrides.

Run the service directly with ``python -m crier.runtime`` or the ``crier``
console script.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import typing as typ

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from crier.chat import ChatConfigError, SlackWebhookSink
from crier.checkpoints import SqlCheckpointStore, init_checkpoint_storage
from crier.config import load_config
from crier.errors import ConfigurationError
from crier.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)
from crier.pipeline import EditHistoryResolver, FeedExtractor, NotificationDispatcher
from crier.tracker import YouTrackClient

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from crier.config import CrierConfig

__all__ = ["main", "open_dispatcher", "run_forever", "run_once"]

logger = get_logger(__name__)


@contextlib.asynccontextmanager
async def open_dispatcher(
    config: CrierConfig,
) -> cabc.AsyncIterator[NotificationDispatcher]:
    """Build a dispatcher and release its resources on exit.

    The checkpoint tables are created if missing. HTTP clients owned by the
    tracker client and chat sink are closed and the engine is disposed when
    the context exits, including on error.
    """
    if not config.chat.webhook_url:
        raise ChatConfigError.missing_webhook()

    engine = create_async_engine(config.database_url)
    async with contextlib.AsyncExitStack() as stack:
        stack.push_async_callback(engine.dispose)
        await init_checkpoint_storage(engine)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)

        client = YouTrackClient.from_settings(config.tracker)
        stack.push_async_callback(client.aclose)
        sink = SlackWebhookSink.from_settings(config.chat, client.urls)
        stack.push_async_callback(sink.aclose)

        yield NotificationDispatcher(
            FeedExtractor(client),
            EditHistoryResolver(client),
            sink,
            SqlCheckpointStore(session_factory),
            deployment_time=config.deployment_time,
            max_resolve_attempts=config.max_resolve_attempts,
        )


async def run_once(config: CrierConfig) -> int:
    """Run a single notification cycle and return the events processed."""
    async with open_dispatcher(config) as dispatcher:
        return await dispatcher.run_cycle()


async def run_forever(
    config: CrierConfig, *, max_cycles: int | None = None
) -> None:
    """Run cycles back to back, sleeping ``poll_interval_s`` between them.

    ``max_cycles`` bounds the loop; ``None`` runs until cancelled.
    """
    cycles = 0
    async with open_dispatcher(config) as dispatcher:
        while max_cycles is None or cycles < max_cycles:
            processed = await dispatcher.run_cycle()
            cycles += 1
            log_info(
                logger,
                "Cycle %d processed %d events; next poll in %.1fs",
                cycles,
                processed,
                config.poll_interval_s,
            )
            if max_cycles is None or cycles < max_cycles:
                await asyncio.sleep(config.poll_interval_s)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crier",
        description="Post YouTrack issue changes to Slack.",
    )
    parser.add_argument(
        "--config",
        help="Path to the YAML configuration file (default: $CRIER_CONFIG).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single notification cycle and exit.",
    )
    parser.add_argument(
        "--log-level",
        help="Override the configured log level.",
    )
    return parser


def main(argv: cabc.Sequence[str] | None = None) -> int:
    """Run the crier command-line interface and return an exit status."""
    args = _build_parser().parse_args(argv)
    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        configure_logging(args.log_level)
        log_error(logger, "Cannot start crier: %s", exc)
        return 2

    requested_level = args.log_level or config.log_level
    normalized_level, invalid_level = configure_logging(requested_level)
    if invalid_level:
        log_warning(
            logger,
            "Invalid log level %r, falling back to %s",
            requested_level,
            normalized_level,
        )

    log_info(
        logger,
        "Starting crier for projects %s (once=%s, log_level=%s)",
        ",".join(config.tracker.projects),
        args.once,
        normalized_level,
    )
    try:
        if args.once:
            asyncio.run(run_once(config))
        else:
            asyncio.run(run_forever(config))
    except ConfigurationError as exc:
        log_error(logger, "Cannot start crier: %s", exc)
        return 2
    except KeyboardInterrupt:
        log_info(logger, "Interrupted; stopping crier")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

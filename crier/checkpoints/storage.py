"""Persistence models for durable notification checkpoints."""

from __future__ import annotations

import datetime as dt
import typing as typ

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from crier.common.time import utcnow

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine

FEED_POSITION_MARKER = "feed_position"
DEPLOYMENT_TIME_MARKER = "deployment_time"


class Base(DeclarativeBase):
    """Base declarative class for checkpoint models."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Force bound datetime values to UTC with tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            msg = "checkpoint timestamps must be timezone aware"
            raise ValueError(msg)
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Ensure result datetimes are UTC and timezone aware."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class CheckpointMarker(Base):
    """Named global timestamp, such as the feed position."""

    __tablename__ = "checkpoint_markers"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    position: Mapped[dt.datetime] = mapped_column(UTCDateTime())
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


class IssueCheckpoint(Base):
    """Timestamp of the newest change already notified for one issue."""

    __tablename__ = "issue_checkpoints"

    issue_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    last_notified_at: Mapped[dt.datetime] = mapped_column(UTCDateTime())
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


class PendingIssueRecord(Base):
    """Issue whose edit history could not be resolved and awaits a retry."""

    __tablename__ = "pending_issues"

    issue_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    title: Mapped[str | None] = mapped_column(Text(), default=None)
    published_at: Mapped[dt.datetime] = mapped_column(UTCDateTime())
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(Text(), default=None)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


async def init_checkpoint_storage(engine: AsyncEngine) -> None:
    """Create all checkpoint tables if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

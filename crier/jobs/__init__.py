"""Dramatiq entry points for scheduled notification cycles."""

from __future__ import annotations

from .actor import check_for_new_events_job

__all__ = ["check_for_new_events_job"]

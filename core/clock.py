"""
core/clock.py -- Wall-clock source shared by token issuing and session storage.

Every component that stamps or compares a time takes a Clock callable instead
of calling datetime.now() itself, so tests can freeze or advance time. Token
claims and refresh-token rows both use whole epoch seconds.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_epoch(moment: datetime) -> int:
    """Truncate an aware datetime to whole seconds since the epoch."""
    return int(moment.timestamp())


def from_epoch(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)

"""
core/clock.py -- Time source shared by the credential components.

Every component that compares against "now" takes a Clock callable instead of
calling datetime.now() itself. Production code passes utc_now; tests pass a
clock they can advance past an expiry window.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)

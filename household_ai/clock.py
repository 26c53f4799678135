"""
Clock abstraction.

Proposal TTLs and undo windows are wall-clock deadlines checked lazily.
Components take a clock in their constructor so tests can move time.
"""

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Timezone-aware UTC wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def utcnow() -> datetime:
    """Default factory for model timestamps."""
    return datetime.now(timezone.utc)

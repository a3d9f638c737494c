"""Time source for validity-window checks."""
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Current UTC time"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

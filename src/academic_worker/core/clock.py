"""
Clock Abstraction

Jobs never read the wall clock directly; they receive a Clock so that
"today" can be pinned in tests.
"""

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo


class Clock:
    """Wall clock in a fixed timezone."""

    def __init__(self, timezone: str = "UTC"):
        self.tz = UTC if timezone.upper() == "UTC" else ZoneInfo(timezone)

    def now(self) -> datetime:
        """Current timezone-aware datetime."""
        return datetime.now(self.tz)

    def today(self) -> date:
        """Current calendar date in the clock's timezone."""
        return self.now().date()


class FixedClock(Clock):
    """Clock frozen at a given instant. Used by tests and manual replays."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        self.tz = instant.tzinfo
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def set(self, instant: datetime) -> None:
        """Move the frozen instant."""
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=self.tz)
        self.instant = instant

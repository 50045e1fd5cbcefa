# core/clock.py
"""
Injectable time source. Due-date comparisons and the reminder schedule read
the current time only through a Clock.
"""
from datetime import date, datetime, timezone


class Clock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


system_clock = Clock()

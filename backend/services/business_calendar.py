"""Business time calculations for a distributed team.

The working window is the overlap of the team's office hours (06:00-18:00 by
default). Weekends are excluded. A day whose window is fully covered counts as
exactly one business day, while a partially covered day is measured against an
8 hour productive day, so a partial day can weigh more than its share of the
12 hour window. Metric values depend on that asymmetry; keep it.
"""

from datetime import datetime, timedelta
from typing import Optional

DEFAULT_START_HOUR = 6
DEFAULT_END_HOUR = 18
DEFAULT_PRODUCTIVE_HOURS = 8

SATURDAY = 5


class BusinessCalendar:
    """Working-hours model used for every elapsed-time metric."""

    def __init__(self, start_hour: int = DEFAULT_START_HOUR,
                 end_hour: int = DEFAULT_END_HOUR,
                 productive_hours: float = DEFAULT_PRODUCTIVE_HOURS):
        if not 0 <= start_hour < end_hour <= 24:
            raise ValueError(
                f"Invalid business hours: {start_hour}:00-{end_hour}:00"
            )
        if productive_hours <= 0:
            raise ValueError("productive_hours must be positive")

        self.start_hour = start_hour
        self.end_hour = end_hour
        self.productive_hours = productive_hours

    @property
    def window(self) -> timedelta:
        return timedelta(hours=self.end_hour - self.start_hour)

    @property
    def productive_day(self) -> timedelta:
        return timedelta(hours=self.productive_hours)

    @property
    def seconds_per_day(self) -> float:
        """Seconds in one business day, used to express days as durations."""
        return self.productive_day.total_seconds()

    @classmethod
    def from_config(cls, config: Optional[dict]) -> "BusinessCalendar":
        """Build a calendar from the ``businessHours`` config section."""
        config = config or {}
        return cls(
            start_hour=int(config.get("startHour", DEFAULT_START_HOUR)),
            end_hour=int(config.get("endHour", DEFAULT_END_HOUR)),
            productive_hours=float(config.get("productiveHours", DEFAULT_PRODUCTIVE_HOURS)),
        )

    def _at_start_hour(self, moment: datetime) -> datetime:
        return moment.replace(hour=self.start_hour, minute=0, second=0, microsecond=0)

    def elapsed_business_days(self, start: datetime, end: datetime) -> float:
        """Business days elapsed between two instants.

        Returns 0 when ``end`` is not after ``start``.
        """
        total_days = 0.0
        current = start

        while current < end:
            weekday = current.weekday()

            if weekday >= SATURDAY:
                # Jump to Monday morning
                current = self._at_start_hour(current) + timedelta(days=7 - weekday)
                continue

            business_start = self._at_start_hour(current)
            business_end = current.replace(hour=0, minute=0, second=0, microsecond=0) + \
                timedelta(hours=self.end_hour)

            interval_start = max(current, business_start)
            interval_end = min(end, business_end)

            if interval_end > interval_start:
                overlap = interval_end - interval_start
                if overlap < self.window:
                    total_days += overlap / self.productive_day
                else:
                    total_days += 1

            current = self._at_start_hour(current) + timedelta(days=1)

        return total_days

    def count_working_days(self, start: datetime, end: datetime) -> int:
        """Count weekdays from ``start``'s date up to, not including, ``end``'s date."""
        current = start.replace(hour=0, minute=0, second=0, microsecond=0)
        stop = end.replace(hour=0, minute=0, second=0, microsecond=0)

        working_days = 0
        while current < stop:
            if current.weekday() < SATURDAY:
                working_days += 1
            current += timedelta(days=1)

        return working_days

    def business_dates(self, start: datetime, end: datetime) -> list:
        """Weekday instants from ``start`` to ``end`` inclusive, one per day."""
        dates = []
        current = start
        while current <= end:
            if current.weekday() < SATURDAY:
                dates.append(current)
            current += timedelta(days=1)
        return dates


DEFAULT_CALENDAR = BusinessCalendar()


def elapsed_business_days(start: datetime, end: datetime) -> float:
    """Business days between two instants using the default 06:00-18:00 calendar."""
    return DEFAULT_CALENDAR.elapsed_business_days(start, end)

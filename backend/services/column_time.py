"""Business time an issue spent in each board column during a sprint."""

from typing import Optional

from services.business_calendar import DEFAULT_CALENDAR, BusinessCalendar
from services.models import SprintTimeline

UNKNOWN_COLUMN = "Unknown"


def allocate_column_time(timeline: SprintTimeline, columns,
                         calendar: Optional[BusinessCalendar] = None) -> dict:
    """Apportion business days across the columns an issue sat in.

    Each interval between two consecutive timeline events (boundary events
    included) is charged to the column the issue moved into at the start of
    the interval. The entry and terminal columns are queues rather than work,
    so they are left out of the result.
    """
    calendar = calendar or DEFAULT_CALENDAR
    events = timeline.with_boundary_events()
    time_spent = {}

    for current, following in zip(events, events[1:]):
        column = current.to_column or UNKNOWN_COLUMN
        days = calendar.elapsed_business_days(current.at, following.at)
        time_spent[column] = time_spent.get(column, 0.0) + days

    if columns:
        time_spent.pop(columns[0], None)
        time_spent.pop(columns[-1], None)

    return time_spent

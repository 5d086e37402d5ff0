"""Behavioural flags for an issue within one sprint.

Each flag is computed independently from the issue's sprint timeline. Flags
that ask "did this happen during the sprint" only look at real in-sprint
events; flags that ask "what state did the issue enter or leave the sprint
in" also look at the synthetic boundary events.
"""

import re
from datetime import datetime

from services.models import IssueFlags, SprintTimeline, SprintWindow

BLOCK_PATTERN = re.compile(r"block", re.IGNORECASE)

COMPLETED_STATUSES = {"done", "complete"}
CLOSED_STATUSES = {"closed", "resolved"}
SPILLOVER_END_STATUSES = {"done", "closed", "resolved", "complete"}

# Flag key -> label, in the order consumers list them
FLAG_FILTERS = [
    ("isBlocked", "Blocked"),
    ("isIncidentResponse", "Incident Response"),
    ("isBackAndForth", "Back-and-forth"),
    ("isUnplanned", "Unplanned"),
    ("isInherited", "Inherited"),
    ("isSpillover", "Spillover"),
    ("isCompleted", "Completed"),
    ("isClosed", "Closed"),
]


def _terminal(window: SprintWindow) -> set:
    return {window.terminal_column.lower()} if window.terminal_column else set()


def is_incident_response(category: str) -> bool:
    return "incident" in (category or "").lower()


def is_blocked(timeline: SprintTimeline) -> bool:
    """The issue entered a blocked column during the sprint."""
    return any(BLOCK_PATTERN.search(e.to_column) for e in timeline.real_events())


def is_back_and_forth(timeline: SprintTimeline) -> bool:
    """The issue entered the same non-blocked column more than once during the sprint."""
    visits = {}
    for event in timeline.real_events():
        visits[event.to_column] = visits.get(event.to_column, 0) + 1

    return any(
        count > 1 and not BLOCK_PATTERN.search(column)
        for column, count in visits.items()
    )


def is_unplanned(created_at: datetime, window: SprintWindow) -> bool:
    """Created while the sprint was running."""
    return window.start <= created_at <= window.end


def is_inherited(created_at: datetime, timeline: SprintTimeline, window: SprintWindow) -> bool:
    """Already in progress when the sprint began.

    The issue predates the sprint and its first event, boundary included, did
    not start from the board's entry column.
    """
    if created_at >= window.start:
        return False

    events = timeline.with_boundary_events()
    if not events:
        return False

    entry = (window.entry_column or "").lower()
    return events[0].from_column.lower() != entry


def is_spillover(timeline: SprintTimeline, window: SprintWindow) -> bool:
    """Still open, or moved on, at or after the sprint end."""
    events = timeline.with_boundary_events()
    if not events:
        return False

    if any(e.at >= window.end for e in events):
        return True

    end_statuses = SPILLOVER_END_STATUSES | _terminal(window)
    return events[-1].to_column.lower() not in end_statuses


def is_completed(timeline: SprintTimeline, window: SprintWindow) -> bool:
    events = timeline.real_events()
    if not events:
        return False
    return events[-1].to_column.lower() in COMPLETED_STATUSES | _terminal(window)


def is_closed(timeline: SprintTimeline) -> bool:
    events = timeline.real_events()
    if not events:
        return False
    return events[-1].to_column.lower() in CLOSED_STATUSES


def classify_issue(created_at: datetime, category: str, timeline: SprintTimeline,
                   window: SprintWindow) -> IssueFlags:
    """Compute every flag for one issue in one sprint."""
    completed = is_completed(timeline, window)

    return IssueFlags(
        is_blocked=is_blocked(timeline),
        is_incident_response=is_incident_response(category),
        is_back_and_forth=is_back_and_forth(timeline),
        is_unplanned=is_unplanned(created_at, window),
        is_inherited=is_inherited(created_at, timeline, window),
        is_spillover=is_spillover(timeline, window),
        is_completed=completed,
        # A terminal column named "Closed" counts as completion, not closure
        is_closed=not completed and is_closed(timeline),
    )

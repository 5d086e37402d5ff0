"""Status timelines: changelog normalization and sprint-scoped reconstruction."""

import logging
from dataclasses import dataclass
from typing import Optional

from services.models import (
    SprintTimeline,
    SprintWindow,
    StatusTransition,
    TimelineEvent,
)

logger = logging.getLogger(__name__)

STATUS_FIELD = "status"

# Statuses after which an issue no longer needs an end-of-sprint boundary
CLOSED_OUT_STATUSES = {"done", "fixed", "finished", "closed", "cancelled"}

# Statuses that mark an issue as finished when deriving completed_at
FINISHED_STATUSES = {"done", "complete", "closed", "resolved"}


@dataclass(frozen=True)
class NormalizationResult:
    """Transitions recovered from a changelog plus warnings for dropped entries."""

    transitions: tuple = ()
    warnings: tuple = ()


def _resolve(status_map: dict, status_id: Optional[str], label: Optional[str]) -> str:
    if status_id is not None:
        column = status_map.get(str(status_id))
        if column:
            return column
    return label or ""


def normalize_changelog(raw_events: list, status_map: Optional[dict] = None,
                        issue_key: str = "") -> NormalizationResult:
    """Turn one issue's raw changelog into ordered status transitions.

    Only status changes are kept. Status ids are resolved to board column
    names through ``status_map``; ids without a mapping keep their raw label.
    Entries without a field name or timestamp are dropped and reported in
    ``warnings`` rather than failing the whole issue.
    """
    status_map = status_map or {}
    transitions = []
    warnings = []

    for position, event in enumerate(raw_events):
        if not event.field:
            message = f"{issue_key or 'issue'}: changelog entry {position} has no field name, skipped"
            logger.warning(message)
            warnings.append(message)
            continue

        if event.field != STATUS_FIELD:
            continue

        if event.occurred_at is None:
            message = f"{issue_key or 'issue'}: status change {position} has no timestamp, skipped"
            logger.warning(message)
            warnings.append(message)
            continue

        transitions.append(StatusTransition(
            from_column=_resolve(status_map, event.from_id, event.from_label),
            to_column=_resolve(status_map, event.to_id, event.to_label),
            at=event.occurred_at,
            from_id=event.from_id,
            to_id=event.to_id,
        ))

    # Stable sort keeps same-timestamp changes in their logged order
    transitions.sort(key=lambda t: t.at)

    return NormalizationResult(transitions=tuple(transitions), warnings=tuple(warnings))


def build_sprint_timeline(transitions, window: SprintWindow) -> SprintTimeline:
    """Build the sprint-scoped timeline for one issue.

    The result holds every real transition inside ``[start, end]`` tagged
    in-sprint, preceded by a boundary event at ``start`` carrying the column
    the issue was already in, and followed by a boundary event at ``end`` when
    the issue was still in flight once the sprint closed.
    """
    in_window = []
    last_before = None
    first_after = None

    for transition in transitions:
        if transition.at < window.start:
            if last_before is None or transition.at >= last_before.at:
                last_before = transition
        elif transition.at > window.end:
            if first_after is None or transition.at < first_after.at:
                first_after = transition
        else:
            in_window.append(transition)

    in_window.sort(key=lambda t: t.at)
    events = []

    if last_before is not None:
        # The issue sat in this column when the sprint began
        events.append(TimelineEvent(
            transition=StatusTransition(
                from_column=last_before.to_column,
                to_column=last_before.to_column,
                at=window.start,
                from_id=last_before.to_id,
                to_id=last_before.to_id,
            ),
            in_sprint=False,
        ))

    events.extend(TimelineEvent(transition=t, in_sprint=True) for t in in_window)

    if first_after is not None:
        if in_window:
            last_known = in_window[-1].to_column
            last_known_id = in_window[-1].to_id
        elif last_before is not None:
            last_known = last_before.to_column
            last_known_id = last_before.to_id
        else:
            last_known = ""
            last_known_id = None

        events.append(TimelineEvent(
            transition=StatusTransition(
                from_column=last_known,
                to_column=first_after.to_column,
                at=window.end,
                from_id=last_known_id,
                to_id=first_after.to_id,
            ),
            in_sprint=False,
        ))
    elif in_window and in_window[-1].to_column.lower() not in CLOSED_OUT_STATUSES:
        # Still open when the sprint ended
        last = in_window[-1]
        events.append(TimelineEvent(
            transition=StatusTransition(
                from_column=last.to_column,
                to_column=last.to_column,
                at=window.end,
                from_id=last.to_id,
                to_id=last.to_id,
            ),
            in_sprint=False,
        ))

    return SprintTimeline(events=tuple(events))


def find_work_started_at(transitions, window: SprintWindow):
    """When the issue first left the board's entry column, if it ever did."""
    entry = (window.entry_column or "").lower()
    if not entry:
        return None

    for transition in transitions:
        if transition.from_column.lower() == entry and transition.to_column.lower() != entry:
            return transition.at
    return None


def find_completed_at(transitions, window: SprintWindow):
    """When the issue last reached a finished column and stayed there."""
    finished = set(FINISHED_STATUSES)
    if window.terminal_column:
        finished.add(window.terminal_column.lower())

    completed_at = None
    for transition in transitions:
        if transition.to_column.lower() in finished:
            if completed_at is None or transition.from_column.lower() not in finished:
                completed_at = transition.at
        else:
            # Reopened
            completed_at = None
    return completed_at

"""Adapters from already-fetched Jira payloads to analysis inputs.

Accepts both Jira's native shapes (``fields``, ``changelog.histories``,
board ``columnConfig``) and the flat shape used by the dashboard
(``createdAt``, ``storyPoints``, ``changelog`` as a list of change events).
"""

import logging
from datetime import datetime, timezone, tzinfo
from typing import Optional

from services.exceptions import InvalidSprintWindow, PayloadError
from services.models import IssueInput, RawChangeEvent, SprintWindow

logger = logging.getLogger(__name__)

# Story points live in different custom fields depending on the Jira instance
STORY_POINTS_FIELDS = ["customfield_10004", "customfield_10002", "customfield_10016", "customfield_10020"]
CATEGORY_FIELDS = ["customfield_25138", "customfield_22453"]

DATE_FORMATS = [
    "%Y-%m-%dT%H:%M:%S.%f%z",  # With milliseconds and timezone
    "%Y-%m-%dT%H:%M:%S%z",      # Without milliseconds, with timezone
    "%Y-%m-%dT%H:%M:%S.%f",     # With milliseconds, no timezone
    "%Y-%m-%dT%H:%M:%S",        # Basic ISO format
    "%Y-%m-%d"                   # Date only
]


def parse_date(value, tz: tzinfo = timezone.utc) -> Optional[datetime]:
    """Parse a Jira date string into an aware datetime in ``tz``.

    Jira formats look like "2024-10-31T12:11:56.289-0400"; sprint dates use a
    trailing "Z". Naive values are taken to already be in ``tz``.
    Returns None for empty or unparseable input.
    """
    if not value:
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+0000"

        parsed = None
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

        if parsed is None:
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz)


def _first_value(*candidates):
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


def _optional_id(value) -> Optional[str]:
    return str(value) if value is not None and value != "" else None


def _event_from_item(item: dict, created, tz: tzinfo) -> RawChangeEvent:
    return RawChangeEvent(
        field=item.get("field"),
        from_id=_optional_id(item.get("from")),
        from_label=item.get("fromString"),
        to_id=_optional_id(item.get("to")),
        to_label=item.get("toString"),
        occurred_at=parse_date(created, tz),
    )


def _flat_event(entry: dict, tz: tzinfo) -> RawChangeEvent:
    return RawChangeEvent(
        field=_first_value(entry.get("fieldChanged"), entry.get("field")),
        from_id=_optional_id(_first_value(entry.get("fromId"), entry.get("fromStatusId"))),
        from_label=_first_value(entry.get("fromLabel"), entry.get("fromString")),
        to_id=_optional_id(_first_value(entry.get("toId"), entry.get("statusId"))),
        to_label=_first_value(entry.get("toLabel"), entry.get("toString")),
        occurred_at=parse_date(_first_value(entry.get("occurredAt"), entry.get("at")), tz),
    )


def parse_changelog(changelog, tz: tzinfo = timezone.utc) -> list:
    """Flatten a changelog payload into raw change events.

    ``changelog`` may be Jira's ``{"histories": [...]}`` (issue expand) or
    ``{"values": [...]}`` (changelog endpoint), a bare list of histories each
    holding ``items``, or a flat list of change events. Unparseable timestamps
    come through as ``occurred_at=None`` so the normalizer can report them.
    """
    if not changelog:
        return []

    if isinstance(changelog, dict):
        entries = changelog.get("histories") or changelog.get("values") or []
    else:
        entries = changelog

    events = []
    for entry in entries:
        if not isinstance(entry, dict):
            logger.warning(f"Ignoring non-object changelog entry: {entry!r}")
            continue

        if "items" in entry:
            for item in entry.get("items") or []:
                if not isinstance(item, dict):
                    logger.warning(f"Ignoring non-object changelog item: {item!r}")
                    continue
                events.append(_event_from_item(item, entry.get("created"), tz))
        else:
            events.append(_flat_event(entry, tz))

    return events


def get_story_points(fields: dict, field_ids=None) -> float:
    """Extract story points from issue fields, 0 when not estimated."""
    for field_id in field_ids or STORY_POINTS_FIELDS:
        points = fields.get(field_id)
        if points is not None:
            try:
                return float(points)
            except (TypeError, ValueError):
                pass
    return 0.0


def get_category(fields: dict, field_ids=None) -> str:
    """Work sub-category, from the first category field that has a value."""
    for field_id in field_ids or CATEGORY_FIELDS:
        value = fields.get(field_id)
        if isinstance(value, dict):
            value = value.get("value")
        if value:
            return str(value)
    return ""


def parse_issue(payload: dict, tz: tzinfo = timezone.utc,
                story_points_fields=None, category_fields=None) -> IssueInput:
    """Build an IssueInput from a native Jira issue or a flat issue object."""
    if not isinstance(payload, dict):
        raise PayloadError("Issue must be an object")

    key = payload.get("key")
    if not key:
        raise PayloadError("Issue is missing its key")

    fields = payload.get("fields")
    if isinstance(fields, dict):
        created = fields.get("created")
        story_points = get_story_points(fields, story_points_fields)
        category = get_category(fields, category_fields)
        summary = fields.get("summary", "")
        # Changelog can be at issue level (expand=changelog) or in fields
        changelog = payload.get("changelog") or fields.get("changelog")
    else:
        created = _first_value(payload.get("createdAt"), payload.get("created"))
        story_points = get_story_points(payload, ["storyPoints"])
        category = _first_value(payload.get("category"), payload.get("subCategory")) or ""
        summary = payload.get("summary", "")
        changelog = _first_value(payload.get("changelog"), payload.get("rawChangeLog"), payload.get("history"))

    created_at = parse_date(created, tz)
    if created_at is None:
        raise PayloadError(f"Issue {key} has no valid creation date")

    return IssueInput(
        id=str(payload.get("id") or key),
        key=key,
        created_at=created_at,
        story_points=story_points,
        category=category,
        summary=summary or "",
        raw_events=tuple(parse_changelog(changelog, tz)),
    )


def parse_board(payload: dict) -> tuple:
    """Return ``(columns, status_map)`` from a board descriptor.

    Supports Jira's board configuration (``columnConfig.columns`` with
    ``statuses``) and the flat ``{"columns": [...], "statusMap": {...}}``.
    """
    if not isinstance(payload, dict):
        raise PayloadError("Board must be an object")

    raw_columns = payload.get("columns")
    if raw_columns is None:
        raw_columns = (payload.get("columnConfig") or {}).get("columns", [])

    columns = []
    status_map = {}
    for column in raw_columns:
        if isinstance(column, dict):
            name = column.get("name", "")
            for status in column.get("statuses") or []:
                if not isinstance(status, dict):
                    raise PayloadError(f"Malformed status in board column {name!r}: {status!r}")
                if status.get("id") is not None:
                    status_map[str(status["id"])] = name
        else:
            name = str(column)
        columns.append(name)

    extra_statuses = payload.get("statusMap") or {}
    if not isinstance(extra_statuses, dict):
        raise PayloadError("Board statusMap must be an object")

    for status_id, name in extra_statuses.items():
        status_map[str(status_id)] = name

    return columns, status_map


def parse_sprint_window(payload: dict, columns, tz: tzinfo = timezone.utc) -> SprintWindow:
    """Build and validate the sprint window."""
    if not isinstance(payload, dict):
        raise PayloadError("Sprint must be an object")

    start = parse_date(_first_value(payload.get("start"), payload.get("startDate")), tz)
    end = parse_date(_first_value(payload.get("end"), payload.get("endDate")), tz)

    if start is None or end is None:
        raise PayloadError("Sprint start and end dates are required")

    return make_sprint_window(start, end, columns, payload.get("name", ""))


def make_sprint_window(start: datetime, end: datetime, columns, name: str = "") -> SprintWindow:
    if start > end:
        raise InvalidSprintWindow(f"Sprint starts after it ends ({start.isoformat()} > {end.isoformat()})")
    if not columns:
        raise InvalidSprintWindow("Sprint board has no columns")
    return SprintWindow(start=start, end=end, columns=tuple(columns), name=name)

"""Value objects shared by the sprint timeline and metrics services.

Everything here is a frozen dataclass: once an issue has been classified for a
sprint it is never mutated, and metrics are always recomputed from inputs.
``to_dict`` methods produce the camelCase JSON shape returned by the API.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class RawChangeEvent:
    """One logged field change on an issue, as handed over by the tracker."""

    field: Optional[str]
    from_label: Optional[str]
    to_label: Optional[str]
    occurred_at: Optional[datetime]
    from_id: Optional[str] = None
    to_id: Optional[str] = None


@dataclass(frozen=True)
class IssueInput:
    """An issue as supplied by the tracker, before any sprint processing."""

    id: str
    key: str
    created_at: datetime
    story_points: float = 0.0
    category: str = ""
    summary: str = ""
    raw_events: tuple = ()


@dataclass(frozen=True)
class StatusTransition:
    """A status change with both ends resolved to board column names."""

    from_column: str
    to_column: str
    at: datetime
    from_id: Optional[str] = None
    to_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "fromString": self.from_column,
            "fromStatusId": self.from_id,
            "toString": self.to_column,
            "statusId": self.to_id,
            "at": _iso(self.at),
        }


@dataclass(frozen=True)
class TimelineEvent:
    """A transition placed on a sprint timeline.

    ``in_sprint`` is True only for real transitions inside the sprint window.
    Synthetic boundary events and out-of-window transitions carry False.
    """

    transition: StatusTransition
    in_sprint: bool

    @property
    def at(self) -> datetime:
        return self.transition.at

    @property
    def from_column(self) -> str:
        return self.transition.from_column

    @property
    def to_column(self) -> str:
        return self.transition.to_column

    def to_dict(self) -> dict:
        data = self.transition.to_dict()
        data["inSprint"] = self.in_sprint
        return data


@dataclass(frozen=True)
class SprintTimeline:
    """Sprint-scoped timeline of one issue, ordered by time.

    Use ``real_events`` to ask "did this happen during the sprint" and
    ``with_boundary_events`` to ask "what state did the issue enter or leave
    the sprint in".
    """

    events: tuple = ()

    def real_events(self) -> list:
        """Events for real transitions that happened inside the sprint."""
        return [e for e in self.events if e.in_sprint]

    def with_boundary_events(self) -> list:
        """All events, including synthetic start/end boundary events."""
        return list(self.events)

    def __len__(self):
        return len(self.events)

    def to_list(self) -> list:
        return [e.to_dict() for e in self.events]


@dataclass(frozen=True)
class SprintWindow:
    """The reporting period: ``[start, end]`` plus ordered board columns."""

    start: datetime
    end: datetime
    columns: tuple = ()
    name: str = ""

    @property
    def entry_column(self) -> Optional[str]:
        return self.columns[0] if self.columns else None

    @property
    def terminal_column(self) -> Optional[str]:
        return self.columns[-1] if self.columns else None

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "start": _iso(self.start),
            "end": _iso(self.end),
            "columns": list(self.columns),
        }


@dataclass(frozen=True)
class IssueFlags:
    is_blocked: bool = False
    is_incident_response: bool = False
    is_back_and_forth: bool = False
    is_unplanned: bool = False
    is_inherited: bool = False
    is_spillover: bool = False
    is_completed: bool = False
    is_closed: bool = False

    def to_dict(self) -> dict:
        return {
            "isBlocked": self.is_blocked,
            "isIncidentResponse": self.is_incident_response,
            "isBackAndForth": self.is_back_and_forth,
            "isUnplanned": self.is_unplanned,
            "isInherited": self.is_inherited,
            "isSpillover": self.is_spillover,
            "isCompleted": self.is_completed,
            "isClosed": self.is_closed,
        }


@dataclass(frozen=True)
class Issue:
    """A tracker issue after it has been processed for one sprint."""

    id: str
    key: str
    created_at: datetime
    story_points: float = 0.0
    category: str = ""
    summary: str = ""
    transitions: tuple = ()
    sprint_timeline: SprintTimeline = field(default_factory=SprintTimeline)
    work_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    flags: IssueFlags = field(default_factory=IssueFlags)
    column_time: dict = field(default_factory=dict, compare=False)

    @property
    def is_done(self) -> bool:
        """Completed or closed during the sprint."""
        return self.flags.is_completed or self.flags.is_closed

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "summary": self.summary,
            "created": _iso(self.created_at),
            "storyPoints": self.story_points,
            "subCategory": self.category,
            "history": self.sprint_timeline.to_list(),
            "workStartedAt": _iso(self.work_started_at),
            "completedAt": _iso(self.completed_at),
            "flags": self.flags.to_dict(),
            "timeSpent": {name: round(days, 2) for name, days in self.column_time.items()},
        }


@dataclass(frozen=True)
class BuildRecord:
    """A CI build, already flagged as release / in-sprint by the CI adapter."""

    pipeline_name: str
    status: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    is_release: bool = False
    is_release_success: bool = False
    in_sprint: bool = True
    build_number: Optional[int] = None
    branch: str = ""
    commit: str = ""
    repository: str = ""
    duration: float = 0.0

    @property
    def passed(self) -> bool:
        return self.status == "passed"

    @property
    def is_successful_release(self) -> bool:
        return self.is_release and self.passed

    def to_dict(self) -> dict:
        return {
            "pipelineName": self.pipeline_name,
            "buildNumber": self.build_number,
            "status": self.status,
            "startedAt": _iso(self.started_at),
            "finishedAt": _iso(self.finished_at),
            "duration": self.duration,
            "branch": self.branch,
            "commit": self.commit,
            "repository": self.repository,
            "isRelease": self.is_release,
            "isReleaseSuccess": self.is_release_success,
            "inSprint": self.in_sprint,
        }

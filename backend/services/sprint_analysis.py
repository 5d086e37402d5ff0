"""Sprint analysis pipeline.

Raw changelog -> normalized transitions -> sprint timeline -> flags and
column time, fanned out per issue, then reduced into sprint metrics.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from typing import Optional

from services.builds import parse_build
from services.business_calendar import DEFAULT_CALENDAR, BusinessCalendar
from services.column_time import allocate_column_time
from services.exceptions import PayloadError
from services.issue_classifier import FLAG_FILTERS, classify_issue
from services.jira_payload import parse_board, parse_issue, parse_sprint_window
from services.models import Issue, IssueInput, SprintWindow
from services.sprint_metrics import (
    DoraMetrics,
    ReleaseStats,
    SprintMetricsCalculator,
    SprintStats,
)
from services.timeline import (
    build_sprint_timeline,
    find_completed_at,
    find_work_started_at,
    normalize_changelog,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


def process_issue(issue_input: IssueInput, window: SprintWindow, status_map: dict,
                  calendar: Optional[BusinessCalendar] = None) -> tuple:
    """Run one issue through normalization, timeline and classification.

    Returns:
        Tuple of (Issue, warnings) where warnings lists dropped changelog entries
    """
    calendar = calendar or DEFAULT_CALENDAR

    normalized = normalize_changelog(issue_input.raw_events, status_map, issue_input.key)
    transitions = normalized.transitions
    timeline = build_sprint_timeline(transitions, window)

    issue = Issue(
        id=issue_input.id,
        key=issue_input.key,
        created_at=issue_input.created_at,
        story_points=issue_input.story_points,
        category=issue_input.category,
        summary=issue_input.summary,
        transitions=transitions,
        sprint_timeline=timeline,
        work_started_at=find_work_started_at(transitions, window),
        completed_at=find_completed_at(transitions, window),
        flags=classify_issue(issue_input.created_at, issue_input.category, timeline, window),
        column_time=allocate_column_time(timeline, window.columns, calendar),
    )

    return issue, list(normalized.warnings)


@dataclass(frozen=True)
class SprintAnalysis:
    """Everything the dashboard and the summarizer consume for one sprint."""

    window: SprintWindow
    issues: tuple = ()
    builds: tuple = ()
    stats: SprintStats = field(default_factory=SprintStats)
    release_stats: ReleaseStats = field(default_factory=ReleaseStats)
    dora: DoraMetrics = field(default_factory=DoraMetrics)
    build_summary: tuple = ()
    daily_points: tuple = ()
    daily_issues: tuple = ()
    warnings: tuple = ()

    def to_dict(self) -> dict:
        return {
            "sprint": self.window.to_dict(),
            "issues": [i.to_dict() for i in self.issues],
            "builds": [b.to_dict() for b in self.builds],
            "stats": self.stats.to_dict(),
            "releaseStats": self.release_stats.to_dict(),
            "dora": self.dora.to_dict(),
            "buildSummary": [s.to_dict() for s in self.build_summary],
            "dailyCumulativePoints": list(self.daily_points),
            "dailyCumulativeIssues": list(self.daily_issues),
            "flagFilters": [{"key": key, "label": label} for key, label in FLAG_FILTERS],
            "warnings": list(self.warnings),
        }


class SprintAnalysisService:
    """Analyzes one sprint's issues and builds."""

    def __init__(self, calendar: Optional[BusinessCalendar] = None,
                 max_workers: int = DEFAULT_MAX_WORKERS):
        self.calendar = calendar or DEFAULT_CALENDAR
        self.max_workers = max_workers
        self.metrics = SprintMetricsCalculator(self.calendar)

    def process_issues(self, issue_inputs: list, window: SprintWindow,
                       status_map: Optional[dict] = None) -> tuple:
        """Process issues in parallel, returning them in input order.

        Returns:
            Tuple of (issues, warnings)
        """
        status_map = status_map or {}
        if not issue_inputs:
            return [], []

        results = [None] * len(issue_inputs)
        workers = max(1, min(self.max_workers, len(issue_inputs)))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(process_issue, issue_input, window, status_map, self.calendar): position
                for position, issue_input in enumerate(issue_inputs)
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()

        issues = [issue for issue, _ in results]
        warnings = [warning for _, issue_warnings in results for warning in issue_warnings]
        return issues, warnings

    def analyze(self, issue_inputs: list, window: SprintWindow,
                status_map: Optional[dict] = None, builds: Optional[list] = None,
                extra_warnings: Optional[list] = None) -> SprintAnalysis:
        """Classify every issue, then compute the sprint metrics."""
        issues, warnings = self.process_issues(issue_inputs, window, status_map)
        builds = builds or []
        sprint_builds = [b for b in builds if b.in_sprint]

        logger.info(
            f"Analyzed sprint '{window.name}': {len(issues)} issues, "
            f"{len(sprint_builds)} of {len(builds)} builds in sprint, {len(warnings)} warnings"
        )

        return SprintAnalysis(
            window=window,
            issues=tuple(issues),
            builds=tuple(builds),
            stats=self.metrics.calculate_sprint_stats(issues, window),
            release_stats=self.metrics.calculate_release_stats(sprint_builds),
            dora=self.metrics.calculate_dora_metrics(issues, sprint_builds, window),
            build_summary=tuple(self.metrics.summarize_builds_by_pipeline(sprint_builds)),
            daily_points=tuple(self.metrics.calculate_daily_cumulative(issues, window, by="points")),
            daily_issues=tuple(self.metrics.calculate_daily_cumulative(issues, window, by="issues")),
            warnings=tuple(list(extra_warnings or []) + warnings),
        )

    def analyze_payload(self, payload: dict, tz: tzinfo = timezone.utc) -> SprintAnalysis:
        """Analyze a request payload of ``{sprint, board, issues, builds}``.

        A single malformed issue or build is skipped with a warning; a missing
        or invalid sprint or board fails the whole request.
        """
        if not isinstance(payload, dict):
            raise PayloadError("Request body must be an object")

        if "sprint" not in payload or "board" not in payload:
            raise PayloadError("Missing required fields: sprint, board")

        columns, status_map = parse_board(payload["board"])
        window = parse_sprint_window(payload["sprint"], columns, tz)

        warnings = []
        issue_inputs = []
        for raw_issue in payload.get("issues") or []:
            try:
                issue_inputs.append(parse_issue(raw_issue, tz))
            except PayloadError as e:
                logger.warning(f"Skipping issue: {e}")
                warnings.append(f"Skipped issue: {e}")

        builds = []
        for raw_build in payload.get("builds") or []:
            try:
                builds.append(parse_build(raw_build, window, tz))
            except PayloadError as e:
                logger.warning(f"Skipping build: {e}")
                warnings.append(f"Skipped build: {e}")

        return self.analyze(issue_inputs, window, status_map, builds, extra_warnings=warnings)

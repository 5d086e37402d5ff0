"""Sprint metrics calculation from classified issues and build records."""

from dataclasses import dataclass, field
from typing import Optional

from services.business_calendar import DEFAULT_CALENDAR, BusinessCalendar

UNCATEGORIZED = "Uncategorized"


def median(values: list) -> float:
    """Upper-middle element of the sorted values (no averaging), 0 when empty."""
    if not values:
        return 0
    sorted_values = sorted(values)
    return sorted_values[len(sorted_values) // 2]


def _rate(part: float, whole: float) -> float:
    return (part / whole * 100) if whole > 0 else 0


@dataclass(frozen=True)
class SprintStats:
    throughput: int = 0
    velocity: float = 0
    avg_cycle_time: float = 0
    avg_story_points: float = 0
    total_issues: int = 0
    total_story_points: float = 0
    categories: dict = field(default_factory=dict)
    completion: dict = field(default_factory=dict)
    plan: dict = field(default_factory=dict)
    flag_counts: dict = field(default_factory=dict)
    working_days: int = 0
    velocity_per_day: float = 0

    def to_dict(self) -> dict:
        return {
            "throughput": self.throughput,
            "velocity": self.velocity,
            "avgCycleTime": round(self.avg_cycle_time, 2),
            "avgStoryPoints": round(self.avg_story_points, 2),
            "totalIssues": self.total_issues,
            "totalStoryPoints": self.total_story_points,
            "categories": dict(self.categories),
            "categoryData": [{"name": k, "value": v} for k, v in self.categories.items()],
            "completionData": [{"name": k, "value": v} for k, v in self.completion.items()],
            "planData": [{"name": k, "value": v} for k, v in self.plan.items()],
            "flagCounts": dict(self.flag_counts),
            "workingDays": self.working_days,
            "velocityPerDay": round(self.velocity_per_day, 2),
        }


@dataclass(frozen=True)
class ReleaseStats:
    total_builds: int = 0
    successful_builds: int = 0
    build_success_rate: float = 0
    total_releases: int = 0
    successful_releases: int = 0
    release_success_rate: float = 0
    avg_build_duration: float = 0

    def to_dict(self) -> dict:
        return {
            "totalBuilds": self.total_builds,
            "successfulBuilds": self.successful_builds,
            "buildSuccessRate": round(self.build_success_rate, 1),
            "totalReleases": self.total_releases,
            "successfulReleases": self.successful_releases,
            "releaseSuccessRate": round(self.release_success_rate, 1),
            "avgBuildDuration": round(self.avg_build_duration, 1),
            "avgBuildDurationDisplay": format_duration(self.avg_build_duration),
        }


@dataclass(frozen=True)
class DoraMetrics:
    """The four DORA metrics for one sprint.

    ``lead_time`` is in business days, ``mttr`` in seconds and
    ``deployment_frequency`` in successful releases per business day.
    """

    deployment_frequency: float = 0
    lead_time: float = 0
    change_failure_rate: float = 0
    mttr: float = 0
    successful_releases: int = 0
    incidents: int = 0

    def to_dict(self) -> dict:
        return {
            "deploymentFrequency": self.deployment_frequency,
            "avgLeadTime": self.lead_time,
            "changeFailureRate": self.change_failure_rate,
            "mttr": self.mttr,
            "successfulReleases": self.successful_releases,
            "incidents": self.incidents,
            "leadTimeDisplay": format_days(self.lead_time),
            "mttrDisplay": format_duration(self.mttr),
            "levels": {
                "deploymentFrequency": deployment_frequency_level(self.deployment_frequency),
                "leadTime": lead_time_level(self.lead_time),
                "changeFailureRate": change_failure_rate_level(self.change_failure_rate),
                "mttr": mttr_level(self.mttr),
            },
        }


@dataclass(frozen=True)
class BuildSummary:
    pipeline_name: str
    repository: str
    total_builds: int = 0
    successful_builds: int = 0
    avg_build_duration: float = 0
    total_releases: int = 0
    successful_releases: int = 0

    def to_dict(self) -> dict:
        return {
            "pipelineName": self.pipeline_name,
            "repository": self.repository,
            "totalBuilds": self.total_builds,
            "successfulBuilds": self.successful_builds,
            "avgBuildDuration": round(self.avg_build_duration, 2),
            "totalReleases": self.total_releases,
            "successfulReleases": self.successful_releases,
        }


class SprintMetricsCalculator:
    """Reduces a sprint's classified issues and builds into metrics.

    Every method is a pure function of its arguments; the calculator only
    holds the business calendar used to measure elapsed time.
    """

    def __init__(self, calendar: Optional[BusinessCalendar] = None):
        self.calendar = calendar or DEFAULT_CALENDAR

    def cycle_time(self, issue) -> Optional[float]:
        """Business days the issue took, or None when it cannot be measured.

        Prefers the work start and completion timestamps; otherwise falls back
        to the first and last real events of the sprint.
        """
        if issue.work_started_at and issue.completed_at:
            return self.calendar.elapsed_business_days(issue.work_started_at, issue.completed_at)

        real_events = issue.sprint_timeline.real_events()
        if len(real_events) >= 2:
            return self.calendar.elapsed_business_days(real_events[0].at, real_events[-1].at)

        return None

    def _cycle_time_samples(self, issues: list) -> list:
        samples = []
        for issue in issues:
            if not issue.is_done:
                continue
            sample = self.cycle_time(issue)
            if sample is not None:
                samples.append(sample)
        return samples

    def calculate_sprint_stats(self, issues: list, window=None) -> SprintStats:
        """Throughput, velocity, cycle time and issue distributions.

        With a sprint window, velocity is also spread over its working days.
        """
        done_issues = [i for i in issues if i.is_done]

        throughput = len(done_issues)
        velocity = sum(i.story_points for i in done_issues)

        samples = self._cycle_time_samples(issues)
        avg_cycle_time = sum(samples) / len(samples) if samples else 0

        total_issues = len(issues)
        total_points = sum(i.story_points for i in issues)
        avg_points = total_points / total_issues if total_issues > 0 else 0

        categories = {}
        for issue in issues:
            category = issue.category or UNCATEGORIZED
            categories[category] = categories.get(category, 0) + 1

        completion_counts = {"Completed": 0, "Closed": 0, "Spillover": 0}
        for issue in issues:
            if issue.flags.is_completed:
                completion_counts["Completed"] += 1
            elif issue.flags.is_closed:
                completion_counts["Closed"] += 1
            elif issue.flags.is_spillover:
                completion_counts["Spillover"] += 1

        unplanned = sum(1 for i in issues if i.flags.is_unplanned)
        plan_counts = {"Planned": total_issues - unplanned, "Unplanned": unplanned}

        flag_counts = {
            "blocked": sum(1 for i in issues if i.flags.is_blocked),
            "backAndForth": sum(1 for i in issues if i.flags.is_back_and_forth),
            "inherited": sum(1 for i in issues if i.flags.is_inherited),
            "spillover": sum(1 for i in issues if i.flags.is_spillover),
            "unplanned": unplanned,
            "incidents": sum(1 for i in issues if i.flags.is_incident_response),
            "completed": sum(1 for i in issues if i.flags.is_completed),
            "closed": sum(1 for i in issues if i.flags.is_closed),
        }

        working_days = self.calendar.count_working_days(window.start, window.end) if window else 0

        return SprintStats(
            throughput=throughput,
            velocity=velocity,
            avg_cycle_time=avg_cycle_time,
            avg_story_points=avg_points,
            total_issues=total_issues,
            total_story_points=total_points,
            categories=categories,
            completion={k: v for k, v in completion_counts.items() if v > 0},
            plan={k: v for k, v in plan_counts.items() if v > 0},
            flag_counts=flag_counts,
            working_days=working_days,
            velocity_per_day=velocity / working_days if working_days > 0 else 0,
        )

    def calculate_release_stats(self, builds: list) -> ReleaseStats:
        """Build and release success rates plus average build duration."""
        total_builds = len(builds)
        successful_builds = sum(1 for b in builds if b.passed)

        releases = [b for b in builds if b.is_release]
        successful_releases = sum(1 for b in releases if b.passed)

        total_duration = sum(b.duration for b in builds)

        return ReleaseStats(
            total_builds=total_builds,
            successful_builds=successful_builds,
            build_success_rate=_rate(successful_builds, total_builds),
            total_releases=len(releases),
            successful_releases=successful_releases,
            release_success_rate=_rate(successful_releases, len(releases)),
            avg_build_duration=total_duration / total_builds if total_builds > 0 else 0,
        )

    def calculate_dora_metrics(self, issues: list, builds: list, window) -> DoraMetrics:
        """Calculate DORA metrics for one sprint.

        - Deployment frequency: successful releases per business day
        - Lead time for changes: median cycle time of completed/closed issues
        - Change failure rate: unplanned incidents per successful release, as %
        - Mean time to restore: median incident resolution time, in seconds
        """
        successful_releases = sum(1 for b in builds if b.is_successful_release)

        business_days = self.calendar.elapsed_business_days(window.start, window.end)
        deployment_frequency = successful_releases / business_days if business_days > 0 else 0

        lead_time = median(self._cycle_time_samples(issues))

        incidents = [i for i in issues if i.flags.is_incident_response and i.flags.is_unplanned]
        change_failure_rate = _rate(len(incidents), successful_releases)

        resolve_times = []
        for issue in incidents:
            if issue.completed_at:
                resolve_times.append(
                    self.calendar.elapsed_business_days(issue.created_at, issue.completed_at)
                )
                continue

            # Not completed yet, measure up to the last thing that happened
            real_events = issue.sprint_timeline.real_events()
            if real_events:
                resolve_times.append(
                    self.calendar.elapsed_business_days(issue.created_at, real_events[-1].at)
                )

        mttr = median(resolve_times) * self.calendar.seconds_per_day if resolve_times else 0

        return DoraMetrics(
            deployment_frequency=deployment_frequency,
            lead_time=lead_time,
            change_failure_rate=change_failure_rate,
            mttr=mttr,
            successful_releases=successful_releases,
            incidents=len(incidents),
        )

    def summarize_builds_by_pipeline(self, builds: list) -> list:
        """Per (pipeline, repository) build and release totals, first-seen order."""
        groups = {}
        for build in builds:
            key = (build.pipeline_name, build.repository)
            if key not in groups:
                groups[key] = {"builds": 0, "passed": 0, "duration": 0.0, "releases": 0, "passed_releases": 0}
            group = groups[key]
            group["builds"] += 1
            group["duration"] += build.duration
            if build.passed:
                group["passed"] += 1
            if build.is_release:
                group["releases"] += 1
                if build.passed:
                    group["passed_releases"] += 1

        return [
            BuildSummary(
                pipeline_name=pipeline_name,
                repository=repository,
                total_builds=group["builds"],
                successful_builds=group["passed"],
                # Minutes
                avg_build_duration=group["duration"] / group["builds"] / 60,
                total_releases=group["releases"],
                successful_releases=group["passed_releases"],
            )
            for (pipeline_name, repository), group in groups.items()
        ]

    def calculate_daily_cumulative(self, issues: list, window, by: str = "points") -> list:
        """Story points (or issue counts) per board column for each sprint weekday.

        Args:
            issues: Classified issues carrying their full transition history
            window: The sprint window; its columns define the series
            by: "points" to sum story points, "issues" to count issues

        Returns:
            List of dicts, one per weekday, with a value per column and a total
        """
        if by not in ("points", "issues"):
            raise ValueError(f"Unknown cumulative measure: {by}")

        daily_data = []
        for moment in self.calendar.business_dates(window.start, window.end):
            data = {
                "date": moment.date().isoformat(),
                "label": f"{moment:%b} {moment.day}",
                "total": 0,
            }
            for column in window.columns:
                data[column] = 0

            for issue in issues:
                if issue.created_at > moment:
                    continue

                column = self._column_at(issue, window, moment)
                if column not in window.columns:
                    continue

                amount = issue.story_points if by == "points" else 1
                data[column] += amount
                data["total"] += amount

            daily_data.append(data)

        return daily_data

    @staticmethod
    def _column_at(issue, window, moment) -> Optional[str]:
        column = window.entry_column
        transitions = issue.transitions

        # Created directly into a later column
        if transitions and transitions[0].from_column:
            column = transitions[0].from_column

        for transition in transitions:
            if transition.at <= moment:
                column = transition.to_column
            else:
                break

        return column


def deployment_frequency_level(frequency: float) -> dict:
    """DORA level for successful releases per business day."""
    if frequency == 0:
        return {"label": "N/A", "color": "default"}
    if frequency > 1:
        return {"label": "Elite", "color": "success"}
    if frequency >= 0.14:
        return {"label": "High", "color": "success"}
    if frequency >= 0.03:
        return {"label": "Medium", "color": "warning"}
    return {"label": "Low", "color": "error"}


def lead_time_level(lead_time: float) -> dict:
    """DORA level for lead time in business days."""
    if lead_time == 0:
        return {"label": "N/A", "color": "default"}
    if lead_time < 1:
        return {"label": "Elite", "color": "success"}
    if lead_time <= 7:
        return {"label": "High", "color": "success"}
    if lead_time <= 30:
        return {"label": "Medium", "color": "warning"}
    return {"label": "Low", "color": "error"}


def change_failure_rate_level(rate: float) -> dict:
    if rate == 0:
        return {"label": "Elite", "color": "success"}
    if rate <= 15:
        return {"label": "High", "color": "success"}
    if rate <= 30:
        return {"label": "Medium", "color": "warning"}
    return {"label": "Low", "color": "error"}


def mttr_level(mttr: float) -> dict:
    """DORA level for mean time to restore in seconds."""
    if mttr == 0:
        return {"label": "N/A", "color": "default"}
    one_hour = 60 * 60
    one_day = 24 * one_hour
    one_week = 7 * one_day

    if mttr < one_hour:
        return {"label": "Elite", "color": "success"}
    if mttr < one_day:
        return {"label": "High", "color": "success"}
    if mttr <= one_week:
        return {"label": "Medium", "color": "warning"}
    return {"label": "Low", "color": "error"}


def format_days(days: float) -> str:
    if days == 0:
        return "-"
    if days < 0.1:
        return "<0.1d"
    return f"{days:.1f}d"


def format_duration(seconds: float) -> str:
    """Human readable duration, e.g. ``45s``, ``12m`` or ``3h 20m``."""
    if seconds < 60:
        return f"{round(seconds)}s"
    if seconds < 3600:
        return f"{round(seconds / 60)}m"
    hours = int(seconds // 3600)
    minutes = round((seconds % 3600) / 60)
    return f"{hours}h {minutes}m"

"""Build records from CI payloads.

A build counts as a release when it ran at least one production deployment
job. Builds arrive either already flagged (``isRelease``/``inSprint`` set by
the CI collaborator) or as raw Buildkite-style build objects with ``jobs``.
"""

import re
from datetime import timezone, tzinfo
from typing import Optional

from services.exceptions import PayloadError
from services.jira_payload import parse_date
from services.models import BuildRecord, SprintWindow

DEPLOYMENT_PATTERN = re.compile(r"deploy")
PRODUCTION_PATTERN = re.compile(r"prod|production")


def extract_production_deployments(jobs: list) -> list:
    """Finished production deployment jobs of a build.

    Returns:
        List of dicts with deployedAt, name and status ("success"/"failed")
    """
    deployments = []
    for job in jobs or []:
        name = (job.get("name") or "").lower()
        if job.get("type") != "script":
            continue
        if not DEPLOYMENT_PATTERN.search(name) or not PRODUCTION_PATTERN.search(name):
            continue

        state = job.get("state")
        if state == "passed":
            status = "success"
        elif state == "failed":
            status = "failed"
        else:
            # Still pending, not a deployment yet
            continue

        deployments.append({
            "deployedAt": job.get("finished_at") or job.get("started_at"),
            "name": job.get("name"),
            "status": status,
        })

    return deployments


def _duration(started_at, finished_at) -> float:
    if not started_at or not finished_at:
        return 0
    return round((finished_at - started_at).total_seconds())


def transform_ci_build(payload: dict, pipeline_name: str,
                       window: Optional[SprintWindow] = None,
                       tz: tzinfo = timezone.utc) -> BuildRecord:
    """Turn a raw CI build object into a BuildRecord.

    ``in_sprint`` is True when the build started inside ``window`` (or when
    no window is given).
    """
    started_at = parse_date(payload.get("started_at"), tz)
    finished_at = parse_date(payload.get("finished_at"), tz)
    deployments = extract_production_deployments(payload.get("jobs", []))

    in_sprint = True
    if window is not None:
        in_sprint = started_at is not None and window.contains(started_at)

    return BuildRecord(
        pipeline_name=pipeline_name,
        build_number=payload.get("number"),
        status=payload.get("state", ""),
        started_at=started_at,
        finished_at=finished_at,
        duration=_duration(started_at, finished_at),
        branch=payload.get("branch") or "",
        commit=payload.get("commit") or "",
        repository=(payload.get("pipeline") or {}).get("repository") or "",
        is_release=len(deployments) > 0,
        is_release_success=len(deployments) > 0 and all(d["status"] == "success" for d in deployments),
        in_sprint=in_sprint,
    )


def parse_build(payload: dict, window: Optional[SprintWindow] = None,
                tz: tzinfo = timezone.utc) -> BuildRecord:
    """Build a BuildRecord from either a flagged record or a raw CI build."""
    if not isinstance(payload, dict):
        raise PayloadError("Build must be an object")

    if "jobs" in payload or "state" in payload:
        pipeline = payload.get("pipelineName") or (payload.get("pipeline") or {}).get("slug") or ""
        return transform_ci_build(payload, pipeline, window, tz)

    if not payload.get("pipelineName"):
        raise PayloadError("Build is missing pipelineName")

    started_at = parse_date(payload.get("startedAt"), tz)
    finished_at = parse_date(payload.get("finishedAt"), tz)
    duration = payload.get("duration")

    return BuildRecord(
        pipeline_name=payload["pipelineName"],
        status=payload.get("status", ""),
        started_at=started_at,
        finished_at=finished_at,
        is_release=bool(payload.get("isRelease", False)),
        is_release_success=bool(payload.get("isReleaseSuccess", False)),
        in_sprint=bool(payload.get("inSprint", True)),
        build_number=payload.get("buildNumber"),
        branch=payload.get("branch") or "",
        commit=payload.get("commit") or "",
        repository=payload.get("repository") or "",
        duration=float(duration) if duration is not None else _duration(started_at, finished_at),
    )

"""Tests for CI build adapters."""

import pytest

from services.builds import extract_production_deployments, parse_build, transform_ci_build
from services.exceptions import PayloadError


@pytest.fixture
def ci_build():
    """Raw CI build with a production deployment step."""
    return {
        "number": 512,
        "state": "passed",
        "branch": "main",
        "commit": "abc123",
        "started_at": "2024-01-09T10:00:00.000Z",
        "finished_at": "2024-01-09T10:12:30.000Z",
        "pipeline": {"slug": "web", "repository": "git@github.com:acme/web.git"},
        "jobs": [
            {"type": "script", "name": "Run tests", "state": "passed"},
            {"type": "script", "name": "Deploy to Production", "state": "passed",
             "finished_at": "2024-01-09T10:12:00.000Z"},
        ]
    }


class TestProductionDeployments:
    """Test production deployment detection."""

    def test_finds_passed_deployment(self):
        deployments = extract_production_deployments([
            {"type": "script", "name": "Deploy prod", "state": "passed", "finished_at": "2024-01-09T10:00:00Z"}
        ])
        assert deployments == [{"deployedAt": "2024-01-09T10:00:00Z", "name": "Deploy prod", "status": "success"}]

    def test_failed_deployment(self):
        deployments = extract_production_deployments([
            {"type": "script", "name": "deploy-production", "state": "failed"}
        ])
        assert deployments[0]["status"] == "failed"

    def test_ignores_other_jobs(self):
        deployments = extract_production_deployments([
            {"type": "script", "name": "Deploy staging", "state": "passed"},
            {"type": "waiter", "name": "deploy prod gate", "state": "passed"},
            {"type": "script", "name": "Deploy prod", "state": "running"},
            {"type": "script", "name": "Build", "state": "passed"},
        ])
        assert deployments == []


class TestTransformCiBuild:
    """Test raw CI build conversion."""

    def test_release_build(self, ci_build, sprint_window):
        build = transform_ci_build(ci_build, "web", sprint_window)

        assert build.pipeline_name == "web"
        assert build.build_number == 512
        assert build.is_release is True
        assert build.is_release_success is True
        assert build.is_successful_release is True
        assert build.in_sprint is True
        assert build.duration == 750
        assert build.repository == "git@github.com:acme/web.git"

    def test_failed_deploy_is_unsuccessful_release(self, ci_build):
        ci_build["jobs"][1]["state"] = "failed"
        build = transform_ci_build(ci_build, "web")
        assert build.is_release is True
        assert build.is_release_success is False

    def test_outside_window_is_not_in_sprint(self, ci_build, sprint_window):
        ci_build["started_at"] = "2024-01-15T10:00:00.000Z"
        assert transform_ci_build(ci_build, "web", sprint_window).in_sprint is False

    def test_no_jobs_is_not_release(self, ci_build):
        ci_build["jobs"] = []
        assert transform_ci_build(ci_build, "web").is_release is False


class TestParseBuild:
    """Test build payload dispatch."""

    def test_flagged_record(self, sample_builds):
        build = parse_build(sample_builds[0])

        assert build.pipeline_name == "web"
        assert build.passed is True
        assert build.is_release is True
        assert build.duration == 600

    def test_raw_build_uses_pipeline_slug(self, ci_build):
        assert parse_build(ci_build).pipeline_name == "web"

    def test_missing_pipeline_raises(self):
        with pytest.raises(PayloadError):
            parse_build({"status": "passed"})

    def test_not_an_object_raises(self):
        with pytest.raises(PayloadError):
            parse_build("build-1")

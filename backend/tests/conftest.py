"""Shared fixtures for sprint timeline and metrics tests."""

import pytest
from datetime import datetime, timezone
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from services.models import RawChangeEvent, SprintWindow, StatusTransition

UTC = timezone.utc

# Sprint runs Monday 2024-01-08 06:00 to Friday 2024-01-12 18:00
SPRINT_START = datetime(2024, 1, 8, 6, 0, tzinfo=UTC)
SPRINT_END = datetime(2024, 1, 12, 18, 0, tzinfo=UTC)
COLUMNS = ("Backlog", "Doing", "Done")


def at(day, hour=6, minute=0):
    """Timestamp in January 2024, UTC."""
    return datetime(2024, 1, day, hour, minute, tzinfo=UTC)


def transition(from_column, to_column, when):
    return StatusTransition(from_column=from_column, to_column=to_column, at=when)


def status_change(from_label, to_label, when, field="status"):
    return RawChangeEvent(field=field, from_label=from_label, to_label=to_label, occurred_at=when)


@pytest.fixture
def sprint_window():
    """Five-day sprint on a Backlog/Doing/Done board."""
    return SprintWindow(start=SPRINT_START, end=SPRINT_END, columns=COLUMNS, name="Sprint 1")


@pytest.fixture
def sample_sprint():
    """Sprint as sent in a request body."""
    return {
        "name": "Sprint 1",
        "start": "2024-01-08T06:00:00.000Z",
        "end": "2024-01-12T18:00:00.000Z"
    }


@pytest.fixture
def sample_board():
    """Board descriptor with a status id mapping."""
    return {
        "columns": ["Backlog", "Doing", "Done"],
        "statusMap": {"1": "Backlog", "3": "Doing", "10001": "Done"}
    }


@pytest.fixture
def jira_board_config():
    """Board configuration as returned by the Jira agile API."""
    return {
        "name": "Team board",
        "columnConfig": {
            "columns": [
                {"name": "Backlog", "statuses": [{"id": "1"}, {"id": "10000"}]},
                {"name": "Doing", "statuses": [{"id": "3"}, {"id": "10100"}]},
                {"name": "Done", "statuses": [{"id": "10001"}]}
            ]
        }
    }


@pytest.fixture
def sample_issue_inherited():
    """Issue created before the sprint, already in Doing when it started."""
    return {
        "key": "PROJ-100",
        "createdAt": "2024-01-03T10:00:00.000Z",
        "storyPoints": 3,
        "category": "Feature",
        "changelog": [
            {
                "fieldChanged": "status",
                "fromLabel": "Backlog",
                "toLabel": "Doing",
                "occurredAt": "2024-01-04T10:00:00.000Z"
            }
        ]
    }


@pytest.fixture
def sample_issue_completed():
    """Issue picked up and finished during the sprint."""
    return {
        "key": "PROJ-101",
        "createdAt": "2024-01-05T09:00:00.000Z",
        "storyPoints": 5,
        "category": "Feature",
        "changelog": [
            {
                "fieldChanged": "status",
                "fromLabel": "Backlog",
                "toLabel": "Doing",
                "occurredAt": "2024-01-08T06:00:00.000Z"
            },
            {
                "fieldChanged": "status",
                "fromLabel": "Doing",
                "toLabel": "Done",
                "occurredAt": "2024-01-09T18:00:00.000Z"
            }
        ]
    }


@pytest.fixture
def sample_incident():
    """Incident raised and resolved mid-sprint."""
    return {
        "key": "PROJ-102",
        "createdAt": "2024-01-09T06:00:00.000Z",
        "storyPoints": 1,
        "category": "Incident Response",
        "changelog": [
            {
                "fieldChanged": "status",
                "fromLabel": "Backlog",
                "toLabel": "Doing",
                "occurredAt": "2024-01-09T06:00:00.000Z"
            },
            {
                "fieldChanged": "status",
                "fromLabel": "Doing",
                "toLabel": "Done",
                "occurredAt": "2024-01-09T12:00:00.000Z"
            }
        ]
    }


@pytest.fixture
def jira_issue_with_changelog():
    """Issue in Jira's native shape with an expanded changelog."""
    return {
        "id": "20001",
        "key": "PROJ-200",
        "fields": {
            "summary": "Feature with status changes",
            "created": "2024-01-02T09:00:00.000+0000",
            "customfield_10004": 5.0,
            "customfield_25138": {"value": "Tech Debt"}
        },
        "changelog": {
            "histories": [
                {
                    "created": "2024-01-08T10:00:00.000+0000",
                    "items": [
                        {"field": "assignee", "fromString": None, "toString": "Sam"},
                        {"field": "status", "from": "1", "fromString": "To Do",
                         "to": "3", "toString": "In Progress"}
                    ]
                },
                {
                    "created": "2024-01-10T14:00:00.000+0000",
                    "items": [
                        {"field": "status", "from": "3", "fromString": "In Progress",
                         "to": "10001", "toString": "Closed"}
                    ]
                }
            ]
        }
    }


@pytest.fixture
def sample_builds():
    """Flagged CI builds, two releases and one regular build."""
    return [
        {
            "pipelineName": "web",
            "repository": "git@github.com:acme/web.git",
            "buildNumber": 41,
            "status": "passed",
            "startedAt": "2024-01-09T10:00:00.000Z",
            "finishedAt": "2024-01-09T10:10:00.000Z",
            "isRelease": True,
            "isReleaseSuccess": True,
            "inSprint": True
        },
        {
            "pipelineName": "web",
            "repository": "git@github.com:acme/web.git",
            "buildNumber": 42,
            "status": "passed",
            "startedAt": "2024-01-10T10:00:00.000Z",
            "finishedAt": "2024-01-10T10:20:00.000Z",
            "isRelease": True,
            "isReleaseSuccess": True,
            "inSprint": True
        },
        {
            "pipelineName": "api",
            "repository": "git@github.com:acme/api.git",
            "buildNumber": 7,
            "status": "failed",
            "startedAt": "2024-01-11T10:00:00.000Z",
            "finishedAt": "2024-01-11T10:05:00.000Z",
            "isRelease": False,
            "inSprint": True
        }
    ]


@pytest.fixture
def sample_payload(sample_sprint, sample_board, sample_issue_inherited,
                   sample_issue_completed, sample_incident, sample_builds):
    """Complete analyze request body."""
    return {
        "sprint": sample_sprint,
        "board": sample_board,
        "issues": [sample_issue_inherited, sample_issue_completed, sample_incident],
        "builds": sample_builds
    }


@pytest.fixture
def app():
    """Create Flask test app."""
    from app import create_app
    app = create_app()
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()

"""Shared fixtures for scrum maturity tests."""

import pytest


STATUS_CATEGORIES = {
    "To Do": "new",
    "In Progress": "indeterminate",
    "In Review": "indeterminate",
    "Done": "done",
    "Closed": "done",
}


def _build_issue(key, issue_type="Story", status="Done", category=None, points=None,
                 subtask=False, created="2024-01-02T10:00:00.000+0000", resolutiondate=None,
                 labels=None, assignee=None, histories=None, description=None,
                 fix_versions=None, summary=None):
    fields = {
        "summary": summary or f"Summary of {key}",
        "issuetype": {"name": "Sub-task" if subtask else issue_type, "subtask": subtask},
        "status": {
            "name": status,
            "statusCategory": {"key": category or STATUS_CATEGORIES.get(status, "new")}
        },
        "created": created,
        "resolutiondate": resolutiondate,
        "labels": labels or [],
        "assignee": {"displayName": assignee, "accountId": f"id-{assignee}"} if assignee else None,
        "description": description,
        "fixVersions": fix_versions or [],
    }
    if points is not None:
        fields["customfield_10061"] = points

    issue = {"key": key, "fields": fields}
    if histories is not None:
        issue["changelog"] = {"histories": histories}
    return issue


def _status_change(created, from_status, to_status):
    return {
        "created": created,
        "items": [{"field": "status", "fromString": from_status, "toString": to_status}]
    }


@pytest.fixture
def make_issue():
    """Factory for Jira issue payloads; ``histories=None`` means no changelog."""
    return _build_issue


@pytest.fixture
def status_change():
    """Factory for a changelog history holding one status transition."""
    return _status_change


@pytest.fixture
def mock_jira_credentials():
    """Mock Jira credentials for testing."""
    return {
        "server": "https://test.atlassian.net",
        "email": "test@example.com",
        "token": "test-token-123"
    }


@pytest.fixture
def sample_sprint():
    """Sample sprint closed on Jan 14."""
    return {
        "id": 100,
        "name": "Sprint 1",
        "state": "closed",
        "startDate": "2024-01-01T00:00:00.000Z",
        "endDate": "2024-01-14T00:00:00.000Z",
        "completeDate": "2024-01-14T17:00:00.000Z",
        "goal": "Complete feature X"
    }


@pytest.fixture
def sample_sprints():
    """Four closed sprints, most recent first."""
    return [
        {
            "id": 103,
            "name": "Sprint 4",
            "state": "closed",
            "startDate": "2024-02-12T00:00:00.000Z",
            "endDate": "2024-02-25T00:00:00.000Z"
        },
        {
            "id": 102,
            "name": "Sprint 3",
            "state": "closed",
            "startDate": "2024-01-29T00:00:00.000Z",
            "endDate": "2024-02-11T00:00:00.000Z"
        },
        {
            "id": 101,
            "name": "Sprint 2",
            "state": "closed",
            "startDate": "2024-01-15T00:00:00.000Z",
            "endDate": "2024-01-28T00:00:00.000Z"
        },
        {
            "id": 100,
            "name": "Sprint 1",
            "state": "closed",
            "startDate": "2024-01-01T00:00:00.000Z",
            "endDate": "2024-01-14T00:00:00.000Z"
        }
    ]


@pytest.fixture
def sample_sprints_response(sample_sprints):
    """Agile API response for the board sprint list."""
    return {
        "maxResults": 50,
        "startAt": 0,
        "isLast": True,
        "values": sample_sprints
    }


@pytest.fixture
def sample_issue_completed(make_issue, status_change):
    """Story finished during the sprint, with its changelog."""
    return make_issue(
        "PROJ-123",
        status="Done",
        points=5.0,
        assignee="Alice",
        created="2023-12-28T10:00:00.000+0000",
        resolutiondate="2024-01-10T15:30:00.000+0000",
        histories=[
            status_change("2024-01-03T09:00:00.000+0000", "To Do", "In Progress"),
            status_change("2024-01-10T15:30:00.000+0000", "In Progress", "Done"),
        ]
    )


@pytest.fixture
def sample_issue_incomplete(make_issue, status_change):
    """Bug still in progress."""
    return make_issue(
        "PROJ-124",
        issue_type="Bug",
        status="In Progress",
        points=3.0,
        assignee="Bob",
        created="2023-12-29T10:00:00.000+0000",
        histories=[
            status_change("2024-01-05T10:00:00.000+0000", "To Do", "In Progress"),
        ]
    )


@pytest.fixture
def sample_subtask(make_issue):
    """Completed sub-task carrying points of its own."""
    return make_issue("PROJ-126", subtask=True, status="Done", points=2.0, histories=[])

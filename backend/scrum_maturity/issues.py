"""Field accessors for raw Jira issue payloads."""

import json
from datetime import datetime, timezone
from typing import Optional

from .taxonomy import UNASSIGNED

DEFAULT_STORY_POINTS_FIELDS = ("customfield_10061", "customfield_10016", "customfield_10002")

# Jira formats: "2024-10-31T12:11:56.289-0400", "2024-10-31T12:11:56.289+0000",
# agile API sprint dates use "2024-01-14T00:00:00.000Z"
_DATE_FORMATS = [
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
]


def parse_date(value) -> Optional[datetime]:
    """Parse a Jira date string into an aware UTC datetime.

    Naive values are taken as UTC so that sprint dates, changelog timestamps
    and date-only strings can all be compared with each other. Returns None
    for empty or unparseable input.
    """
    if not value:
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = None
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except (TypeError, ValueError):
                continue
        if parsed is None:
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def get_fields(issue: dict) -> dict:
    return issue.get("fields") or {}


def is_subtask(issue: dict) -> bool:
    return bool((get_fields(issue).get("issuetype") or {}).get("subtask", False))


def issue_type(issue: dict) -> str:
    return (get_fields(issue).get("issuetype") or {}).get("name") or "unknown"


def status_name(issue: dict) -> Optional[str]:
    return (get_fields(issue).get("status") or {}).get("name")


def status_category(issue: dict) -> Optional[str]:
    status = get_fields(issue).get("status") or {}
    return (status.get("statusCategory") or {}).get("key")


def get_story_points(issue: dict, points_fields=DEFAULT_STORY_POINTS_FIELDS) -> float:
    """Extract story points from an issue, 0 when no estimate is set."""
    fields = get_fields(issue)

    for field_id in points_fields:
        points = fields.get(field_id)
        if points is not None:
            try:
                return float(points)
            except (TypeError, ValueError):
                pass

    return 0


def assignee_name(issue: dict) -> str:
    assignee = get_fields(issue).get("assignee")
    if not assignee:
        return UNASSIGNED
    return assignee.get("displayName") or assignee.get("accountId") or UNASSIGNED


def get_changelog(issue: dict) -> Optional[dict]:
    """Return the changelog of an issue, or None when Jira did not include one.

    Changelog can be at issue level (when using expand=changelog) or in fields.
    """
    changelog = issue.get("changelog") or get_fields(issue).get("changelog")
    if not isinstance(changelog, dict):
        return None
    return changelog


def description_text(issue: dict) -> str:
    """Description as plain text; ADF documents are serialized to JSON."""
    description = get_fields(issue).get("description")
    if not description:
        return ""
    if isinstance(description, str):
        return description
    return json.dumps(description)


def issue_detail(issue: dict) -> dict:
    """Short summary of an issue for detail lists."""
    fields = get_fields(issue)
    return {
        "key": issue.get("key"),
        "summary": fields.get("summary") or "",
        "type": issue_type(issue),
        "status": status_name(issue) or "unknown",
    }

"""Release (fix version) progress and burndown."""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from .issues import (
    DEFAULT_STORY_POINTS_FIELDS,
    assignee_name,
    get_changelog,
    get_fields,
    get_story_points,
    is_subtask,
    issue_type,
    parse_date,
    status_category,
    status_name,
)
from .taxonomy import StatusCategory

logger = logging.getLogger(__name__)

DEFAULT_BURNDOWN_DAYS = 30
RELEASED_STATUS_KEYWORDS = ("done", "closed", "resolved", "complete", "completed", "released", "deployed")


def _sorted_histories(issue: dict) -> list:
    histories = (get_changelog(issue) or {}).get("histories") or []
    dated = [(parse_date(h.get("created")), h) for h in histories]
    dated = [entry for entry in dated if entry[0] is not None]
    dated.sort(key=lambda entry: entry[0])
    return dated


def _names_version(value: Optional[str], version_name: str) -> bool:
    # Each Fix Version history item carries a single version name
    return bool(value) and value.strip() == version_name


def added_to_version_date(issue: dict, version_name: str) -> Optional[datetime]:
    """When the issue was first put into the version, defaulting to its creation."""
    for created, history in _sorted_histories(issue):
        for item in history.get("items") or []:
            if item.get("field") == "Fix Version" and _names_version(item.get("toString"), version_name):
                return created
    return parse_date(get_fields(issue).get("created"))


def _dependencies(issue: dict) -> list:
    dependencies = []
    for link in get_fields(issue).get("issuelinks") or []:
        link_type = link.get("type") or {}
        inward = link.get("inwardIssue")
        dependencies.append({
            "type": link_type.get("name") or "Related",
            "direction": "inward" if inward else "outward",
            "linkedIssue": inward or link.get("outwardIssue"),
            "description": link_type.get("inward") if inward else link_type.get("outward")
        })
    return dependencies


def _percentage(part: float, whole: float) -> int:
    return round(part / whole * 100) if whole > 0 else 0


def calculate_release_progress(issues: list, version_name: str, start_date=None,
                               points_fields=DEFAULT_STORY_POINTS_FIELDS) -> dict:
    """Summarize the issues in a release.

    Args:
        issues: Issues currently in the version, with expanded changelogs
        version_name: Fix version name
        start_date: Release start; when given, issues are split by whether they
            joined the version before or after it

    Returns:
        Dict with ``issues``, ``addedBeforeStart``, ``addedAfterStart`` and
        ``metrics``. Sub-tasks are listed but left out of the metrics.
    """
    release_start = parse_date(start_date)

    details = []
    added_before = []
    added_after = []

    for issue in issues:
        fields = get_fields(issue)
        added = added_to_version_date(issue, version_name)

        detail = {
            "key": issue.get("key"),
            "summary": fields.get("summary") or "",
            "status": status_name(issue) or "Unknown",
            "statusCategory": status_category(issue) or "undefined",
            "type": issue_type(issue),
            "isSubtask": is_subtask(issue),
            "priority": (fields.get("priority") or {}).get("name") or "None",
            "assignee": assignee_name(issue),
            "storyPoints": get_story_points(issue, points_fields),
            "addedToVersionDate": added.isoformat() if added else None,
            "dependencies": _dependencies(issue),
            "created": fields.get("created"),
            "updated": fields.get("updated")
        }
        details.append(detail)

        if release_start is not None and added is not None:
            if added < release_start:
                added_before.append(detail)
            else:
                added_after.append(detail)

    parent_details = [d for d in details if not d["isSubtask"]]
    done = [d for d in parent_details if d["statusCategory"] == StatusCategory.DONE]
    in_progress = [d for d in parent_details if d["statusCategory"] == StatusCategory.IN_PROGRESS]
    todo = [d for d in parent_details if d["statusCategory"] in (StatusCategory.NEW, "undefined")]

    total_points = sum(d["storyPoints"] for d in parent_details)
    completed_points = sum(d["storyPoints"] for d in done)

    logger.info(
        f"Release {version_name}: {len(done)}/{len(parent_details)} issues done, "
        f"{completed_points}/{total_points} points"
    )

    return {
        "issues": details,
        "addedBeforeStart": added_before,
        "addedAfterStart": added_after,
        "metrics": {
            "totalIssues": len(parent_details),
            "completedIssues": len(done),
            "inProgressIssues": len(in_progress),
            "todoIssues": len(todo),
            "completionPercentage": _percentage(len(done), len(parent_details)),
            "totalStoryPoints": total_points,
            "completedStoryPoints": completed_points,
            "storyPointsCompletion": _percentage(completed_points, total_points)
        }
    }


def _is_released_status(name: Optional[str]) -> bool:
    if not name:
        return False
    lower = name.lower()
    return any(keyword in lower for keyword in RELEASED_STATUS_KEYWORDS)


def _as_date(value) -> Optional[date]:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = parse_date(value)
    return parsed.date() if parsed else None


def _build_timeline(issue: dict, version_name: str, points_fields) -> dict:
    version_changes = []
    status_changes = []

    for created, history in _sorted_histories(issue):
        for item in history.get("items") or []:
            field = item.get("field")
            if field == "Fix Version":
                if _names_version(item.get("toString"), version_name):
                    version_changes.append((created, True))
                if _names_version(item.get("fromString"), version_name):
                    version_changes.append((created, False))
            elif field == "status":
                status_changes.append((created, _is_released_status(item.get("toString"))))

    fields = get_fields(issue)
    return {
        "points": get_story_points(issue, points_fields),
        "created": parse_date(fields.get("created")),
        "inVersionNow": any(v.get("name") == version_name for v in fields.get("fixVersions") or []),
        "doneNow": status_category(issue) == StatusCategory.DONE or _is_released_status(status_name(issue)),
        "versionChanges": version_changes,
        "statusChanges": status_changes
    }


def _last_before(changes: list, moment: datetime):
    state = None
    for changed, value in changes:
        if changed > moment:
            break
        state = value
    return state


def calculate_version_burndown(issues: list, version_name: str, start_date=None, today=None,
                               max_days: int = 90, points_fields=DEFAULT_STORY_POINTS_FIELDS) -> list:
    """Daily scope and completed points for a version, from start to today.

    Each day is a snapshot at 00:00 UTC. Version membership and done-ness on
    past days are replayed from the changelog; today's snapshot uses the
    current status. The chart never extends past today and covers at most
    ``max_days`` days.

    Args:
        issues: Issues ever in the version, with expanded changelogs
        version_name: Fix version name
        start_date: First day, defaults to 30 days before today
        today: Last day, defaults to the current UTC date

    Returns:
        List of dicts with ``date``, ``scopePoints``, ``completedPoints`` and
        ``remainingPoints``
    """
    today = _as_date(today) or datetime.now(timezone.utc).date()
    start = _as_date(start_date) or today - timedelta(days=DEFAULT_BURNDOWN_DAYS)

    if (today - start).days > max_days:
        logger.info(f"Limiting burndown for {version_name} to last {max_days} days")
        start = today - timedelta(days=max_days)

    timelines = [
        _build_timeline(issue, version_name, points_fields)
        for issue in issues if not is_subtask(issue)
    ]

    burndown = []
    day = start
    while day <= today:
        moment = datetime.combine(day, time.min, tzinfo=timezone.utc)
        scope_points = 0.0
        completed_points = 0.0

        for timeline in timelines:
            if timeline["created"] is not None and timeline["created"] > moment:
                continue

            changes = timeline["versionChanges"]
            in_version = _last_before(changes, moment)
            if in_version is None:
                # Before its first recorded change the issue held the opposite membership
                in_version = not changes[0][1] if changes else timeline["inVersionNow"]
            if not in_version:
                continue

            scope_points += timeline["points"]

            if day == today:
                done = timeline["doneNow"]
            else:
                done = bool(_last_before(timeline["statusChanges"], moment))
            if done:
                completed_points += timeline["points"]

        burndown.append({
            "date": day.isoformat(),
            "scopePoints": scope_points,
            "completedPoints": completed_points,
            "remainingPoints": scope_points - completed_points
        })
        day += timedelta(days=1)

    if burndown:
        last = burndown[-1]
        logger.info(
            f"Burndown for {version_name}: {len(burndown)} days, scope={last['scopePoints']}, "
            f"completed={last['completedPoints']}, remaining={last['remainingPoints']}"
        )

    return burndown

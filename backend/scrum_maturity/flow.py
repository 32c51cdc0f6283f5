"""Flow metrics: cycle time, lead time and WIP aging."""

import logging
from datetime import datetime, timezone
from typing import Optional

from .issues import get_changelog, get_fields, is_subtask, issue_type, parse_date, status_category
from .taxonomy import FLOW_ISSUE_TYPES, StatusCategory

logger = logging.getLogger(__name__)

DEFAULT_IN_PROGRESS_STATUSES = ("in progress",)
DEFAULT_CLOSED_STATUSES = ("closed", "done")


def _whole_hours(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() / 3600)


def _sorted_histories(histories: list) -> list:
    dated = [(parse_date(h.get("created")), h) for h in histories or []]
    return [h for created, h in sorted(
        (entry for entry in dated if entry[0] is not None),
        key=lambda entry: entry[0]
    )]


def _issue_histories(issue: dict, changelog: Optional[list]) -> list:
    if changelog is not None:
        return changelog
    return (get_changelog(issue) or {}).get("histories") or []


def calculate_cycle_time(issue: dict, changelog: Optional[list] = None,
                         in_progress_statuses=DEFAULT_IN_PROGRESS_STATUSES,
                         closed_statuses=DEFAULT_CLOSED_STATUSES) -> Optional[float]:
    """Days from first entering an in-progress status to the next close.

    Status names are matched case-insensitively. Returns None if the issue
    never started or never closed after starting.
    """
    in_progress = {s.lower() for s in in_progress_statuses}
    closed = {s.lower() for s in closed_statuses}

    start_time = None
    end_time = None

    for history in _sorted_histories(_issue_histories(issue, changelog)):
        for item in history.get("items") or []:
            if item.get("field") != "status":
                continue
            to_status = (item.get("toString") or "").lower()
            if start_time is None and to_status in in_progress:
                start_time = parse_date(history.get("created"))
            elif start_time is not None and to_status in closed:
                end_time = parse_date(history.get("created"))
                break
        if end_time is not None:
            break

    if start_time is None or end_time is None:
        return None

    return _whole_hours(start_time, end_time) / 24


def calculate_lead_time(issue: dict) -> Optional[float]:
    """Days from creation to resolution, None while unresolved."""
    fields = get_fields(issue)
    resolved = parse_date(fields.get("resolutiondate"))
    created = parse_date(fields.get("created"))
    if resolved is None or created is None:
        return None
    return _whole_hours(created, resolved) / 24


def calculate_wip_aging(issues: list, now: Optional[datetime] = None,
                        changelogs: Optional[dict] = None,
                        in_progress_statuses=DEFAULT_IN_PROGRESS_STATUSES) -> list:
    """How long each in-progress issue has been in flight.

    Age counts from the first transition into an in-progress status, or from
    creation when the changelog has none.
    """
    now = parse_date(now) or datetime.now(timezone.utc)
    changelogs = changelogs or {}
    in_progress = {s.lower() for s in in_progress_statuses}

    wip_issues = [
        i for i in issues
        if not is_subtask(i) and status_category(i) == StatusCategory.IN_PROGRESS
    ]

    aged = []
    for issue in wip_issues:
        started = None
        histories = _issue_histories(issue, changelogs.get(issue.get("key")))
        for history in _sorted_histories(histories):
            for item in history.get("items") or []:
                if item.get("field") == "status" and (item.get("toString") or "").lower() in in_progress:
                    started = parse_date(history.get("created"))
                    break
            if started is not None:
                break

        start = started or parse_date(get_fields(issue).get("created"))
        if start is None:
            continue

        aged.append({
            "key": issue.get("key"),
            "summary": get_fields(issue).get("summary") or "",
            "daysInProgress": (now - start).days
        })

    aged.sort(key=lambda x: x["daysInProgress"], reverse=True)
    return aged


def _average(values: list) -> float:
    return round(sum(values) / len(values), 1) if values else 0


def calculate_flow_metrics(sprints: list, sprint_issues: dict, changelogs: Optional[dict] = None,
                           in_progress_statuses=DEFAULT_IN_PROGRESS_STATUSES,
                           closed_statuses=DEFAULT_CLOSED_STATUSES) -> dict:
    """Cycle and lead time per issue type across the given sprints.

    Args:
        sprints: Sprint payloads
        sprint_issues: Dict mapping sprint ID to issues
        changelogs: Optional dict mapping issue key to changelog histories;
            issues without an entry use their embedded changelog

    Issues carried across several sprints are measured once. Issues whose
    cycle or lead time is undefined are left out of the averages.
    """
    changelogs = changelogs or {}
    cycle_by_type = {t: [] for t in FLOW_ISSUE_TYPES}
    lead_by_type = {t: [] for t in FLOW_ISSUE_TYPES}

    seen_keys = set()
    for sprint in sprints:
        for issue in sprint_issues.get(sprint["id"], []):
            key = issue.get("key")
            if key in seen_keys:
                continue
            seen_keys.add(key)

            kind = issue_type(issue)
            if kind not in cycle_by_type:
                continue

            cycle_time = calculate_cycle_time(
                issue, changelogs.get(key), in_progress_statuses, closed_statuses
            )
            lead_time = calculate_lead_time(issue)

            if cycle_time is not None:
                cycle_by_type[kind].append(cycle_time)
            if lead_time is not None:
                lead_by_type[kind].append(lead_time)

    logger.info(
        f"Flow metrics: {len(seen_keys)} issues, "
        f"{sum(len(v) for v in cycle_by_type.values())} with cycle time, "
        f"{sum(len(v) for v in lead_by_type.values())} with lead time"
    )

    return {
        "flowMetrics": {
            "cycleTimeByType": cycle_by_type,
            "leadTimeByType": lead_by_type
        },
        "summary": {
            "avgCycleTime": {t: _average(v) for t, v in cycle_by_type.items()},
            "avgLeadTime": {t: _average(v) for t, v in lead_by_type.items()}
        },
        "issuesAnalyzed": len(seen_keys)
    }

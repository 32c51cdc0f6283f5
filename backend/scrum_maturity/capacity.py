"""Capacity, velocity and work distribution across sprints."""

import logging
import statistics
from functools import reduce

from .issues import (
    DEFAULT_STORY_POINTS_FIELDS,
    assignee_name,
    get_story_points,
    is_subtask,
    issue_type,
    status_name,
)
from .sprint_metrics import sprint_close_date
from .status import build_status_category_map, was_completed_at_time
from .taxonomy import UNASSIGNED

logger = logging.getLogger(__name__)


def _new_accumulator() -> dict:
    return {
        "seenKeys": set(),       # issue keys already attributed to an assignee
        "sprintCounts": {},      # issue key -> number of sprints it appeared in
        "distribution": {},      # assignee -> work distribution totals
        "sprintCapacity": [],
    }


def _attribute(distribution: dict, assignee: str, kind: str, points: float, completed: bool):
    person = distribution.setdefault(assignee, {
        "name": assignee,
        "committed": 0.0,
        "completed": 0.0,
        "totalIssues": 0,
        "completedIssues": 0,
        "types": {}
    })
    person["committed"] += points
    person["totalIssues"] += 1
    person["types"][kind] = person["types"].get(kind, 0) + 1
    if completed:
        person["completed"] += points
        person["completedIssues"] += 1


def _fold_sprint(acc: dict, sprint_and_issues: tuple, points_fields) -> dict:
    sprint, issues = sprint_and_issues
    sprint_end = sprint_close_date(sprint)
    status_category_map = build_status_category_map(issues)

    committed_points = 0.0
    completed_points = 0.0
    total_issues = 0
    completed_issues = 0
    assignees = set()
    details = []

    for issue in issues:
        if is_subtask(issue):
            continue

        key = issue.get("key")
        points = get_story_points(issue, points_fields)
        completed = was_completed_at_time(issue, sprint_end, status_category_map)
        assignee = assignee_name(issue)

        committed_points += points
        total_issues += 1
        if completed:
            completed_points += points
            completed_issues += 1
        if assignee != UNASSIGNED:
            assignees.add(assignee)

        acc["sprintCounts"][key] = acc["sprintCounts"].get(key, 0) + 1

        # Carryover issues count toward an assignee only where first seen
        if key not in acc["seenKeys"]:
            acc["seenKeys"].add(key)
            _attribute(acc["distribution"], assignee, issue_type(issue), points, completed)

        details.append({
            "key": key,
            "points": points,
            "status": status_name(issue) or "unknown",
            "completedInSprint": completed,
            "isCarryover": False,
            "sprintCount": 1
        })

    focus_factor = (completed_points / committed_points * 100) if committed_points > 0 else 0

    acc["sprintCapacity"].append({
        "sprintId": sprint.get("id"),
        "sprintName": sprint.get("name"),
        "committedPoints": round(committed_points, 1),
        "completedPoints": round(completed_points, 1),
        "totalIssues": total_issues,
        "completedIssues": completed_issues,
        "teamSize": len(assignees),
        "velocity": round(completed_points, 1),
        "throughput": completed_issues,
        "focusFactor": round(focus_factor, 1),
        "issues": details
    })
    return acc


def _mean(values: list) -> float:
    return statistics.mean(values) if values else 0


def _stdev(values: list) -> float:
    """Sample standard deviation (N - 1), 0 with fewer than two values."""
    return statistics.stdev(values) if len(values) >= 2 else 0


def velocity_trend(velocities: list) -> float:
    """Mean velocity of the recent half minus the older half.

    ``velocities`` is ordered most recent first; the recent half is the first
    ``len // 2`` sprints.
    """
    if len(velocities) < 2:
        return 0
    half = len(velocities) // 2
    return round(_mean(velocities[:half]) - _mean(velocities[half:]), 1)


def summarize_capacity(sprint_capacity: list) -> dict:
    velocities = [s["velocity"] for s in sprint_capacity]
    throughputs = [s["throughput"] for s in sprint_capacity]
    team_sizes = [s["teamSize"] for s in sprint_capacity]
    focus_factors = [s["focusFactor"] for s in sprint_capacity]

    return {
        "avgVelocity": round(_mean(velocities), 1),
        "velocityStdDev": round(_stdev(velocities), 1),
        "avgThroughput": round(_mean(throughputs), 1),
        "throughputStdDev": round(_stdev(throughputs), 1),
        "avgTeamSize": round(_mean(team_sizes), 1),
        "teamSizeStdDev": round(_stdev(team_sizes), 1),
        "avgFocusFactor": round(_mean(focus_factors), 1),
        "velocityTrend": velocity_trend(velocities),
        "sprintsAnalyzed": len(sprint_capacity)
    }


def calculate_capacity(sprints: list, sprint_issues: dict,
                       points_fields=DEFAULT_STORY_POINTS_FIELDS) -> dict:
    """Calculate per-sprint capacity and per-assignee work distribution.

    Args:
        sprints: Sprint payloads, most recent first
        sprint_issues: Dict mapping sprint ID to issues
        points_fields: Story points custom field IDs, first non-null wins

    Returns:
        Dict with ``sprintCapacity``, ``workDistribution`` and ``summary``
    """
    acc = reduce(
        lambda acc, pair: _fold_sprint(acc, pair, points_fields),
        [(sprint, sprint_issues.get(sprint["id"], [])) for sprint in sprints],
        _new_accumulator()
    )

    for sprint in acc["sprintCapacity"]:
        for detail in sprint["issues"]:
            count = acc["sprintCounts"][detail["key"]]
            detail["sprintCount"] = count
            detail["isCarryover"] = count > 1

    distribution = []
    for person in acc["distribution"].values():
        distribution.append({
            "name": person["name"],
            "committed": round(person["committed"], 1),
            "completed": round(person["completed"], 1),
            "totalIssues": person["totalIssues"],
            "completedIssues": person["completedIssues"],
            "types": person["types"]
        })
    distribution.sort(key=lambda x: x["committed"], reverse=True)

    summary = summarize_capacity(acc["sprintCapacity"])
    carryover_count = sum(1 for count in acc["sprintCounts"].values() if count > 1)
    logger.info(
        f"Capacity: {summary['sprintsAnalyzed']} sprints, avg velocity {summary['avgVelocity']}, "
        f"{len(distribution)} assignees, {carryover_count} carryover issues"
    )

    return {
        "sprintCapacity": acc["sprintCapacity"],
        "workDistribution": distribution,
        "summary": summary
    }

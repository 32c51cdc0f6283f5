"""Roll per-sprint metric records up into team-level averages."""

from typing import Optional


class NoSprintDataError(Exception):
    """Raised when there are no sprints to analyze."""


def _mean(values: list) -> float:
    return sum(values) / len(values)


def aggregate_sprint_metrics(sprint_metrics: list) -> Optional[dict]:
    """Unweighted mean of each per-sprint metric.

    Returns None when ``sprint_metrics`` is empty.
    """
    if not sprint_metrics:
        return None

    return {
        "avgRolloverRate": _mean([s.get("rolloverRate") or 0 for s in sprint_metrics]),
        "avgSprintGoalAttainment": _mean([s.get("sprintGoalAttainment") or 0 for s in sprint_metrics]),
        "avgSprintHitRate": _mean([s.get("sprintHitRate") or 0 for s in sprint_metrics]),
        "avgMidSprintAdditions": _mean([
            (s.get("midSprintAdditions") or {}).get("percentage") or 0 for s in sprint_metrics
        ]),
        "totalSprints": len(sprint_metrics)
    }

"""Scrum maturity classification.

Three levels, evaluated as an ordered decision list (first match wins):

- Level 1 "Assisted Scrum": any metric is in the red zone.
- Level 3 "Self-Managed Scrum": every metric is in the green zone.
- Level 2 "Supported Scrum": everything in between.
"""

# Level 1 if ANY of these is crossed
LEVEL1_MAX_ROLLOVER = 25
LEVEL1_MIN_SPRINT_GOALS = 50
LEVEL1_MIN_BACKLOG = 50
LEVEL1_MAX_MID_SPRINT = 25

# Level 3 requires ALL of these
LEVEL3_MAX_ROLLOVER = 15
LEVEL3_MIN_SPRINT_GOALS = 70
LEVEL3_MIN_BACKLOG = 80
LEVEL3_MAX_MID_SPRINT = 10


def _number(value) -> float:
    return value if value is not None else 0


def determine_maturity_level(metrics: dict) -> dict:
    """Classify a team from its aggregated metrics.

    Args:
        metrics: Dict with ``rolloverRate``, ``sprintGoalAttainment``,
            ``backlogHealth`` (with ``overallScore``) and ``midSprintAdditions``.
            Missing values count as 0.

    Returns:
        Dict with level, name, description, characteristics, blockers and
        recommendations (plus supportModel at level 2)
    """
    metrics = metrics or {}
    rollover = _number(metrics.get("rolloverRate"))
    sprint_goals = _number(metrics.get("sprintGoalAttainment"))
    backlog = _number((metrics.get("backlogHealth") or {}).get("overallScore"))
    mid_sprint = _number(metrics.get("midSprintAdditions"))

    level1_checks = [
        ("rollover", rollover > LEVEL1_MAX_ROLLOVER),
        ("sprintGoals", sprint_goals < LEVEL1_MIN_SPRINT_GOALS),
        ("backlog", backlog < LEVEL1_MIN_BACKLOG),
        ("midSprint", mid_sprint > LEVEL1_MAX_MID_SPRINT),
    ]
    if any(failed for _, failed in level1_checks):
        return {
            "level": 1,
            "name": "Assisted Scrum",
            "description": "Scrum Manager Required",
            "characteristics": [
                f"Rollover: {rollover:.1f}% (must be ≤{LEVEL1_MAX_ROLLOVER}% for Level 2)",
                f"Sprint Goals Met: {sprint_goals:.1f}% (must be ≥{LEVEL1_MIN_SPRINT_GOALS}% for Level 2)",
                f"Backlog Health: {backlog:.1f}% (must be ≥{LEVEL1_MIN_BACKLOG}% for Level 2)",
                f"Mid-Sprint Additions: {mid_sprint:.1f}% (must be ≤{LEVEL1_MAX_MID_SPRINT}% for Level 2)",
            ],
            "blockers": [name for name, failed in level1_checks if failed],
            "recommendations": [
                "Establish basic operating cadence",
                "Improve backlog readiness and capacity planning",
                "Reduce scope churn",
                "Coach ownership behaviors",
                "Introduce visible metrics and patterns",
            ]
        }

    level3_checks = [
        ("rollover", rollover < LEVEL3_MAX_ROLLOVER),
        ("sprintGoals", sprint_goals > LEVEL3_MIN_SPRINT_GOALS),
        ("backlog", backlog > LEVEL3_MIN_BACKLOG),
        ("midSprint", mid_sprint < LEVEL3_MAX_MID_SPRINT),
    ]
    if all(met for _, met in level3_checks):
        return {
            "level": 3,
            "name": "Self-Managed Scrum",
            "description": "Scrum Manager Optional",
            "characteristics": [
                f"Rollover: {rollover:.1f}% (excellent: <{LEVEL3_MAX_ROLLOVER}%)",
                f"Sprint Goals Met: {sprint_goals:.1f}% (excellent: >{LEVEL3_MIN_SPRINT_GOALS}%)",
                f"Backlog Health: {backlog:.1f}% (excellent: >{LEVEL3_MIN_BACKLOG}%)",
                f"Mid-Sprint Additions: {mid_sprint:.1f}% (excellent: <{LEVEL3_MAX_MID_SPRINT}%)",
            ],
            "blockers": [],
            "recommendations": [
                "Continue excellence in delivery",
                "Focus on continuous improvement",
                "Share best practices with other teams",
                "Quarterly health checks recommended",
                "Ceremonies run without dependency",
                "Blockers resolved within the team",
            ]
        }

    return {
        "level": 2,
        "name": "Supported Scrum",
        "description": "Conditional Support",
        "characteristics": [
            f"Rollover: {rollover:.1f}% (must be <{LEVEL3_MAX_ROLLOVER}% for Level 3)",
            f"Sprint Goals Met: {sprint_goals:.1f}% (must be >{LEVEL3_MIN_SPRINT_GOALS}% for Level 3)",
            f"Backlog Health: {backlog:.1f}% (must be >{LEVEL3_MIN_BACKLOG}% for Level 3)",
            f"Mid-Sprint Additions: {mid_sprint:.1f}% (must be <{LEVEL3_MAX_MID_SPRINT}% for Level 3)",
        ],
        "blockers": [name for name, met in level3_checks if not met],
        "supportModel": "Shared Scrum Manager, Time-bound engagement (1-2 sprints/month)",
        "recommendations": [
            "Pattern recognition (last-minute rush, WIP aging)",
            "Coaching Product on backlog ownership",
            "Enabling team-led ceremonies",
            "Driving retro action execution",
            "Some scope churn but manageable",
            "Flow is improving but inconsistent",
        ]
    }

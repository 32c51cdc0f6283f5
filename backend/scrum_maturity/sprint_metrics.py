"""Sprint metrics calculation service."""

import logging
from typing import Optional

from .issues import (
    DEFAULT_STORY_POINTS_FIELDS,
    description_text,
    get_fields,
    get_story_points,
    is_subtask,
    issue_detail,
    issue_type,
    parse_date,
    status_category,
)
from .status import build_status_category_map, was_completed_at_time
from .taxonomy import (
    ACCEPTANCE_CRITERIA_PATTERNS,
    DEFECT_STAGE_LABELS,
    ROLLOVER_LABELS,
    DefectStage,
    StatusCategory,
)

logger = logging.getLogger(__name__)


def sprint_close_date(sprint: dict) -> Optional[str]:
    """When the sprint actually closed.

    ``completeDate`` is set when someone clicks "Complete Sprint" and matches the
    Jira Sprint Report; the planned ``endDate`` is only a fallback.
    """
    return sprint.get("completeDate") or sprint.get("endDate")


def has_acceptance_criteria(text: str) -> bool:
    if not text:
        return False
    return any(pattern.search(text) for pattern in ACCEPTANCE_CRITERIA_PATTERNS)


class SprintMetricsCalculator:
    """Per-sprint metric calculators over prefetched Jira issues.

    Sub-tasks are excluded from every point- and count-weighted metric so that
    their points are not counted twice against the parent story.
    """

    def __init__(self, points_fields=DEFAULT_STORY_POINTS_FIELDS):
        self.points_fields = tuple(points_fields)

    def _get_story_points(self, issue: dict) -> float:
        return get_story_points(issue, self.points_fields)

    def calculate_sprint_goal_attainment(self, sprint: dict, issues: list) -> float:
        """Percentage of committed points that were done when the sprint closed."""
        sprint_end = sprint_close_date(sprint)
        status_category_map = build_status_category_map(issues)

        committed_points = 0.0
        completed_points = 0.0
        skipped_subtasks = 0
        completed_after_sprint = 0

        for issue in issues:
            if is_subtask(issue):
                skipped_subtasks += 1
                continue

            points = self._get_story_points(issue)
            committed_points += points

            if was_completed_at_time(issue, sprint_end, status_category_map):
                completed_points += points
            elif status_category(issue) == StatusCategory.DONE:
                completed_after_sprint += 1

        attainment = (completed_points / committed_points * 100) if committed_points > 0 else 0

        logger.info(
            f"Sprint goal attainment for {sprint.get('name')}: "
            f"{completed_points}/{committed_points} points = {attainment:.1f}% "
            f"({skipped_subtasks} sub-tasks excluded, "
            f"{completed_after_sprint} issues completed after sprint close)"
        )
        return attainment

    def calculate_rollover_rate(self, sprint_issues: list, next_sprint_issues: Optional[list],
                                sprint_name: str = "") -> dict:
        """Calculate the labeled rollover rate between a sprint and the one after it.

        An issue is a rollover only if it appears in both sprints AND carries at
        least one rollover reason label.

        Returns:
            Dict with ``rate``, the rolled-over ``issues`` and a ``reasonBreakdown``
            counting each reason label
        """
        if not next_sprint_issues:
            logger.info(f"Rollover for {sprint_name or 'sprint'}: no next sprint data, rollover = 0%")
            return {"rate": 0, "issues": [], "reasonBreakdown": {}}

        parent_issues = [i for i in sprint_issues if not is_subtask(i)]
        parent_next_issues = [i for i in next_sprint_issues if not is_subtask(i)]

        current_keys = {i.get("key") for i in parent_issues}
        candidates = [i for i in parent_next_issues if i.get("key") in current_keys]

        reason_breakdown = {}
        issue_details = []

        for issue in candidates:
            labels = get_fields(issue).get("labels") or []
            reasons = [label for label in labels if label in ROLLOVER_LABELS]

            if not reasons:
                continue

            for reason in reasons:
                reason_breakdown[reason] = reason_breakdown.get(reason, 0) + 1

            detail = issue_detail(issue)
            detail["reasons"] = reasons
            issue_details.append(detail)

        rate = (len(issue_details) / len(parent_issues) * 100) if parent_issues else 0

        logger.info(
            f"Rollover for {sprint_name or 'sprint'}: {len(issue_details)}/{len(parent_issues)} "
            f"issues = {rate:.1f}% ({len(candidates)} in both sprints, "
            f"{len(issue_details)} with rollover labels)"
        )
        for detail in issue_details:
            logger.debug(f"  {detail['key']} [{detail['status']}] ({', '.join(detail['reasons'])})")

        return {"rate": rate, "issues": issue_details, "reasonBreakdown": reason_breakdown}

    def calculate_sprint_hit_rate(self, issues: list, sprint_end=None) -> float:
        """Percentage of non-subtask issues done at ``sprint_end``.

        Without a sprint end the issues' current status is used.
        """
        parent_issues = [i for i in issues if not is_subtask(i)]
        if not parent_issues:
            return 0

        status_category_map = build_status_category_map(issues)
        completed = sum(
            1 for issue in parent_issues
            if was_completed_at_time(issue, sprint_end, status_category_map)
        )
        return completed / len(parent_issues) * 100

    def calculate_mid_sprint_additions(self, issues: list, sprint_start) -> dict:
        """Issues created after the sprint started."""
        start = parse_date(sprint_start)
        parent_issues = [i for i in issues if not is_subtask(i)]

        added = []
        for issue in parent_issues:
            created = parse_date(get_fields(issue).get("created"))
            if start is not None and created is not None and created > start:
                detail = issue_detail(issue)
                detail["created"] = get_fields(issue).get("created")
                added.append(detail)

        percentage = (len(added) / len(parent_issues) * 100) if parent_issues else 0

        return {
            "count": len(added),
            "percentage": percentage,
            "issues": added
        }

    def calculate_defect_distribution(self, issues: list) -> dict:
        """Bucket bugs by the pipeline stage they were caught in, using labels."""
        distribution = {stage.value: 0 for stage in DefectStage}
        bugs = [i for i in issues if issue_type(i) == "Bug" and not is_subtask(i)]

        for bug in bugs:
            labels = set(get_fields(bug).get("labels") or [])
            stage = DefectStage.POST_RELEASE
            for candidate, stage_labels in DEFECT_STAGE_LABELS:
                if labels & stage_labels:
                    stage = candidate
                    break
            distribution[stage.value] += 1

        distribution["total"] = len(bugs)
        return distribution

    def calculate_backlog_health(self, issues: list) -> dict:
        """Score backlog readiness: acceptance criteria, estimates and fix versions.

        Each check is an independent percentage of the non-subtask backlog and
        ``overallScore`` is their mean.
        """
        parent_issues = [i for i in issues if not is_subtask(i)]
        total = len(parent_issues)

        logger.info(
            f"Backlog health: {total} backlog issues "
            f"({len(issues) - total} sub-tasks excluded)"
        )

        if total == 0:
            logger.warning("No backlog issues found")
            return {
                "withAcceptanceCriteria": 0,
                "withEstimates": 0,
                "linkedToGoals": 0,
                "overallScore": 0,
                "missingAC": [],
                "missingEstimates": [],
                "missingFixVersions": [],
                "totalItems": 0
            }

        missing_ac = []
        missing_estimates = []
        missing_fix_versions = []

        for issue in parent_issues:
            if not has_acceptance_criteria(description_text(issue)):
                missing_ac.append(issue_detail(issue))

            if not self._get_story_points(issue):
                missing_estimates.append(issue_detail(issue))

            if not get_fields(issue).get("fixVersions"):
                missing_fix_versions.append(issue_detail(issue))

        with_ac = total - len(missing_ac)
        with_estimates = total - len(missing_estimates)
        linked_to_goals = total - len(missing_fix_versions)

        logger.info(
            f"Backlog health: acceptance criteria {with_ac}/{total}, "
            f"estimates {with_estimates}/{total}, fix versions {linked_to_goals}/{total}"
        )

        return {
            "withAcceptanceCriteria": with_ac / total * 100,
            "withEstimates": with_estimates / total * 100,
            "linkedToGoals": linked_to_goals / total * 100,
            "overallScore": (with_ac + with_estimates + linked_to_goals) / (total * 3) * 100,
            "missingAC": missing_ac,
            "missingEstimates": missing_estimates,
            "missingFixVersions": missing_fix_versions,
            "totalItems": total
        }

    def analyze_sprint(self, sprint: dict, issues: list, next_sprint_issues: Optional[list] = None) -> dict:
        """Build the metric record for one sprint."""
        rollover = self.calculate_rollover_rate(issues, next_sprint_issues, sprint.get("name", ""))

        return {
            "sprintId": sprint.get("id"),
            "sprintName": sprint.get("name"),
            "startDate": sprint.get("startDate"),
            "endDate": sprint.get("endDate"),
            "completeDate": sprint.get("completeDate"),
            "sprintGoalAttainment": self.calculate_sprint_goal_attainment(sprint, issues),
            "rolloverRate": rollover["rate"],
            "rollover": rollover,
            "sprintHitRate": self.calculate_sprint_hit_rate(issues, sprint_close_date(sprint)),
            "midSprintAdditions": self.calculate_mid_sprint_additions(issues, sprint.get("startDate")),
            "defectDistribution": self.calculate_defect_distribution(issues),
            "totalIssues": len(issues)
        }

    def analyze_sprints(self, sprints: list, sprint_issues: dict) -> list:
        """Build metric records for sprints ordered most recent first.

        The sprint after ``sprints[i]`` is ``sprints[i - 1]``, so every sprint's
        issues must already be fetched before any rollover is computed. The most
        recent sprint has no next sprint and reports 0% rollover.
        """
        records = []
        for i, sprint in enumerate(sprints):
            issues = sprint_issues.get(sprint["id"], [])
            next_issues = sprint_issues.get(sprints[i - 1]["id"], []) if i > 0 else []
            records.append(self.analyze_sprint(sprint, issues, next_issues))
        return records

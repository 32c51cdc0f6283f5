"""Team metrics service: fetch, compute, cache and record."""

import logging
from typing import Optional

from .aggregation import NoSprintDataError, aggregate_sprint_metrics
from .cache import MetricsCache
from .capacity import calculate_capacity
from .config import DEFAULTS
from .flow import calculate_flow_metrics, calculate_wip_aging
from .maturity import determine_maturity_level
from .releases import calculate_release_progress, calculate_version_burndown
from .sprint_metrics import SprintMetricsCalculator

logger = logging.getLogger(__name__)


class TeamMetricsService:
    """Produces team-level metric reports for a Jira board.

    Jira data for a board is fetched in one parallel prefetch before any
    metric is computed; results are cached per board and day and, for team
    metrics, appended to the history store when one is configured.
    """

    def __init__(self, client, calculator: Optional[SprintMetricsCalculator] = None,
                 cache: Optional[MetricsCache] = None, history=None, config: Optional[dict] = None):
        self.client = client
        self.config = dict(DEFAULTS, **(config or {}))
        self.calculator = calculator or SprintMetricsCalculator(self.config["storyPointsFields"])
        self.cache = cache if cache is not None else MetricsCache(self.config["cacheTtlMinutes"])
        self.history = history

    def compute_team_metrics(self, sprints: list, sprint_issues: dict, backlog_issues: list) -> dict:
        """Compute the full team report from prefetched data.

        Args:
            sprints: Sprint payloads, most recent first
            sprint_issues: Dict mapping sprint ID to issues
            backlog_issues: Issues in the board backlog

        Raises:
            NoSprintDataError: if there are no sprints to analyze
        """
        sprint_metrics = self.calculator.analyze_sprints(sprints, sprint_issues)
        aggregated = aggregate_sprint_metrics(sprint_metrics)
        if aggregated is None:
            raise NoSprintDataError(
                "No valid sprint data available for analysis. "
                "Please ensure the board has closed sprints with issues."
            )

        backlog_health = self.calculator.calculate_backlog_health(backlog_issues)

        maturity_level = determine_maturity_level({
            "rolloverRate": aggregated["avgRolloverRate"],
            "sprintGoalAttainment": aggregated["avgSprintGoalAttainment"],
            "backlogHealth": backlog_health,
            "midSprintAdditions": aggregated["avgMidSprintAdditions"]
        })

        return {
            "sprintMetrics": sprint_metrics,
            "aggregated": aggregated,
            "backlogHealth": backlog_health,
            "maturityLevel": maturity_level,
            "capacity": calculate_capacity(sprints, sprint_issues, self.calculator.points_fields),
            "sprintsAnalyzed": len(sprint_metrics)
        }

    def get_team_metrics(self, board_id: int, sprint_count: int = None,
                         force_refresh: bool = False, board_name: str = None) -> dict:
        """Team report for a board, served from cache unless ``force_refresh``.

        Returns:
            Dict with ``data`` (the report) and ``cached``
        """
        sprint_count = sprint_count or self.config["sprintCount"]
        cache_key = self.cache.generate_key(board_id, "team-metrics")

        if not force_refresh:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return {"data": cached, "cached": True}

        sprints, sprint_issues, backlog_issues = self.client.prefetch(board_id, sprint_count)
        data = self.compute_team_metrics(sprints, sprint_issues, backlog_issues)
        data["boardId"] = board_id

        self.cache.set(cache_key, data)

        if self.history is not None:
            self.history.save_metrics(
                board_id,
                board_name or str(board_id),
                sprint_count,
                data,
                data["maturityLevel"]["level"]
            )

        logger.info(
            f"Team metrics for board {board_id}: level {data['maturityLevel']['level']} "
            f"over {data['sprintsAnalyzed']} sprints"
        )
        return {"data": data, "cached": False}

    def get_flow_metrics(self, board_id: int, sprint_count: int = None,
                         force_refresh: bool = False) -> dict:
        """Cycle time, lead time and WIP aging over the most recent sprints."""
        sprint_count = sprint_count or self.config["flowSprintCount"]
        cache_key = self.cache.generate_key(board_id, "flow-metrics")

        if not force_refresh:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return {"data": cached, "cached": True}

        sprints, sprint_issues, _ = self.client.prefetch(board_id, sprint_count, include_backlog=False)

        issues_by_key = {}
        for sprint in sprints:
            for issue in sprint_issues.get(sprint["id"], []):
                issues_by_key.setdefault(issue.get("key"), issue)

        changelogs = self.client.get_issue_changelogs(list(issues_by_key))

        data = calculate_flow_metrics(
            sprints,
            sprint_issues,
            changelogs,
            in_progress_statuses=self.config["inProgressStatuses"],
            closed_statuses=self.config["closedStatuses"]
        )
        data["wipAging"] = calculate_wip_aging(
            list(issues_by_key.values()),
            changelogs=changelogs,
            in_progress_statuses=self.config["inProgressStatuses"]
        )

        self.cache.set(cache_key, data)
        return {"data": data, "cached": False}

    def get_capacity_metrics(self, board_id: int, sprint_count: int = None,
                             force_refresh: bool = False) -> dict:
        """Velocity, throughput and work distribution over the most recent sprints."""
        sprint_count = sprint_count or self.config["sprintCount"]
        cache_key = self.cache.generate_key(board_id, "capacity-metrics")

        if not force_refresh:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return {"data": cached, "cached": True}

        sprints, sprint_issues, _ = self.client.prefetch(board_id, sprint_count, include_backlog=False)
        data = calculate_capacity(sprints, sprint_issues, self.calculator.points_fields)

        self.cache.set(cache_key, data)
        return {"data": data, "cached": False}

    def get_release_progress(self, project_key: str, version_name: str, start_date=None) -> dict:
        """Issue breakdown and completion for a fix version."""
        issues = self.client.get_version_issues(project_key, version_name)
        return calculate_release_progress(
            issues, version_name, start_date, points_fields=self.calculator.points_fields
        )

    def get_version_burndown(self, project_key: str, version_name: str, start_date=None) -> list:
        """Daily burndown for a fix version, up to today."""
        issues = self.client.get_version_issues(project_key, version_name)
        return calculate_version_burndown(
            issues, version_name, start_date, points_fields=self.calculator.points_fields
        )

"""Scrum maturity metrics for Jira boards."""

from .aggregation import NoSprintDataError
from .cache import MetricsCache
from .config import configure_logging, load_config
from .history import MetricsHistory
from .jira_client import JiraClient
from .sprint_metrics import SprintMetricsCalculator
from .team_metrics import TeamMetricsService


def create_service(config_path: str = None) -> TeamMetricsService:
    """Create a TeamMetricsService wired from the config file and environment."""
    config = load_config(config_path)
    configure_logging(config["logLevel"])

    client = JiraClient(config["jiraUrl"], config["email"], config["apiToken"])
    history = MetricsHistory(
        config["historyPath"],
        max_entries_per_board=config["historyMaxEntriesPerBoard"],
        retention_days=config["historyRetentionDays"]
    )
    history.clean_old_metrics()

    return TeamMetricsService(
        client,
        calculator=SprintMetricsCalculator(config["storyPointsFields"]),
        cache=MetricsCache(config["cacheTtlMinutes"]),
        history=history,
        config=config
    )


__all__ = [
    "JiraClient",
    "MetricsCache",
    "MetricsHistory",
    "NoSprintDataError",
    "SprintMetricsCalculator",
    "TeamMetricsService",
    "configure_logging",
    "create_service",
    "load_config",
]

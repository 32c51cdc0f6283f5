"""Jira Cloud REST client for sprint, backlog and release data."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Optional

import requests

from .issues import parse_date

logger = logging.getLogger(__name__)


def escape_jql_string(value: str) -> str:
    """Escape a value for use inside a double-quoted JQL string."""
    if not value:
        return value
    return value.replace("\\", "\\\\").replace('"', '\\"')


def dedupe_sprints_by_name(sprints: list) -> list:
    """Collapse sprints sharing a name.

    The sprint with both start and end dates wins over one without; between two
    dated sprints the higher ID (the more recent) wins.
    """
    by_name = {}
    for sprint in sprints:
        name = sprint.get("name")
        existing = by_name.get(name)
        if existing is None:
            by_name[name] = sprint
            continue

        existing_has_dates = bool(existing.get("startDate") and existing.get("endDate"))
        new_has_dates = bool(sprint.get("startDate") and sprint.get("endDate"))
        if new_has_dates and not existing_has_dates:
            by_name[name] = sprint
        elif new_has_dates and existing_has_dates and sprint.get("id", 0) > existing.get("id", 0):
            by_name[name] = sprint

    return list(by_name.values())


def _end_date_sort_key(sprint: dict):
    end = parse_date(sprint.get("endDate"))
    return end.timestamp() if end else 0


class JiraClient:
    """Client for the Jira Agile and platform REST APIs."""

    def __init__(self, server: str, email: str, token: str):
        self.server = server.rstrip("/")
        self.email = email
        self.token = token
        self._sprints_cache = {}
        self._issues_cache = {}
        self._changelog_cache = {}

    def _request(self, endpoint: str, params: Optional[dict] = None):
        """Make authenticated request to Jira API."""
        response = requests.get(
            f"{self.server}{endpoint}",
            auth=(self.email, self.token),
            headers={"Accept": "application/json"},
            params=params,
            timeout=30
        )
        response.raise_for_status()
        return response.json()

    def get_sprints(self, board_id: int, limit: int = 6) -> list:
        """Get the most recent closed sprints for a board, most recent first.

        Args:
            board_id: Jira board ID
            limit: Number of sprints to return
        """
        cache_key = f"{board_id}_{limit}"
        if cache_key in self._sprints_cache:
            return self._sprints_cache[cache_key]

        all_sprints = []
        start_at = 0
        max_results = 50

        while True:
            data = self._request(
                f"/rest/agile/1.0/board/{board_id}/sprint",
                params={"state": "closed", "startAt": start_at, "maxResults": max_results}
            )

            sprints = data.get("values", [])
            all_sprints.extend(sprints)

            if len(sprints) < max_results:
                break

            start_at += max_results

        deduped = dedupe_sprints_by_name(all_sprints)
        if len(deduped) < len(all_sprints):
            logger.info(
                f"Board {board_id}: deduplicated {len(all_sprints)} -> {len(deduped)} sprints "
                f"({len(all_sprints) - len(deduped)} duplicate names)"
            )

        deduped.sort(key=_end_date_sort_key, reverse=True)
        result = deduped[:limit]

        self._sprints_cache[cache_key] = result
        return result

    def get_sprint_issues(self, sprint_id: int) -> list:
        """Get all issues in a sprint, with changelog expanded."""
        if sprint_id in self._issues_cache:
            return self._issues_cache[sprint_id]

        data = self._request(
            f"/rest/agile/1.0/sprint/{sprint_id}/issue",
            params={
                "maxResults": 1000,
                "fields": "*all",
                "expand": "changelog"  # Required to get status transition history
            }
        )
        issues = data.get("issues", [])

        self._issues_cache[sprint_id] = issues
        return issues

    def get_backlog_issues(self, board_id: int) -> list:
        """Get issues in the board's backlog (up to 500)."""
        data = self._request(
            f"/rest/agile/1.0/board/{board_id}/backlog",
            params={"maxResults": 500, "fields": "*all"}
        )
        return data.get("issues", [])

    def get_issue_changelog(self, issue_key: str) -> list:
        """Get the changelog histories of one issue."""
        if issue_key in self._changelog_cache:
            return self._changelog_cache[issue_key]

        data = self._request(f"/rest/api/3/issue/{issue_key}/changelog")
        histories = data.get("values", [])

        self._changelog_cache[issue_key] = histories
        return histories

    def get_issue_changelogs(self, issue_keys) -> dict:
        """Fetch changelogs for many issues in parallel.

        Issues whose changelog cannot be fetched are logged and left out.

        Returns:
            Dict mapping issue key to changelog histories
        """
        results = {}
        uncached = []
        for key in issue_keys:
            if key in self._changelog_cache:
                results[key] = self._changelog_cache[key]
            else:
                uncached.append(key)

        if not uncached:
            return results

        def fetch_changelog(issue_key):
            try:
                return issue_key, self.get_issue_changelog(issue_key)
            except requests.RequestException as e:
                logger.warning(f"Could not fetch changelog for {issue_key}: {e}")
                return issue_key, None

        with ThreadPoolExecutor(max_workers=10) as executor:
            futures = {executor.submit(fetch_changelog, key): key for key in uncached}
            for future in as_completed(futures):
                issue_key, histories = future.result()
                if histories is not None:
                    results[issue_key] = histories

        return results

    def get_version_issues(self, project_key: str, version_name: str) -> list:
        """Get issues in a fix version, with changelog expanded.

        Falls back to a query without the project filter when the project
        filter finds nothing (versions shared across projects).
        """
        escaped = escape_jql_string(version_name)
        fields = (
            "summary,status,issuetype,priority,assignee,created,updated,"
            "fixVersions,issuelinks,customfield_10061,customfield_10016,customfield_10002"
        )

        queries = [
            f'project = "{project_key}" AND fixVersion = "{escaped}"',
            f'fixVersion = "{escaped}"',
        ]
        for jql in queries:
            data = self._request(
                "/rest/api/3/search/jql",
                params={"jql": jql, "fields": fields, "expand": "changelog", "maxResults": 100}
            )
            issues = data.get("issues", [])
            logger.info(f"Version {version_name}: {len(issues)} issues for JQL {jql}")
            if issues:
                return issues

        return []

    def prefetch(self, board_id: int, sprint_count: int = 6, include_backlog: bool = True) -> tuple:
        """Fetch sprints, their issues and the backlog upfront in parallel.

        A failed backlog fetch is logged and yields an empty backlog; sprint
        fetch failures propagate.

        Returns:
            Tuple of (sprints, sprint_issues, backlog_issues)
        """
        sprints = self.get_sprints(board_id, limit=sprint_count)

        sprint_issues = {}
        backlog_issues = []

        def fetch_sprint_issues(sprint):
            sprint_id = sprint["id"]
            return sprint_id, self.get_sprint_issues(sprint_id)

        with ThreadPoolExecutor(max_workers=6) as executor:
            backlog_future = executor.submit(self.get_backlog_issues, board_id) if include_backlog else None
            futures = {executor.submit(fetch_sprint_issues, s): s for s in sprints}
            for future in as_completed(futures):
                sprint_id, issues = future.result()
                sprint_issues[sprint_id] = issues

            if backlog_future is not None:
                try:
                    backlog_issues = backlog_future.result()
                except requests.RequestException as e:
                    logger.warning(f"Backlog fetch failed for board {board_id}: {e}")

        logger.info(
            f"Prefetched board {board_id}: {len(sprints)} sprints, "
            f"{sum(len(v) for v in sprint_issues.values())} sprint issues, "
            f"{len(backlog_issues)} backlog issues"
        )
        return sprints, sprint_issues, backlog_issues

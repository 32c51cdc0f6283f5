"""Status category resolution and point-in-time completion checks.

Sprint reports must reflect what was true when the sprint closed, not what is
true now: issues get reopened and moved around after the fact. Changelog
entries only record status *names*, so the category of a historical status is
looked up in a map built from the current statuses of the sprint's issues.
"""

import logging
from datetime import datetime
from typing import Optional

from .issues import get_changelog, parse_date, status_category
from .taxonomy import DONE_STATUS_KEYWORDS, StatusCategory

logger = logging.getLogger(__name__)


def build_status_category_map(issues: list) -> dict:
    """Map status name to category key from the current status of each issue.

    If two issues disagree about a status (workflow edits can cause this), the
    last one iterated wins.
    """
    status_map = {}
    for issue in issues:
        status = (issue.get("fields") or {}).get("status") or {}
        name = status.get("name")
        category = (status.get("statusCategory") or {}).get("key")
        if name and category:
            status_map[name] = category
    return status_map


def status_transitions(issue: dict) -> list:
    """Chronological list of status transitions recorded in the changelog.

    Each entry is a dict with ``time``, ``fromStatus`` and ``toStatus``.
    Histories without a parseable timestamp are skipped.
    """
    changelog = get_changelog(issue) or {}
    histories = changelog.get("histories") or []

    dated = []
    for history in histories:
        created = parse_date(history.get("created"))
        if created is not None:
            dated.append((created, history))

    # sort is stable, so items within one history keep their recorded order
    dated.sort(key=lambda entry: entry[0])

    transitions = []
    for created, history in dated:
        for item in history.get("items") or []:
            if item.get("field") == "status":
                transitions.append({
                    "time": created,
                    "fromStatus": item.get("fromString"),
                    "toStatus": item.get("toString"),
                })
    return transitions


def status_at_time(transitions: list, target: datetime) -> Optional[str]:
    """Replay transitions up to ``target`` (inclusive) and return the status then held.

    Before the first recorded transition the issue held that transition's
    ``fromStatus``. Returns None if there are no transitions.
    """
    if not transitions:
        return None

    current = transitions[0]["fromStatus"]
    for transition in transitions:
        if transition["time"] > target:
            break
        current = transition["toStatus"]
    return current


def category_of(status: str, status_category_map: dict) -> Optional[str]:
    """Resolve a status name to its category, guessing from the name if unmapped."""
    category = status_category_map.get(status)
    if category:
        return category

    lower = status.lower()
    if any(keyword in lower for keyword in DONE_STATUS_KEYWORDS):
        return StatusCategory.DONE.value
    return None


def was_completed_at_time(issue: dict, target, status_category_map: dict) -> bool:
    """Check whether an issue was in a "done" category at ``target``.

    Args:
        issue: Jira issue payload, optionally with an expanded changelog
        target: datetime or Jira date string for the instant to check
        status_category_map: status name -> category key, see build_status_category_map

    Returns:
        True if the issue's status at ``target`` belongs to the done category
    """
    is_done_now = status_category(issue) == StatusCategory.DONE

    target_time = parse_date(target)
    if target_time is None:
        return is_done_now

    if get_changelog(issue) is None:
        # Without history only trust the current status if the resolution date backs it up
        resolved = parse_date((issue.get("fields") or {}).get("resolutiondate"))
        return is_done_now and resolved is not None and resolved <= target_time

    transitions = status_transitions(issue)
    if not transitions:
        return is_done_now

    status = status_at_time(transitions, target_time)
    if not status:
        # Created without a prior status and not yet transitioned
        return False

    return category_of(status, status_category_map) == StatusCategory.DONE

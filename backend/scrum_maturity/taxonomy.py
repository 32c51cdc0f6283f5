"""Label and status conventions shared by the metric calculators.

Teams tag issues with a small, fixed vocabulary of Jira labels.
"""

import re
from enum import Enum


class StatusCategory(str, Enum):
    """Jira status category keys."""

    NEW = "new"
    IN_PROGRESS = "indeterminate"
    DONE = "done"


class RolloverReason(str, Enum):
    """Labels a team applies to explain why an issue rolled into the next sprint."""

    EXTERNAL_BLOCKERS = "external-blockers"
    LATE_DISCOVERY = "late-discovery"
    RESOURCE_CONSTRAINTS = "resource-constraints"
    INTERNAL_BLOCKERS = "internal-blockers"
    REQ_GAP = "req-gap"
    DEV_QA_SPILL = "dev-qa-spill"


ROLLOVER_LABELS = frozenset(reason.value for reason in RolloverReason)


class DefectStage(str, Enum):
    """Where in the delivery pipeline a bug was caught."""

    PRE_MERGE = "preMerge"
    IN_QA = "inQA"
    POST_RELEASE = "postRelease"


# Checked in order; a bug with none of these labels is a post-release defect.
DEFECT_STAGE_LABELS = (
    (DefectStage.PRE_MERGE, frozenset({"pre-merge", "code-review"})),
    (DefectStage.IN_QA, frozenset({"qa", "testing"})),
)

# Fallback for status names that are not in the status category map
DONE_STATUS_KEYWORDS = ("done", "closed", "resolved", "complete", "completed")

ACCEPTANCE_CRITERIA_PATTERNS = (
    re.compile(r"acceptance\s*criteria", re.IGNORECASE),
    re.compile(r"\bAC\b\s*[:;\-\n]"),
    re.compile(r"\bacc\s*criteria", re.IGNORECASE),
    re.compile(r"\bcriteria\s*de\s*aceita", re.IGNORECASE),
    re.compile(r"\bcritérios?\s*de\s*aceite", re.IGNORECASE),
    re.compile(r"\bgiven\b.*\bwhen\b.*\bthen\b", re.IGNORECASE | re.DOTALL),
    re.compile(r"\bdefinition\s*of\s*done\b", re.IGNORECASE),
    re.compile(r"\bexpected\s*result", re.IGNORECASE),
    re.compile(r"\bexpected\s*outcome", re.IGNORECASE),
    re.compile(r"\bexpected\s*behavio", re.IGNORECASE),
)

UNASSIGNED = "Unassigned"

FLOW_ISSUE_TYPES = ("Story", "Bug", "Task")

"""Tests for SprintMetricsCalculator."""

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from scrum_maturity.sprint_metrics import (
    SprintMetricsCalculator,
    has_acceptance_criteria,
    sprint_close_date,
)


@pytest.fixture
def calculator():
    return SprintMetricsCalculator()


class TestSprintCloseDate:
    """Test which sprint date counts as the close."""

    def test_prefers_complete_date(self, sample_sprint):
        """completeDate is when the sprint was actually closed."""
        assert sprint_close_date(sample_sprint) == "2024-01-14T17:00:00.000Z"

    def test_falls_back_to_end_date(self, sample_sprints):
        """Planned end date is used when the sprint has no completeDate."""
        assert sprint_close_date(sample_sprints[0]) == "2024-02-25T00:00:00.000Z"


class TestStoryPointsFields:
    """Test configurable story points fields."""

    def test_default_field_order(self, calculator):
        """The first non-null configured field wins."""
        issue = {"fields": {"customfield_10016": 3.0, "customfield_10002": 8.0}}
        assert calculator._get_story_points(issue) == 3.0

    def test_custom_fields(self):
        """A calculator can be pointed at other fields."""
        calculator = SprintMetricsCalculator(["customfield_99999"])
        assert calculator._get_story_points({"fields": {"customfield_99999": "2"}}) == 2.0
        assert calculator._get_story_points({"fields": {"customfield_10061": 5}}) == 0

    def test_invalid_points_value(self, calculator):
        """Non-numeric points are treated as missing."""
        assert calculator._get_story_points({"fields": {"customfield_10061": "lots"}}) == 0


class TestSprintGoalAttainment:
    """Test point-weighted goal attainment."""

    def test_completed_over_committed(self, calculator, sample_sprint, sample_issue_completed,
                                      sample_issue_incomplete, sample_subtask):
        """5 of 8 committed points done at close; sub-task points ignored."""
        issues = [sample_issue_completed, sample_issue_incomplete, sample_subtask]
        result = calculator.calculate_sprint_goal_attainment(sample_sprint, issues)
        assert result == pytest.approx(62.5)

    def test_no_committed_points(self, calculator, sample_sprint, make_issue):
        """Unestimated sprints attain 0%."""
        issues = [make_issue("P-1", status="Done", histories=[])]
        assert calculator.calculate_sprint_goal_attainment(sample_sprint, issues) == 0

    def test_empty_sprint(self, calculator, sample_sprint):
        """A sprint without issues attains 0%."""
        assert calculator.calculate_sprint_goal_attainment(sample_sprint, []) == 0

    def test_completed_after_close_not_counted(self, calculator, sample_sprint, make_issue, status_change):
        """Points finished after the sprint closed do not count."""
        late = make_issue("P-1", status="Done", points=5.0, histories=[
            status_change("2024-01-20T00:00:00.000+0000", "In Progress", "Done"),
        ])
        on_time = make_issue("P-2", status="Done", points=5.0, histories=[
            status_change("2024-01-12T00:00:00.000+0000", "In Progress", "Done"),
        ])
        result = calculator.calculate_sprint_goal_attainment(sample_sprint, [late, on_time])
        assert result == pytest.approx(50.0)


class TestRolloverRate:
    """Test labeled rollover between consecutive sprints."""

    def test_only_labeled_issues_roll_over(self, calculator, make_issue):
        """Issues in both sprints count only with a rollover reason label."""
        current = [make_issue("P-1"), make_issue("P-2"), make_issue("P-3"), make_issue("P-4")]
        next_sprint = [
            make_issue("P-1", status="In Progress", labels=["external-blockers", "backend"]),
            make_issue("P-2", status="In Progress"),
            make_issue("P-9", status="To Do", labels=["late-discovery"]),
        ]

        result = calculator.calculate_rollover_rate(current, next_sprint, "Sprint 1")

        assert result["rate"] == pytest.approx(25.0)
        assert [i["key"] for i in result["issues"]] == ["P-1"]
        assert result["issues"][0]["reasons"] == ["external-blockers"]
        assert result["reasonBreakdown"] == {"external-blockers": 1}

    def test_multiple_reasons_counted(self, calculator, make_issue):
        """Each reason label on a rolled-over issue is counted."""
        current = [make_issue("P-1"), make_issue("P-2")]
        next_sprint = [
            make_issue("P-1", labels=["req-gap", "dev-qa-spill"]),
            make_issue("P-2", labels=["req-gap"]),
        ]
        result = calculator.calculate_rollover_rate(current, next_sprint)
        assert result["rate"] == pytest.approx(100.0)
        assert result["reasonBreakdown"] == {"req-gap": 2, "dev-qa-spill": 1}

    def test_no_next_sprint(self, calculator, make_issue):
        """The most recent sprint has no rollover."""
        result = calculator.calculate_rollover_rate([make_issue("P-1")], [])
        assert result == {"rate": 0, "issues": [], "reasonBreakdown": {}}

        result = calculator.calculate_rollover_rate([make_issue("P-1")], None)
        assert result["rate"] == 0

    def test_subtasks_excluded(self, calculator, make_issue):
        """Sub-tasks neither roll over nor count in the denominator."""
        current = [make_issue("P-1"), make_issue("P-2", subtask=True)]
        next_sprint = [
            make_issue("P-1", labels=["internal-blockers"]),
            make_issue("P-2", subtask=True, labels=["internal-blockers"]),
        ]
        result = calculator.calculate_rollover_rate(current, next_sprint)
        assert result["rate"] == pytest.approx(100.0)
        assert len(result["issues"]) == 1

    def test_label_match_is_exact(self, calculator, make_issue):
        """Labels are matched literally, not case-insensitively."""
        current = [make_issue("P-1")]
        next_sprint = [make_issue("P-1", labels=["External-Blockers"])]
        assert calculator.calculate_rollover_rate(current, next_sprint)["rate"] == 0


class TestSprintHitRate:
    """Test count-weighted completion."""

    def test_counts_completed_issues(self, calculator, sample_issue_completed,
                                     sample_issue_incomplete, sample_subtask):
        """One of two parent issues done; sub-task ignored."""
        issues = [sample_issue_completed, sample_issue_incomplete, sample_subtask]
        assert calculator.calculate_sprint_hit_rate(issues) == pytest.approx(50.0)

    def test_point_in_time(self, calculator, sample_issue_completed):
        """With a sprint end, completion is judged at that moment."""
        issues = [sample_issue_completed]
        assert calculator.calculate_sprint_hit_rate(issues, "2024-01-05T00:00:00.000Z") == 0
        assert calculator.calculate_sprint_hit_rate(issues, "2024-01-14T00:00:00.000Z") == 100

    def test_empty(self, calculator, sample_subtask):
        """No parent issues gives 0%."""
        assert calculator.calculate_sprint_hit_rate([]) == 0
        assert calculator.calculate_sprint_hit_rate([sample_subtask]) == 0


class TestMidSprintAdditions:
    """Test scope added after sprint start."""

    def test_counts_issues_created_after_start(self, calculator, make_issue):
        """Only issues created strictly after the start are additions."""
        issues = [
            make_issue("P-1", created="2023-12-28T10:00:00.000+0000"),
            make_issue("P-2", created="2024-01-05T10:00:00.000+0000"),
            make_issue("P-3", created="2024-01-01T00:00:00.000+0000"),
            make_issue("P-4", created="2024-01-06T10:00:00.000+0000", subtask=True),
        ]
        result = calculator.calculate_mid_sprint_additions(issues, "2024-01-01T00:00:00.000Z")

        assert result["count"] == 1
        assert result["percentage"] == pytest.approx(100 / 3)
        assert result["issues"][0]["key"] == "P-2"
        assert result["issues"][0]["created"] == "2024-01-05T10:00:00.000+0000"

    def test_no_start_date(self, calculator, make_issue):
        """Without a start date nothing counts as added."""
        result = calculator.calculate_mid_sprint_additions([make_issue("P-1")], None)
        assert result["count"] == 0
        assert result["percentage"] == 0

    def test_empty(self, calculator):
        """Empty sprints have no additions."""
        result = calculator.calculate_mid_sprint_additions([], "2024-01-01T00:00:00.000Z")
        assert result == {"count": 0, "percentage": 0, "issues": []}


class TestDefectDistribution:
    """Test bug bucketing by stage labels."""

    def test_buckets_by_label(self, calculator, make_issue):
        """Stage labels decide the bucket, unlabeled bugs are post-release."""
        issues = [
            make_issue("B-1", issue_type="Bug", labels=["code-review"]),
            make_issue("B-2", issue_type="Bug", labels=["pre-merge"]),
            make_issue("B-3", issue_type="Bug", labels=["qa"]),
            make_issue("B-4", issue_type="Bug", labels=["testing", "ui"]),
            make_issue("B-5", issue_type="Bug"),
            make_issue("S-1", issue_type="Story", labels=["qa"]),
        ]
        result = calculator.calculate_defect_distribution(issues)
        assert result == {"preMerge": 2, "inQA": 2, "postRelease": 1, "total": 5}

    def test_pre_merge_checked_first(self, calculator, make_issue):
        """A bug labeled for both stages counts as pre-merge."""
        issues = [make_issue("B-1", issue_type="Bug", labels=["qa", "pre-merge"])]
        assert calculator.calculate_defect_distribution(issues)["preMerge"] == 1

    def test_no_bugs(self, calculator, make_issue):
        """Sprints without bugs have an all-zero distribution."""
        result = calculator.calculate_defect_distribution([make_issue("S-1")])
        assert result == {"preMerge": 0, "inQA": 0, "postRelease": 0, "total": 0}


class TestAcceptanceCriteria:
    """Test acceptance criteria detection in descriptions."""

    @pytest.mark.parametrize("text", [
        "Acceptance Criteria:\n- it works",
        "AC: user can log in",
        "Given a user When they log in Then they see the dashboard",
        "Definition of Done: deployed",
        "Expected result: no error",
        "Critérios de aceite: funciona",
    ])
    def test_detects_patterns(self, text):
        assert has_acceptance_criteria(text) is True

    @pytest.mark.parametrize("text", ["", None, "Just fix it", "ACME integration"])
    def test_rejects_plain_text(self, text):
        assert has_acceptance_criteria(text) is False


class TestBacklogHealth:
    """Test backlog readiness scoring."""

    def test_scores_each_check(self, calculator, make_issue):
        """Each check is a share of parent issues; overall is their mean."""
        issues = [
            make_issue(
                "P-1", status="To Do", points=3.0,
                description="Acceptance criteria: done when green",
                fix_versions=[{"name": "1.0"}]
            ),
            make_issue("P-2", status="To Do", points=2.0),
            make_issue("P-3", status="To Do", description="Given x when y then z"),
            make_issue("P-4", status="To Do", subtask=True),
        ]
        result = calculator.calculate_backlog_health(issues)

        assert result["totalItems"] == 3
        assert result["withAcceptanceCriteria"] == pytest.approx(200 / 3)
        assert result["withEstimates"] == pytest.approx(200 / 3)
        assert result["linkedToGoals"] == pytest.approx(100 / 3)
        assert result["overallScore"] == pytest.approx(500 / 9)
        assert [i["key"] for i in result["missingAC"]] == ["P-2"]
        assert [i["key"] for i in result["missingEstimates"]] == ["P-3"]
        assert [i["key"] for i in result["missingFixVersions"]] == ["P-2", "P-3"]

    def test_adf_description(self, calculator, make_issue):
        """Rich-text descriptions are searched as serialized JSON."""
        adf = {"type": "doc", "content": [{"type": "text", "text": "Acceptance Criteria"}]}
        result = calculator.calculate_backlog_health([make_issue("P-1", description=adf)])
        assert result["withAcceptanceCriteria"] == 100

    def test_empty_backlog(self, calculator):
        """An empty backlog scores zero everywhere."""
        result = calculator.calculate_backlog_health([])
        assert result == {
            "withAcceptanceCriteria": 0,
            "withEstimates": 0,
            "linkedToGoals": 0,
            "overallScore": 0,
            "missingAC": [],
            "missingEstimates": [],
            "missingFixVersions": [],
            "totalItems": 0
        }


class TestAnalyzeSprints:
    """Test building per-sprint records."""

    def test_record_fields(self, calculator, sample_sprint, sample_issue_completed, sample_issue_incomplete):
        """A sprint record carries the sprint identity and every metric."""
        record = calculator.analyze_sprint(sample_sprint, [sample_issue_completed, sample_issue_incomplete])

        assert record["sprintId"] == 100
        assert record["sprintName"] == "Sprint 1"
        assert record["completeDate"] == "2024-01-14T17:00:00.000Z"
        assert record["sprintGoalAttainment"] == pytest.approx(62.5)
        assert record["sprintHitRate"] == pytest.approx(50.0)
        assert record["rolloverRate"] == 0
        assert record["defectDistribution"]["total"] == 1
        assert record["totalIssues"] == 2

    def test_next_sprint_is_previous_in_list(self, calculator, sample_sprints, make_issue):
        """Rollover of sprints[i] is measured against sprints[i - 1]."""
        sprint_issues = {
            103: [make_issue("P-1", labels=["req-gap"])],
            102: [make_issue("P-1"), make_issue("P-2")],
            101: [make_issue("P-3")],
            100: [],
        }
        records = calculator.analyze_sprints(sample_sprints, sprint_issues)

        assert [r["sprintId"] for r in records] == [103, 102, 101, 100]
        assert records[0]["rolloverRate"] == 0
        assert records[1]["rolloverRate"] == pytest.approx(50.0)
        assert records[2]["rolloverRate"] == 0
        assert records[3]["totalIssues"] == 0

"""Tests for the task registry's guarded status changes."""

import pytest

from transcript_orchestrator.exceptions import InvalidTransitionError
from transcript_orchestrator.models.constants import AnalysisGoalType, TaskStatus
from transcript_orchestrator.models.tasks import AnalysisTask, SubTask


@pytest.fixture
def registry(task_registry):
    task_registry.add_task(AnalysisTask(id="task-1", type=AnalysisGoalType.FULL_ANALYSIS))
    task_registry.add_subtasks(
        [
            SubTask(
                id="subtask-a",
                parent_task_id="task-1",
                type=AnalysisGoalType.EXTRACT_TOPICS,
                managed_by="manager-a",
                input={"job_id": "job-1"},
            ),
            SubTask(
                id="subtask-b",
                parent_task_id="task-1",
                type=AnalysisGoalType.GENERATE_SUMMARY,
                managed_by="manager-b",
                input={"job_id": "job-2"},
            ),
        ]
    )
    return task_registry


class TestLookups:
    def test_snapshots_are_detached(self, registry):
        snapshot = registry.get_subtask("subtask-a")
        snapshot.context["tampered"] = True

        assert "tampered" not in registry.get_subtask("subtask-a").context

    def test_list_subtasks_filters(self, registry):
        registry.mark_assigned("subtask-a")

        assert [s.id for s in registry.list_subtasks(job_id="job-1")] == ["subtask-a"]
        assert [s.id for s in registry.list_subtasks(statuses=[TaskStatus.PENDING])] == ["subtask-b"]

    def test_unknown_ids(self, registry):
        assert registry.get_subtask("nope") is None
        assert registry.complete_subtask("nope", {}) is None
        assert registry.transition("nope", TaskStatus.FAILED) is None


class TestStatusChanges:
    def test_completion_walks_through_intermediate_states(self, registry):
        completed = registry.complete_subtask("subtask-a", {"topics": []})

        assert completed.status == TaskStatus.COMPLETED
        assert completed.output == {"topics": []}

    def test_terminal_subtasks_ignore_later_changes(self, registry):
        registry.complete_subtask("subtask-a", {"topics": ["x"]})

        assert registry.fail_subtask("subtask-a", "late failure") is None
        assert registry.reassign_subtask("subtask-a", "manager-z") is None
        assert registry.complete_subtask("subtask-a", {"topics": []}) is None
        assert registry.get_subtask("subtask-a").output == {"topics": ["x"]}

    def test_fail_records_reason(self, registry):
        failed = registry.fail_subtask("subtask-a", "transcript missing")

        assert failed.status == TaskStatus.FAILED
        assert failed.context["failure_reason"] == "transcript missing"

    def test_mark_started_from_assigned(self, registry):
        registry.mark_assigned("subtask-a", manager_id="manager-c")
        started = registry.mark_started("subtask-a")

        assert started.status == TaskStatus.IN_PROGRESS
        assert started.managed_by == "manager-c"

    def test_transition_validates(self, registry):
        with pytest.raises(InvalidTransitionError):
            registry.transition("task-1", TaskStatus.COMPLETED)


class TestReassignment:
    def test_history_grows_exactly_once(self, registry):
        registry.mark_assigned("subtask-a")
        registry.mark_started("subtask-a")

        updated = registry.reassign_subtask("subtask-a", "manager-z")

        assert updated.managed_by == "manager-z"
        assert updated.previously_assigned_to == ["manager-a"]
        assert updated.attempt_count == 2
        assert updated.status == TaskStatus.ASSIGNED

    def test_same_manager_is_a_noop(self, registry):
        updated = registry.reassign_subtask("subtask-a", "manager-a")

        assert updated.previously_assigned_to == []
        assert updated.attempt_count == 1
        assert updated.status == TaskStatus.PENDING

    def test_repeated_reassignment_keeps_order(self, registry):
        registry.reassign_subtask("subtask-a", "manager-b")
        updated = registry.reassign_subtask("subtask-a", "manager-c")

        assert updated.previously_assigned_to == ["manager-a", "manager-b"]
        assert updated.attempt_count == 3

    def test_update_context(self, registry):
        updated = registry.update_context("subtask-b", superseded_by=["subtask-x"])

        assert updated.context["superseded_by"] == ["subtask-x"]
        assert registry.update_context("nope", a=1) is None

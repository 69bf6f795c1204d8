"""
Task Registry

Owns every AnalysisTask and SubTask the supervisor knows about. Each mutation
runs under the registry lock, so a completion notification and an
escalation-driven reassignment for the same task cannot interleave: whichever
runs second sees the first one's result. Terminal tasks ignore later
mutations.

Mutating methods return a snapshot copy of the task (or None when the
mutation did not apply); callers never hold references into the registry.
"""

import copy
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

from ..models.constants import TaskStatus
from ..models.tasks import AnalysisTask, SubTask

logger = logging.getLogger(__name__)


class TaskRegistry:
    """In-memory task map with state-machine enforced transitions."""

    def __init__(self):
        self._tasks: Dict[str, AnalysisTask] = {}
        self._subtasks: Dict[str, SubTask] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Registration / lookup
    # ------------------------------------------------------------------

    def add_task(self, task: AnalysisTask) -> None:
        with self._lock:
            self._tasks[task.id] = task

    def add_subtask(self, subtask: SubTask) -> None:
        with self._lock:
            self._subtasks[subtask.id] = subtask

    def add_subtasks(self, subtasks: Iterable[SubTask]) -> None:
        with self._lock:
            for subtask in subtasks:
                self._subtasks[subtask.id] = subtask

    def get_task(self, task_id: str) -> Optional[AnalysisTask]:
        with self._lock:
            task = self._tasks.get(task_id)
            return copy.deepcopy(task) if task else None

    def get_subtask(self, subtask_id: str) -> Optional[SubTask]:
        with self._lock:
            subtask = self._subtasks.get(subtask_id)
            return copy.deepcopy(subtask) if subtask else None

    def list_tasks(self) -> List[AnalysisTask]:
        with self._lock:
            return [copy.deepcopy(t) for t in self._tasks.values()]

    def list_subtasks(
        self,
        job_id: Optional[str] = None,
        statuses: Optional[Iterable[TaskStatus]] = None,
    ) -> List[SubTask]:
        """List subtasks, optionally filtered by job id and status."""
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            return [
                copy.deepcopy(s)
                for s in self._subtasks.values()
                if (job_id is None or s.job_id == job_id) and (wanted is None or s.status in wanted)
            ]

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def transition(self, task_id: str, status: TaskStatus) -> Optional[Any]:
        """
        Move a task or subtask to a new status.

        Returns:
            Snapshot of the task, or None if the id is unknown

        Raises:
            InvalidTransitionError: If the state machine forbids the move
        """
        with self._lock:
            task = self._subtasks.get(task_id) or self._tasks.get(task_id)
            if task is None:
                logger.warning(f"[TaskRegistry] transition: unknown task {task_id}")
                return None
            if task.status != status:
                task.transition_to(status)
            return copy.deepcopy(task)

    def mark_assigned(self, subtask_id: str, manager_id: Optional[str] = None) -> Optional[SubTask]:
        """PENDING (or REASSIGNED) -> ASSIGNED, optionally updating ``managed_by``."""
        with self._lock:
            subtask = self._live_subtask(subtask_id, "mark_assigned")
            if subtask is None:
                return None
            if subtask.status not in (TaskStatus.PENDING, TaskStatus.REASSIGNED):
                return copy.deepcopy(subtask)
            if manager_id is not None:
                subtask.managed_by = manager_id
            subtask.transition_to(TaskStatus.ASSIGNED)
            return copy.deepcopy(subtask)

    def mark_started(self, subtask_id: str) -> Optional[SubTask]:
        """ASSIGNED -> IN_PROGRESS; already running subtasks are left as they are."""
        with self._lock:
            subtask = self._live_subtask(subtask_id, "mark_started")
            if subtask is None:
                return None
            if subtask.status == TaskStatus.PENDING:
                subtask.transition_to(TaskStatus.ASSIGNED)
            if subtask.status == TaskStatus.ASSIGNED:
                subtask.transition_to(TaskStatus.IN_PROGRESS)
            return copy.deepcopy(subtask)

    def complete_subtask(self, subtask_id: str, output: Any) -> Optional[SubTask]:
        """
        Record a subtask's output and mark it COMPLETED.

        Walks through ASSIGNED / IN_PROGRESS as needed so that a completion
        arriving before its start notification is still accepted.

        Returns:
            Snapshot of the completed subtask, or None if unknown or already terminal
        """
        with self._lock:
            subtask = self._live_subtask(subtask_id, "complete_subtask")
            if subtask is None:
                return None
            if subtask.status in (TaskStatus.PENDING, TaskStatus.REASSIGNED):
                subtask.transition_to(TaskStatus.ASSIGNED)
            if subtask.status == TaskStatus.ASSIGNED:
                subtask.transition_to(TaskStatus.IN_PROGRESS)
            subtask.output = output
            subtask.transition_to(TaskStatus.COMPLETED)
            logger.info(f"[TaskRegistry] Subtask {subtask_id} completed")
            return copy.deepcopy(subtask)

    def fail_subtask(self, subtask_id: str, reason: str = "") -> Optional[SubTask]:
        """Mark a subtask FAILED. None if unknown or already terminal."""
        with self._lock:
            subtask = self._live_subtask(subtask_id, "fail_subtask")
            if subtask is None:
                return None
            subtask.transition_to(TaskStatus.FAILED)
            if reason:
                subtask.context["failure_reason"] = reason
            logger.info(f"[TaskRegistry] Subtask {subtask_id} failed: {reason}")
            return copy.deepcopy(subtask)

    def reassign_subtask(self, subtask_id: str, new_manager_id: str) -> Optional[SubTask]:
        """
        Hand a subtask to a different manager.

        The current manager is appended to ``previously_assigned_to`` and the
        attempt count increases; the status passes through REASSIGNED and
        lands on ASSIGNED. Reassigning to the manager already responsible
        changes nothing.

        Returns:
            Snapshot of the subtask, or None if unknown or already terminal
        """
        with self._lock:
            subtask = self._live_subtask(subtask_id, "reassign_subtask")
            if subtask is None:
                return None
            if subtask.managed_by == new_manager_id:
                return copy.deepcopy(subtask)

            previous = subtask.managed_by
            subtask.previously_assigned_to.append(previous)
            subtask.attempt_count += 1
            subtask.managed_by = new_manager_id
            if subtask.status != TaskStatus.REASSIGNED:
                subtask.transition_to(TaskStatus.REASSIGNED)
            subtask.transition_to(TaskStatus.ASSIGNED)
            logger.info(f"[TaskRegistry] Subtask {subtask_id} reassigned {previous} -> {new_manager_id}")
            return copy.deepcopy(subtask)

    def update_context(self, subtask_id: str, **values: Any) -> Optional[SubTask]:
        with self._lock:
            subtask = self._subtasks.get(subtask_id)
            if subtask is None:
                logger.warning(f"[TaskRegistry] update_context: unknown subtask {subtask_id}")
                return None
            subtask.context.update(values)
            subtask.touch()
            return copy.deepcopy(subtask)

    def _live_subtask(self, subtask_id: str, operation: str) -> Optional[SubTask]:
        subtask = self._subtasks.get(subtask_id)
        if subtask is None:
            logger.warning(f"[TaskRegistry] {operation}: unknown subtask {subtask_id}")
            return None
        if subtask.is_terminal:
            logger.info(
                f"[TaskRegistry] {operation}: subtask {subtask_id} already "
                f"{subtask.status.value}, ignoring"
            )
            return None
        return subtask


"""
Task Data Models

This module defines the two task kinds tracked by the orchestrator:
- AnalysisTask: top-level unit of work, owned by the supervisor
- SubTask: a decomposition of an AnalysisTask, handed to a manager

Both follow the same status state machine (see constants.ALLOWED_TRANSITIONS).
Status changes go through ``transition_to`` which validates the move and keeps
the ``updated`` timestamp strictly increasing.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ..exceptions import InvalidTransitionError
from .constants import (
    ALLOWED_TRANSITIONS,
    DEFAULT_EXPERTISE,
    AgentExpertise,
    AnalysisGoalType,
    TaskStatus,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_task_id(prefix: str = "task") -> str:
    """
    Generate a unique task ID.

    Args:
        prefix: ID prefix, e.g. "task", "subtask", "direct"

    Returns:
        Unique ID string such as ``subtask-3f9c2a1b7d4e``
    """
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class _TimestampedTask:
    """Status and timestamp handling shared by both task kinds."""

    id: str
    type: AnalysisGoalType
    input: Dict[str, Any]
    status: TaskStatus
    priority: int
    created: datetime
    updated: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def touch(self) -> datetime:
        """Bump ``updated``, never moving it backwards or leaving it unchanged."""
        now = utc_now()
        if now <= self.updated:
            now = self.updated + timedelta(microseconds=1)
        self.updated = now
        return now

    def can_transition_to(self, status: TaskStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self.status]

    def transition_to(self, status: TaskStatus) -> None:
        """
        Move to a new status.

        Raises:
            InvalidTransitionError: If the state machine does not allow the move
        """
        if not self.can_transition_to(status):
            raise InvalidTransitionError(self.id, self.status.value, status.value)
        self.status = status
        self.touch()

    def clone(self, new_id: Optional[str] = None) -> "AnalysisTask":
        """Fresh top-level task with the same type, input and priority, status PENDING."""
        return AnalysisTask(
            id=new_id or generate_task_id(),
            type=self.type,
            input=dict(self.input),
            priority=self.priority,
        )


@dataclass
class AnalysisTask(_TimestampedTask):
    """Top-level unit of analysis work."""

    id: str
    type: AnalysisGoalType
    input: Dict[str, Any] = field(default_factory=dict)
    status: TaskStatus = TaskStatus.PENDING
    assigned_to: Optional[str] = None
    output: Optional[Any] = None
    priority: int = 1
    dependencies: List[str] = field(default_factory=list)
    created: datetime = field(default_factory=utc_now)
    updated: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "assigned_to": self.assigned_to,
            "input": self.input,
            "output": self.output,
            "priority": self.priority,
            "dependencies": list(self.dependencies),
            "created": self.created.isoformat(),
            "updated": self.updated.isoformat(),
        }


@dataclass
class SubTask(_TimestampedTask):
    """
    A decomposed piece of an AnalysisTask, owned by one manager at a time.

    ``parent_task_id`` is fixed at construction. ``previously_assigned_to``
    only ever grows.
    """

    id: str
    parent_task_id: str
    type: AnalysisGoalType
    managed_by: str
    required_expertise: AgentExpertise = DEFAULT_EXPERTISE
    status: TaskStatus = TaskStatus.PENDING
    input: Dict[str, Any] = field(default_factory=dict)
    output: Optional[Any] = None
    context: Dict[str, Any] = field(default_factory=dict)
    priority: int = 3
    previously_assigned_to: List[str] = field(default_factory=list)
    attempt_count: int = 1
    created: datetime = field(default_factory=utc_now)
    updated: datetime = field(default_factory=utc_now)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "parent_task_id" and "parent_task_id" in self.__dict__:
            raise AttributeError("parent_task_id cannot change after creation")
        super().__setattr__(name, value)

    @property
    def dependencies(self) -> List[str]:
        return list(self.context.get("dependencies", []))

    @property
    def description(self) -> str:
        return self.context.get("description", "")

    @property
    def job_id(self) -> Optional[str]:
        return self.input.get("job_id")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "parent_task_id": self.parent_task_id,
            "type": self.type.value,
            "status": self.status.value,
            "managed_by": self.managed_by,
            "required_expertise": self.required_expertise.value,
            "input": self.input,
            "output": self.output,
            "context": self.context,
            "priority": self.priority,
            "previously_assigned_to": list(self.previously_assigned_to),
            "attempt_count": self.attempt_count,
            "created": self.created.isoformat(),
            "updated": self.updated.isoformat(),
        }

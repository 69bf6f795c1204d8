"""
Orchestrator Exceptions

Only programmer-error conditions propagate out of the orchestration core.
Malformed oracle output, oracle downtime and missing registry entries are
recovered locally and never surface as these exceptions to a caller.
"""


class OrchestratorError(Exception):
    """Base class for orchestration errors."""


class UnsupportedTaskTypeError(OrchestratorError, ValueError):
    """Raised when an entry point receives a goal type it cannot process."""

    def __init__(self, task_type):
        self.task_type = task_type
        super().__init__(f"Unsupported task type: {task_type!r}")


class InvalidTransitionError(OrchestratorError):
    """Raised when a status change falls outside the task state machine."""

    def __init__(self, task_id: str, current, target):
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(f"Task {task_id}: invalid transition {current} -> {target}")


class OracleError(OrchestratorError):
    """Language model call failed or timed out."""


class EscalationDisallowedError(OrchestratorError):
    """Raised when work running on the direct-resolution path tries to escalate."""

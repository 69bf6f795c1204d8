"""
Manager Agent Implementation

A manager owns one or more expertise areas and the specialist workers that
serve them. It:
1. Registers with the supervisor on start (NOTIFICATION manager_registration)
2. Accepts delegated subtasks (new_task / take_over_task)
3. Runs the specialists for the subtask's goal in a worker slot and reports the result
4. Escalates to the supervisor when a subtask cannot be completed
5. Retries once with supervisor guidance, then reports the subtask failed

Load changes (workers added or removed) are reported to the supervisor so the
manager registry can balance assignments.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..models.constants import (
    AgentExpertise,
    MessageType,
    expertise_for_goal,
    parse_expertise,
    parse_goal_type,
)
from ..models.messages import AgentMessage, create_message
from ..services.message_bus import MessageBus
from .specialist_agents import SpecialistAgent, merge_outputs
from .supervisor_agent import SUPERVISOR_ID

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 5

# Supervisor decisions that end the manager's responsibility for a subtask
RELEASING_ACTIONS = {
    "task_cancelled",
    "task_completed_by_supervisor",
    "task_failed_by_supervisor",
    "task_reassigned",
    "task_decomposed",
    "escalation_superseded",
}


class AnalysisManagerAgent:
    """
    Manager actor for a set of expertise areas.

    Args:
        manager_id: Actor id on the bus
        expertise: Expertise areas covered
        bus: Message bus shared with the supervisor
        specialists: Specialists by expertise
        supervisor_id: Supervisor actor id
        max_workers: Maximum concurrent worker slots
        max_guided_retries: Retries allowed after supervisor guidance
    """

    def __init__(
        self,
        manager_id: str,
        expertise: Iterable[AgentExpertise],
        bus: MessageBus,
        specialists: Dict[AgentExpertise, SpecialistAgent],
        supervisor_id: str = SUPERVISOR_ID,
        max_workers: int = DEFAULT_MAX_WORKERS,
        max_guided_retries: int = 1,
    ):
        self.id = manager_id
        self.expertise = list(expertise)
        self.bus = bus
        self.specialists = specialists
        self.supervisor_id = supervisor_id
        self.max_workers = max_workers
        self.max_guided_retries = max_guided_retries
        self.workers: List[str] = []
        self.active_tasks: Dict[str, Dict[str, Any]] = {}
        self.guidance_attempts: Dict[str, int] = {}
        self.registered = False
        self._worker_counter = 0

    async def start(self) -> None:
        """Subscribe to the bus and register with the supervisor."""
        self.bus.subscribe(self.id, self.handle_message)
        await self._notify(
            {
                "event": "manager_registration",
                "manager_id": self.id,
                "expertise": [e.value for e in self.expertise],
            }
        )
        logger.info(f"[Manager:{self.id}] Registered for {[e.value for e in self.expertise]}")

    # ========================================================================
    # WORKERS
    # ========================================================================

    def add_worker(self, expertise: AgentExpertise) -> Optional[str]:
        """Allocate a worker slot; None when the manager is at capacity."""
        if len(self.workers) >= self.max_workers:
            logger.warning(f"[Manager:{self.id}] At capacity ({self.max_workers} workers)")
            return None
        self._worker_counter += 1
        worker_id = f"{self.id}-worker-{expertise.value}-{self._worker_counter}"
        self.workers.append(worker_id)
        return worker_id

    def remove_worker(self, worker_id: str) -> bool:
        if worker_id in self.workers:
            self.workers.remove(worker_id)
            return True
        return False

    # ========================================================================
    # MESSAGE HANDLING
    # ========================================================================

    async def handle_message(self, message: AgentMessage) -> None:
        action = message.action

        if message.type == MessageType.DELEGATE and action in ("new_task", "take_over_task"):
            task = message.content.get("task") or {}
            if action == "take_over_task":
                logger.info(
                    f"[Manager:{self.id}] Taking over {task.get('id')} "
                    f"from {message.content.get('previous_manager')}"
                )
            await self._run_task(task)
        elif action == "additional_guidance":
            await self._retry_with_guidance(message.content.get("task_id"), message.content.get("guidance"))
        elif action == "manager_registered":
            self.registered = True
        elif action in RELEASING_ACTIONS:
            task_id = message.content.get("task_id") or message.content.get("original_task_id")
            self._release(task_id)
            logger.info(f"[Manager:{self.id}] Supervisor resolved {task_id}: {action}")
        else:
            logger.debug(f"[Manager:{self.id}] Ignoring {message.type.value} {action}")

    def _specialists_for(self, task: Dict[str, Any]) -> List[SpecialistAgent]:
        """
        Specialists for a subtask, resolved from its goal type.

        Fallback subtasks keep the parent's goal (e.g. extract_decisions or
        full_analysis) while sitting on the default-expertise manager, so the
        goal decides which analysis runs. required_expertise is only used when
        the type is missing or unknown.
        """
        goal = parse_goal_type(task.get("type"))
        if goal is not None:
            expertise = expertise_for_goal(goal)
        else:
            expertise = [parse_expertise(task.get("required_expertise"))]

        specialists = []
        for area in expertise:
            specialist = self.specialists.get(area)
            if specialist is None:
                raise ValueError(f"No specialist for {area.value}")
            specialists.append(specialist)
        return specialists

    async def _run_task(self, task: Dict[str, Any], guidance: Optional[str] = None) -> None:
        task_id = task.get("id")
        if not task_id:
            logger.warning(f"[Manager:{self.id}] Delegation without a task id, ignoring")
            return

        self.active_tasks[task_id] = task
        worker_id = self.add_worker(parse_expertise(task.get("required_expertise")))
        if worker_id is None:
            await self.escalate_to_supervisor(task_id, "No worker capacity available")
            return

        await self._report_load()
        if guidance is None:
            await self._notify({"action": "task_started", "task_id": task_id, "worker_id": worker_id})

        payload = {**task.get("input", {}), "task_id": task_id}
        try:
            outputs = [
                await specialist.analyze(payload, guidance=guidance)
                for specialist in self._specialists_for(task)
            ]
            output = merge_outputs(outputs, str(task.get("type") or "general"), task_id=task_id)
        except Exception as e:
            logger.warning(f"[Manager:{self.id}] {task_id} failed in {worker_id}: {e}")
            await self.escalate_to_supervisor(
                task_id,
                str(e),
                {"worker_id": worker_id, "guided": guidance is not None},
            )
            return
        finally:
            self.remove_worker(worker_id)
            await self._report_load()

        self._release(task_id)
        await self._notify(
            {
                "action": "task_completed",
                "task_id": task_id,
                "output": output.content,
                "confidence": output.confidence.value,
                "reasoning": output.reasoning,
                "worker_id": worker_id,
                "task_type": task.get("type"),
            }
        )

    async def _retry_with_guidance(self, task_id: Optional[str], guidance: Optional[str]) -> None:
        task = self.active_tasks.get(task_id)
        if task is None:
            logger.debug(f"[Manager:{self.id}] Guidance for unknown task {task_id}")
            return

        attempts = self.guidance_attempts.get(task_id, 0)
        if attempts >= self.max_guided_retries:
            logger.warning(f"[Manager:{self.id}] {task_id} still failing after guidance, giving up")
            self._release(task_id)
            await self._notify({"action": "task_failed", "task_id": task_id, "reason": "failed after guidance"})
            return

        self.guidance_attempts[task_id] = attempts + 1
        await self._run_task(task, guidance=guidance or "")

    # ========================================================================
    # OUTBOUND
    # ========================================================================

    async def escalate_to_supervisor(
        self,
        task_id: str,
        reason: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Report that a subtask cannot be completed without supervisor help."""
        logger.info(f"[Manager:{self.id}] Escalating {task_id}: {reason}")
        await self.bus.send(
            create_message(
                MessageType.ESCALATE,
                self.id,
                [self.supervisor_id],
                {"task_id": task_id, "reason": reason, "context": context or {}},
            )
        )

    async def _report_load(self) -> None:
        await self._notify({"action": "load_update", "managed_agents": list(self.workers)})

    async def _notify(self, content: Dict[str, Any]) -> None:
        await self.bus.send(create_message(MessageType.NOTIFICATION, self.id, [self.supervisor_id], content))

    def _release(self, task_id: Optional[str]) -> None:
        if task_id:
            self.active_tasks.pop(task_id, None)
            self.guidance_attempts.pop(task_id, None)

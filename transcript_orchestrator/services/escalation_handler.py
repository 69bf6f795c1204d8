"""
Escalation Handler

Resolves a subtask that a manager reported it cannot complete. The oracle
chooses one of five actions:

1. Reassign: hand the subtask to another manager with the same expertise
2. Guide: send guidance back to the escalating manager
3. Decompose further: split the subtask into new subtasks and delegate them
4. Abandon: mark the subtask FAILED and tell the manager it was cancelled
5. Resolve directly: the supervisor processes the work itself

An unusable decision falls back to guidance. Every handled escalation ends
with at least one message sent, including when the subtask reached a
terminal state while the decision was being made.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.constants import MessageType
from ..models.messages import AgentMessage, create_message
from ..models.results import AgentOutput
from ..models.tasks import AnalysisTask, SubTask
from ..utils.json_parsing import extract_json_object
from .manager_registry import ManagerRegistry
from .message_bus import MessageBus
from .oracle import LanguageOracle
from .task_registry import TaskRegistry

logger = logging.getLogger(__name__)


# ============================================================================
# DECISION
# ============================================================================

REASSIGN, GUIDE, DECOMPOSE, ABANDON, RESOLVE_DIRECTLY = 1, 2, 3, 4, 5

ACTION_NAMES = {
    REASSIGN: "reassign",
    GUIDE: "guide",
    DECOMPOSE: "decompose_further",
    ABANDON: "abandon",
    RESOLVE_DIRECTLY: "resolve_directly",
}

GENERIC_GUIDANCE = "Please try to simplify the task and focus on the core requirements."


class EscalationDecision(BaseModel):
    """Oracle's choice of escalation action."""

    action: int = Field(ge=1, le=5)
    reasoning: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)


ESCALATION_PROMPT = """A manager has escalated a subtask it cannot complete.

SUBTASK:
{task}

ESCALATED BY: {escalator}
REASON: {reason}
CONTEXT:
{context}

Choose one action:
1. Reassign the subtask to a different manager
2. Provide additional guidance to the current manager
3. Decompose the subtask into smaller subtasks
4. Abandon the subtask
5. Resolve the subtask directly as supervisor

Respond with JSON only:
```json
{{
  "action": 2,
  "reasoning": "Why this action is appropriate",
  "details": {{"guidance": "Guidance for the manager, if action is 2"}}
}}
```
"""


def decode_decision(content: str) -> EscalationDecision:
    return EscalationDecision.model_validate(extract_json_object(content))


# ============================================================================
# HANDLER
# ============================================================================

class EscalationHandler:
    """
    Executes escalation decisions on behalf of the supervisor.

    Args:
        supervisor_id: Sender id for outgoing messages
        oracle: Language oracle used for the decision
        bus: Message bus for outgoing messages
        managers: Manager registry (read for reassignment)
        tasks: Task registry (subtask state)
        decompose: Supervisor decomposition, registers and returns new subtasks
        resolve_directly: Supervisor direct-processing path
        on_resolved: Called with the subtask and output after a direct resolution
    """

    def __init__(
        self,
        supervisor_id: str,
        oracle: LanguageOracle,
        bus: MessageBus,
        managers: ManagerRegistry,
        tasks: TaskRegistry,
        decompose: Callable[[AnalysisTask], Awaitable[List[SubTask]]],
        resolve_directly: Callable[[AnalysisTask], Awaitable[AgentOutput]],
        on_resolved: Optional[Callable[[SubTask, AgentOutput], Awaitable[None]]] = None,
    ):
        self.supervisor_id = supervisor_id
        self.oracle = oracle
        self.bus = bus
        self.managers = managers
        self.tasks = tasks
        self.decompose = decompose
        self.resolve_directly = resolve_directly
        self.on_resolved = on_resolved

    async def handle_escalation(self, message: AgentMessage) -> Optional[EscalationDecision]:
        """
        Handle an ESCALATE message.

        Args:
            message: Escalation with ``task_id``, ``reason`` and ``context`` content

        Returns:
            The decision executed, or None when the subtask is unknown or
            was already terminal
        """
        task_id = message.content.get("task_id") or message.content.get("taskId")
        reason = message.content.get("reason", "unspecified")
        context = message.content.get("context") or {}

        subtask = self.tasks.get_subtask(task_id) if task_id else None
        if subtask is None:
            logger.warning(f"[Escalation] Unknown subtask {task_id} from {message.sender}, ignoring")
            return None

        logger.info(f"[Escalation] {message.sender} escalated {task_id}: {reason}")

        if subtask.is_terminal:
            await self._send_superseded(message, subtask)
            return None

        prompt = ESCALATION_PROMPT.format(
            task=json.dumps(subtask.to_dict(), indent=2, default=str),
            escalator=message.sender,
            reason=reason,
            context=json.dumps(context, indent=2, default=str),
        )
        decision = await self.oracle.structured_call(
            prompt,
            decoder=decode_decision,
            fallback=lambda: EscalationDecision(
                action=GUIDE,
                reasoning=GENERIC_GUIDANCE,
                details={"guidance": GENERIC_GUIDANCE, "fallback": True},
            ),
            label=f"escalation[{task_id}]",
        )

        # State may have moved while the oracle was deciding
        subtask = self.tasks.get_subtask(task_id)
        if subtask is None or subtask.is_terminal:
            await self._send_superseded(message, subtask)
            return None

        logger.info(f"[Escalation] {task_id}: action {ACTION_NAMES[decision.action]} ({decision.reasoning[:80]})")
        actions = {
            REASSIGN: self._reassign,
            GUIDE: self._guide,
            DECOMPOSE: self._decompose_further,
            ABANDON: self._abandon,
            RESOLVE_DIRECTLY: self._resolve_directly,
        }
        await actions[decision.action](subtask, message, decision, reason, context)
        return decision

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def _reassign(self, subtask, message, decision, reason, context) -> None:
        new_manager = self.managers.assign_manager_for_expertise(subtask.required_expertise)
        if new_manager == subtask.managed_by:
            logger.info(f"[Escalation] {subtask.id}: no alternative manager, sending guidance instead")
            await self._guide(subtask, message, decision, reason, context)
            return

        previous = subtask.managed_by
        updated = self.tasks.reassign_subtask(subtask.id, new_manager)
        if updated is None:
            await self._send_superseded(message, subtask)
            return

        await self._send(
            MessageType.DELEGATE,
            [new_manager],
            {
                "action": "take_over_task",
                "task": updated.to_dict(),
                "previous_manager": previous,
                "escalation_context": {"reason": reason, "context": context},
            },
            reply_to=message.id,
        )
        await self._send(
            MessageType.NOTIFICATION,
            self._recipients(message.sender, previous),
            {"action": "task_reassigned", "task_id": subtask.id, "new_manager": new_manager},
            reply_to=message.id,
        )

    async def _guide(self, subtask, message, decision, reason, context) -> None:
        guidance = decision.details.get("guidance") or decision.reasoning or GENERIC_GUIDANCE
        await self._send(
            MessageType.RESPONSE,
            [message.sender],
            {
                "action": "additional_guidance",
                "task_id": subtask.id,
                "guidance": guidance,
                "priority": subtask.priority,
            },
            reply_to=message.id,
        )

    async def _decompose_further(self, subtask, message, decision, reason, context) -> None:
        new_subtasks = await self.decompose(subtask.clone())
        new_ids = [s.id for s in new_subtasks]

        self.tasks.update_context(subtask.id, superseded_by=new_ids)
        self.tasks.fail_subtask(subtask.id, reason=f"superseded by decomposition into {new_ids}")

        await self._send(
            MessageType.RESPONSE,
            [message.sender],
            {
                "action": "task_decomposed",
                "original_task_id": subtask.id,
                "decomposed_tasks": new_ids,
            },
            reply_to=message.id,
        )
        for new_subtask in new_subtasks:
            assigned = self.tasks.mark_assigned(new_subtask.id) or new_subtask
            await self._send(
                MessageType.DELEGATE,
                [assigned.managed_by],
                {"action": "new_task", "task": assigned.to_dict()},
                reply_to=message.id,
            )

    async def _abandon(self, subtask, message, decision, reason, context) -> None:
        self.tasks.fail_subtask(subtask.id, reason=decision.reasoning or reason)
        await self._send(
            MessageType.NOTIFICATION,
            [message.sender],
            {"action": "task_cancelled", "task_id": subtask.id, "reason": decision.reasoning or reason},
            reply_to=message.id,
        )

    async def _resolve_directly(self, subtask, message, decision, reason, context) -> None:
        direct_task = AnalysisTask(
            id=f"direct-{subtask.id}",
            type=subtask.type,
            input={**subtask.input, "description": subtask.description, "escalation_reason": reason},
            priority=subtask.priority,
        )
        recipients = self._recipients(subtask.managed_by, message.sender)

        try:
            output = await self.resolve_directly(direct_task)
        except Exception as e:
            logger.error(f"[Escalation] Direct resolution of {subtask.id} failed: {e}")
            self.tasks.fail_subtask(subtask.id, reason=f"direct resolution failed: {e}")
            await self._send(
                MessageType.NOTIFICATION,
                recipients,
                {"action": "task_failed_by_supervisor", "task_id": subtask.id, "error": str(e)},
                reply_to=message.id,
            )
            return

        completed = self.tasks.complete_subtask(subtask.id, output.content)
        if completed is not None and self.on_resolved is not None:
            await self.on_resolved(completed, output)
        await self._send(
            MessageType.NOTIFICATION,
            recipients,
            {
                "action": "task_completed_by_supervisor",
                "task_id": subtask.id,
                "output": output.content,
                "confidence": output.confidence.value,
            },
            reply_to=message.id,
        )

    # ------------------------------------------------------------------
    # Messaging helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _recipients(*candidates: Optional[str]) -> List[str]:
        return list(dict.fromkeys(c for c in candidates if c))

    async def _send_superseded(self, message: AgentMessage, subtask: Optional[SubTask]) -> None:
        status = subtask.status.value if subtask is not None else "unknown"
        logger.info(f"[Escalation] {message.content.get('task_id')} already {status}, escalation superseded")
        await self._send(
            MessageType.RESPONSE,
            [message.sender],
            {"action": "escalation_superseded", "task_id": message.content.get("task_id"), "status": status},
            reply_to=message.id,
        )

    async def _send(
        self,
        message_type: MessageType,
        recipients: List[str],
        content: Dict[str, Any],
        reply_to: Optional[str] = None,
    ) -> None:
        await self.bus.send(
            create_message(message_type, self.supervisor_id, recipients, content, reply_to=reply_to)
        )

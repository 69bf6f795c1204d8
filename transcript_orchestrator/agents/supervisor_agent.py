"""
Supervisor Agent Implementation

The supervisor is the top-level actor of the analysis hierarchy. It is
responsible for:
1. Decomposing an analysis goal into subtasks for expertise areas
2. Assigning each subtask to a manager (load-balanced, see ManagerRegistry)
3. Monitoring managers through bus notifications (start, completion, failure, load)
4. Resolving escalations (see EscalationHandler)
5. Choosing the next team in the replanning loop (see RoutingEngine)
6. Synthesizing completed results into the job's deliverable

The supervisor never touches a manager's state directly; everything it learns
or asks for travels over the MessageBus.
"""

import dataclasses
import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from ..config import OrchestratorSettings
from ..exceptions import EscalationDisallowedError, UnsupportedTaskTypeError
from ..models.constants import (
    ANALYSIS_EXPERTISE,
    DEFAULT_EXPERTISE,
    TEAM_TO_EXPERTISE,
    AgentExpertise,
    ConfidenceLevel,
    MessageType,
    TaskStatus,
    confidence_to_quality,
    expertise_for_goal,
    goal_for_expertise,
    parse_confidence,
    parse_expertise,
    parse_goal_type,
)
from ..models.messages import AgentMessage, create_message
from ..models.results import AgentOutput, AgentResultCollection, FinalResult
from ..models.tasks import AnalysisTask, SubTask, generate_task_id
from ..services.escalation_handler import EscalationHandler
from ..services.manager_registry import ManagerRegistry
from ..services.message_bus import MessageBus
from ..services.oracle import LanguageOracle
from ..services.result_synthesis import ResultSynthesisService
from ..services.routing_engine import RoutingEngine
from ..services.state_store import StateStore
from ..services.task_registry import TaskRegistry
from ..utils.json_parsing import extract_json
from .specialist_agents import SpecialistAgent, create_specialists, merge_outputs

logger = logging.getLogger(__name__)

SUPERVISOR_ID = "supervisor"


# ============================================================================
# DECOMPOSITION PROMPT
# ============================================================================

DECOMPOSITION_PROMPT = """You are the supervisor of a meeting analysis team. Break the following
analysis task into 3-5 subtasks, each handled by one specialist area.

TASK TYPE: {task_type}
PRIORITY: {priority}
INPUT:
{task_input}

Available expertise areas:
{expertise}

Respond with a JSON array only:
```json
[
  {{
    "description": "What this subtask must produce",
    "expertise": "topic_analysis",
    "priority": 1,
    "dependencies": ["Description of a subtask that must finish first"]
  }}
]
```
Priority is 1 (most urgent) to 5. Dependencies refer to other subtasks by their description.
"""

TRANSCRIPT_PREVIEW_CHARS = 2000


class SubtaskProposal(BaseModel):
    """One subtask proposed by the oracle."""

    description: str
    expertise: str = DEFAULT_EXPERTISE.value
    priority: int = 3
    dependencies: List[str] = Field(default_factory=list)

    @field_validator("priority", mode="before")
    @classmethod
    def clamp_priority(cls, value: Any) -> int:
        try:
            return max(1, min(5, int(value)))
        except (TypeError, ValueError):
            return 3


_PROPOSALS = TypeAdapter(List[SubtaskProposal])


def decode_proposals(content: str) -> List[SubtaskProposal]:
    """Parse the decomposition answer; raises when it has no usable subtasks."""
    data = extract_json(content)
    if isinstance(data, dict):
        data = data.get("subtasks")
    proposals = _PROPOSALS.validate_python(data)
    if not proposals:
        raise ValueError("Decomposition returned no subtasks")
    return proposals


# ============================================================================
# RESULT TYPE INFERENCE
# ============================================================================

# Content key -> task type, checked in order
CONTENT_TYPE_HINTS = [
    (("topics", "themes"), "topic_analysis"),
    (("action_items", "actionItems", "actions"), "action_item_extraction"),
    (("decisions",), "decision_tracking"),
    (("sentiment", "emotions", "overall"), "sentiment_analysis"),
    (("participation", "participants", "speakers"), "participant_dynamics"),
    (("summary",), "summary_generation"),
]


def get_task_type_from_result(output: AgentOutput) -> str:
    """Task type of an output, from its metadata or inferred from its content keys."""
    for key in ("task_type", "taskType", "component"):
        if output.metadata.get(key):
            return str(output.metadata[key])
    if isinstance(output.content, dict):
        for keys, task_type in CONTENT_TYPE_HINTS:
            if any(key in output.content for key in keys):
                return task_type
    return "general_analysis"


# ============================================================================
# SUPERVISOR AGENT
# ============================================================================

class AnalysisSupervisorAgent:
    """
    Top-level coordinator of managers and specialists.

    Args:
        bus: Message bus shared with the managers
        oracle: Language oracle (built from settings when omitted)
        managers: Manager registry
        tasks: Task registry
        synthesis: Result synthesis service
        specialists: Specialists used for direct processing
        state_store: Optional versioned store for job records and task snapshots
        settings: Orchestrator settings
        supervisor_id: Actor id on the bus

    Example:
        ```python
        bus = MessageBus()
        supervisor = AnalysisSupervisorAgent(bus)
        supervisor.start()
        workflow = await supervisor.create_hierarchical_workflow("full_analysis", transcript)
        await supervisor.dispatch_subtasks(workflow["subtasks"])
        ```
    """

    def __init__(
        self,
        bus: MessageBus,
        oracle: Optional[LanguageOracle] = None,
        managers: Optional[ManagerRegistry] = None,
        tasks: Optional[TaskRegistry] = None,
        synthesis: Optional[ResultSynthesisService] = None,
        specialists: Optional[Dict[AgentExpertise, SpecialistAgent]] = None,
        state_store: Optional[StateStore] = None,
        settings: Optional[OrchestratorSettings] = None,
        supervisor_id: str = SUPERVISOR_ID,
    ):
        self.id = supervisor_id
        self.settings = settings or OrchestratorSettings()
        self.bus = bus
        self.oracle = oracle or LanguageOracle(
            model_name=self.settings.model_name,
            temperature=self.settings.temperature,
            timeout=self.settings.oracle_timeout,
        )
        self.managers = managers or ManagerRegistry(capacity=self.settings.manager_capacity)
        self.tasks = tasks or TaskRegistry()
        self.synthesis = synthesis or ResultSynthesisService(
            self.oracle, default_quality=self.settings.default_quality
        )
        self.specialists = specialists or create_specialists(self.oracle)
        self.state_store = state_store
        self.routing = RoutingEngine(self.oracle)
        self.escalation = EscalationHandler(
            supervisor_id=self.id,
            oracle=self.oracle,
            bus=self.bus,
            managers=self.managers,
            tasks=self.tasks,
            decompose=self.decompose_task,
            resolve_directly=self.process_task,
            on_resolved=self._record_result,
        )
        self.messages: List[AgentMessage] = []

    def start(self) -> None:
        """Subscribe to the message bus."""
        self.bus.subscribe(self.id, self.handle_message)
        logger.info(f"[Supervisor] {self.id} listening")

    # ========================================================================
    # MESSAGE HANDLING
    # ========================================================================

    async def handle_message(self, message: AgentMessage) -> None:
        """Dispatch an inbound message to the matching handler."""
        self.messages.append(message)
        action = message.action

        if message.type == MessageType.ESCALATE:
            await self.handle_escalation(message)
        elif message.type != MessageType.NOTIFICATION:
            logger.debug(f"[Supervisor] Ignoring {message.type.value} from {message.sender}")
        elif action == "manager_registration":
            await self._handle_registration(message)
        elif action == "task_started":
            self.tasks.mark_started(message.content.get("task_id"))
        elif action == "task_completed":
            await self._handle_task_completed(message)
        elif action == "task_failed":
            await self._handle_task_failed(message)
        elif action == "load_update":
            self.managers.update_managed_agents(message.sender, message.content.get("managed_agents", []))
        else:
            logger.debug(f"[Supervisor] Unhandled notification {action} from {message.sender}")

    async def _handle_registration(self, message: AgentMessage) -> None:
        manager_id = message.content.get("manager_id") or message.sender
        record = self.managers.register_manager(
            manager_id,
            message.content.get("expertise", []),
            performance=message.content.get("performance", 0.8),
        )
        await self.bus.send(
            create_message(
                MessageType.NOTIFICATION,
                self.id,
                [message.sender],
                {
                    "event": "manager_registered",
                    "status": "success",
                    "manager_id": manager_id,
                    "expertise": sorted(e.value for e in record.expertise),
                },
                reply_to=message.id,
            )
        )

    async def _handle_task_completed(self, message: AgentMessage) -> None:
        task_id = message.content.get("task_id")
        output = AgentOutput(
            content=message.content.get("output"),
            confidence=parse_confidence(message.content.get("confidence"), default=ConfidenceLevel.MEDIUM),
            reasoning=message.content.get("reasoning"),
            metadata={"task_id": task_id, "worker_id": message.content.get("worker_id")},
        )
        completed = self.tasks.complete_subtask(task_id, output.content)
        if completed is None:
            return
        logger.info(f"[Supervisor] {message.sender} completed {task_id}")
        await self._record_result(completed, output)

    async def _handle_task_failed(self, message: AgentMessage) -> None:
        task_id = message.content.get("task_id")
        failed = self.tasks.fail_subtask(task_id, reason=message.content.get("reason", ""))
        if failed is not None:
            logger.warning(f"[Supervisor] {message.sender} reported {task_id} failed")
            await self._persist_subtask(failed, "Subtask failed")

    async def _record_result(self, subtask: SubTask, output: AgentOutput) -> None:
        job_id = subtask.job_id or subtask.parent_task_id
        self.synthesis.register_task_result(
            job_id,
            subtask.id,
            subtask.required_expertise.value,
            output.content,
            quality=confidence_to_quality(output.confidence),
        )
        await self._persist_subtask(subtask, "Subtask completed")

    # ========================================================================
    # DECOMPOSITION AND ASSIGNMENT
    # ========================================================================

    def assign_manager_for_expertise(self, expertise) -> str:
        """Manager id for an expertise tag (unknown tags use the default expertise)."""
        return self.managers.assign_manager_for_expertise(parse_expertise(expertise))

    async def decompose_task(self, task: AnalysisTask) -> List[SubTask]:
        """
        Decompose a task into registered subtasks.

        Never raises on bad oracle output: an unusable answer yields exactly one
        fallback subtask that copies the task's type and input.

        Args:
            task: Task to decompose

        Returns:
            Non-empty list of PENDING subtasks (snapshots)
        """
        prompt = DECOMPOSITION_PROMPT.format(
            task_type=task.type.value,
            priority=task.priority,
            task_input=self._render_input(task.input),
            expertise="\n".join(f"- {e.value}" for e in ANALYSIS_EXPERTISE),
        )
        proposals = await self.oracle.structured_call(
            prompt,
            decoder=decode_proposals,
            fallback=None,
            label=f"decomposition[{task.id}]",
        )

        if proposals is None:
            subtasks = [self._fallback_subtask(task)]
        else:
            subtasks = self._materialize(task, proposals)

        self.tasks.add_subtasks(subtasks)
        for subtask in subtasks:
            await self._persist_subtask(subtask, "Subtask created")
        logger.info(f"[Supervisor] Decomposed {task.id} into {len(subtasks)} subtasks")
        return [self.tasks.get_subtask(s.id) for s in subtasks]

    def _materialize(self, task: AnalysisTask, proposals: List[SubtaskProposal]) -> List[SubTask]:
        subtasks: List[SubTask] = []
        for proposal in proposals:
            # Only analysis areas have specialists, managers and teams
            expertise = parse_expertise(proposal.expertise, default=None)
            if expertise not in ANALYSIS_EXPERTISE:
                logger.warning(
                    f"[Supervisor] Unsupported expertise {proposal.expertise!r}, using {DEFAULT_EXPERTISE.value}"
                )
                expertise = DEFAULT_EXPERTISE
            subtasks.append(
                SubTask(
                    id=generate_task_id("subtask"),
                    parent_task_id=task.id,
                    type=goal_for_expertise(expertise),
                    managed_by=self.assign_manager_for_expertise(expertise),
                    required_expertise=expertise,
                    input={
                        **task.input,
                        "description": proposal.description,
                        "parent_task_context": {"task_type": task.type.value, "priority": task.priority},
                    },
                    context={"description": proposal.description, "dependencies": list(proposal.dependencies)},
                    priority=proposal.priority,
                )
            )

        # Dependencies arrive as descriptions; rewrite them to subtask ids
        by_description = {s.description: s.id for s in subtasks}
        for subtask in subtasks:
            resolved = []
            for dependency in subtask.context["dependencies"]:
                dependency_id = by_description.get(dependency)
                if dependency_id is None:
                    logger.debug(f"[Supervisor] Dropping unresolved dependency {dependency!r} of {subtask.id}")
                elif dependency_id != subtask.id:
                    resolved.append(dependency_id)
            subtask.context["dependencies"] = resolved
        return subtasks

    def _fallback_subtask(self, task: AnalysisTask) -> SubTask:
        logger.warning(f"[Supervisor] Using single fallback subtask for {task.id}")
        return SubTask(
            id=generate_task_id("subtask"),
            parent_task_id=task.id,
            type=task.type,
            managed_by=self.assign_manager_for_expertise(DEFAULT_EXPERTISE),
            required_expertise=DEFAULT_EXPERTISE,
            input=dict(task.input),
            context={"description": f"Complete {task.type.value}", "dependencies": [], "fallback": True},
            priority=max(1, min(5, task.priority)),
        )

    @staticmethod
    def _render_input(task_input: Dict[str, Any]) -> str:
        rendered = {k: v for k, v in task_input.items() if k != "transcript"}
        transcript = task_input.get("transcript")
        if transcript:
            rendered["transcript_preview"] = str(transcript)[:TRANSCRIPT_PREVIEW_CHARS]
            rendered["transcript_length"] = len(str(transcript))
        return json.dumps(rendered, indent=2, default=str)

    # ========================================================================
    # WORKFLOW
    # ========================================================================

    async def create_hierarchical_workflow(
        self,
        goal,
        transcript: str,
        job_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Create the main task for a job and decompose it.

        Args:
            goal: Analysis goal type (enum or value)
            transcript: Transcript text to analyze
            job_id: Job identifier (generated when omitted)
            metadata: Extra fields copied into the task input

        Returns:
            Dict with job_id, main_task, subtasks and required_expertise

        Raises:
            UnsupportedTaskTypeError: If ``goal`` is not a known goal type
        """
        goal_type = parse_goal_type(goal)
        if goal_type is None:
            raise UnsupportedTaskTypeError(goal)

        job_id = job_id or generate_task_id("job")
        main_task = AnalysisTask(
            id=generate_task_id(),
            type=goal_type,
            input={**(metadata or {}), "job_id": job_id, "transcript": transcript},
            assigned_to=self.id,
            priority=1,
        )
        main_task.transition_to(TaskStatus.ASSIGNED)
        main_task.transition_to(TaskStatus.IN_PROGRESS)
        self.tasks.add_task(main_task)

        subtasks = await self.decompose_task(main_task)
        required = list(dict.fromkeys(s.required_expertise.value for s in subtasks))

        if self.state_store is not None:
            await self.state_store.save(
                f"job:{job_id}",
                {
                    "job_id": job_id,
                    "main_task_id": main_task.id,
                    "goal": goal_type.value,
                    "status": "running",
                    "subtask_ids": [s.id for s in subtasks],
                    "required_expertise": required,
                },
                updated_by=self.id,
                description="Job created",
            )

        logger.info(f"[Supervisor] Job {job_id}: {len(subtasks)} subtasks across {required}")
        return {
            "job_id": job_id,
            "main_task": self.tasks.get_task(main_task.id),
            "subtasks": subtasks,
            "required_expertise": required,
        }

    def ready_subtasks(self, job_id: Optional[str] = None, team: Optional[str] = None) -> List[SubTask]:
        """PENDING subtasks whose dependencies are all terminal, optionally for one team."""
        all_subtasks = {s.id: s for s in self.tasks.list_subtasks(job_id=job_id)}
        ready = []
        for subtask in all_subtasks.values():
            if subtask.status != TaskStatus.PENDING:
                continue
            if team is not None and TEAM_TO_EXPERTISE.get(team) != subtask.required_expertise:
                continue
            blockers = [
                dep for dep in subtask.dependencies
                if dep in all_subtasks and not all_subtasks[dep].is_terminal
            ]
            if not blockers:
                ready.append(subtask)
        return sorted(ready, key=lambda s: s.priority)

    async def dispatch_subtasks(self, subtasks: Iterable[SubTask]) -> List[SubTask]:
        """
        Delegate ready subtasks to their managers.

        Subtasks that are not PENDING or whose dependencies are still open
        are skipped.

        Returns:
            The dispatched subtasks (status ASSIGNED)
        """
        ready_ids = {s.id for s in self.ready_subtasks()}
        dispatched: List[SubTask] = []
        for subtask in subtasks:
            if subtask.id not in ready_ids:
                continue
            assigned = self.tasks.mark_assigned(subtask.id)
            if assigned is None:
                continue
            await self.bus.send(
                create_message(
                    MessageType.DELEGATE,
                    self.id,
                    [assigned.managed_by],
                    {"action": "new_task", "task": assigned.to_dict(), "task_type": assigned.type.value},
                )
            )
            dispatched.append(assigned)
        if dispatched:
            logger.info(f"[Supervisor] Dispatched {[s.id for s in dispatched]}")
        return dispatched

    async def dispatch_ready_for_team(self, team: str, job_id: Optional[str] = None) -> List[SubTask]:
        return await self.dispatch_subtasks(self.ready_subtasks(job_id=job_id, team=team))

    # ========================================================================
    # ESCALATION AND ROUTING
    # ========================================================================

    async def handle_escalation(self, message: AgentMessage) -> None:
        await self.escalation.handle_escalation(message)

    async def decide_next_agent(
        self,
        messages: Optional[List[AgentMessage]] = None,
        job_id: Optional[str] = None,
    ) -> str:
        """Next team for the job, or FINISH (see RoutingEngine)."""
        history = self.messages if messages is None else messages
        return await self.routing.decide_next_agent(history, self.tasks.list_subtasks(job_id=job_id))

    # ========================================================================
    # DIRECT PROCESSING
    # ========================================================================

    async def process_task(self, task: AnalysisTask) -> AgentOutput:
        """
        Process a task with the supervisor's own specialists, bypassing managers.

        Tasks created for direct resolution (``direct-`` ids) cannot escalate:
        any failure on that path is raised as EscalationDisallowedError so the
        caller marks the subtask FAILED.

        Raises:
            UnsupportedTaskTypeError: If the task's type has no specialist
            EscalationDisallowedError: If a direct-resolution task fails
        """
        goal = parse_goal_type(task.type)
        if goal is None:
            raise UnsupportedTaskTypeError(task.type)
        specialists = [self.specialists.get(e) for e in expertise_for_goal(goal)]
        if any(s is None for s in specialists):
            raise UnsupportedTaskTypeError(goal.value)

        payload = {**task.input, "task_id": task.id}
        try:
            outputs = [await specialist.analyze(payload) for specialist in specialists]
        except Exception as e:
            if task.id.startswith("direct-"):
                raise EscalationDisallowedError(f"Direct resolution of {task.id} failed: {e}") from e
            raise

        return merge_outputs(outputs, goal.value, task_id=task.id)

    # ========================================================================
    # SYNTHESIS
    # ========================================================================

    async def synthesize_job(self, job_id: str, min_components: Optional[int] = None) -> Optional[FinalResult]:
        """Progressive synthesis over the job's completed subtasks; None if not ready."""
        completed = self.tasks.list_subtasks(job_id=job_id, statuses=[TaskStatus.COMPLETED])
        quorum = min_components if min_components is not None else self.settings.min_components
        result = await self.synthesis.progressive_synthesis(job_id, [s.id for s in completed], quorum)

        if result is not None and self.state_store is not None:
            await self.state_store.update(
                f"job:{job_id}",
                {"status": "synthesized", "final_result": result.to_dict()},
                updated_by=self.id,
                description="Job synthesized",
            )
        return result

    async def synthesize_result_collections(
        self,
        collections: List[AgentResultCollection],
        job_id: str,
    ) -> FinalResult:
        """
        Synthesize externally collected outputs for a job.

        Outputs are registered as intermediate results (quality derived from
        confidence); progressive synthesis is tried first, with a quorum of 2
        when several tasks contributed, and a direct synthesis over all
        outputs is used if the quorum is not met.
        """
        keys: List[str] = []
        labelled: List[AgentOutput] = []
        for collection in collections:
            for index, output in enumerate(collection.results):
                task_type = get_task_type_from_result(output)
                key = collection.task_id if len(collection.results) == 1 else f"{collection.task_id}-{index}"
                self.synthesis.register_task_result(
                    job_id, key, task_type, output.content, quality=confidence_to_quality(output.confidence)
                )
                keys.append(key)
                labelled.append(dataclasses.replace(output, metadata={**output.metadata, "component": task_type}))

        quorum = 2 if len(collections) > 1 else 1
        result = await self.synthesis.progressive_synthesis(job_id, keys, quorum)
        if result is not None:
            return result

        logger.info(f"[Supervisor] Job {job_id}: progressive synthesis not ready, synthesizing directly")
        merged = AgentResultCollection(
            task_id=job_id,
            results=labelled,
            metadata={"worker_ids": [c.task_id for c in collections]},
        )
        return await self.synthesis.synthesize_results(merged, job_id)

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    async def _persist_subtask(self, subtask: SubTask, description: str) -> None:
        if self.state_store is None:
            return
        await self.state_store.save(
            f"task:{subtask.id}", subtask.to_dict(), updated_by=self.id, description=description
        )

"""
Routing Engine

Decides which team should act next in the supervisor's replanning loop, or
whether the job is finished.

The engine summarizes the task registry into a routing context (completed
work, outstanding work, progress, current focus), asks the oracle to answer
through a constrained decision tool, and maps the decision onto a team name
through a fixed lookup table. Every path that does not produce a recognized
decision ends in FINISH, so routing always yields a value.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from ..models.constants import FINISH, TaskStatus, team_for_decision
from ..models.messages import AgentMessage
from .oracle import LanguageOracle

logger = logging.getLogger(__name__)


OUTSTANDING_STATUSES = (
    TaskStatus.PENDING,
    TaskStatus.ASSIGNED,
    TaskStatus.IN_PROGRESS,
    TaskStatus.REASSIGNED,
)


# ============================================================================
# DECISION TOOL
# ============================================================================

class SupervisorRouteDecision(BaseModel):
    """Choose the team that should work next, or FINISH when the analysis is complete."""

    reasoning: str = Field(description="Why this team should act next")
    next_action: Literal[
        "TOPIC_ANALYSIS",
        "ACTION_ITEM_EXTRACTION",
        "SUMMARY_GENERATION",
        "SENTIMENT_ANALYSIS",
        "PARTICIPANT_DYNAMICS",
        "DECISION_TRACKING",
        "CONTEXT_INTEGRATION",
        "FINISH",
    ] = Field(description="The analysis area to work on next, or FINISH")
    priority_level: int = Field(default=5, ge=1, le=10, description="Urgency of the next step (1-10)")
    additional_instructions: Optional[str] = Field(
        default=None, description="Optional instructions for the chosen team"
    )


ROUTING_SYSTEM_PROMPT = """You are the supervisor of a team of meeting analysis specialists.
You decide which specialist team works next based on what is done and what remains.
Pick FINISH only when no outstanding work would improve the analysis."""

ROUTING_PROMPT = """Current analysis state:

Progress: {progress}% of tasks completed
Current focus: {current_focus}

Completed tasks:
{completed}

Outstanding tasks:
{pending}

Latest message:
{latest_message}

Decide which team should act next using the SupervisorRouteDecision tool."""


# ============================================================================
# ROUTING CONTEXT
# ============================================================================

@dataclass
class RoutingContext:
    """Snapshot of task state handed to the routing prompt."""

    completed: List[Dict[str, Any]] = field(default_factory=list)
    pending: List[Dict[str, Any]] = field(default_factory=list)
    progress: int = 0
    current_focus: Optional[str] = None
    latest_message: Optional[Dict[str, Any]] = None

    def to_prompt(self) -> str:
        return ROUTING_PROMPT.format(
            progress=self.progress,
            current_focus=self.current_focus or "none",
            completed=json.dumps(self.completed, indent=2, default=str) if self.completed else "none",
            pending=json.dumps(self.pending, indent=2, default=str) if self.pending else "none",
            latest_message=json.dumps(self.latest_message, default=str) if self.latest_message else "none",
        )


def _value(enum_or_str: Any) -> Any:
    return getattr(enum_or_str, "value", enum_or_str)


def build_routing_context(messages: Sequence[AgentMessage], tasks: Sequence[Any]) -> RoutingContext:
    """
    Summarize messages and tasks for routing.

    Args:
        messages: Message history, oldest first
        tasks: AnalysisTask / SubTask objects from the task registry

    Returns:
        RoutingContext with progress as an integer percentage
    """
    completed = [
        {"id": t.id, "type": _value(t.type), "status": _value(t.status), "output": t.output}
        for t in tasks
        if t.status == TaskStatus.COMPLETED
    ]
    outstanding = sorted(
        (t for t in tasks if t.status in OUTSTANDING_STATUSES),
        key=lambda t: t.priority,
    )
    pending = [
        {"id": t.id, "type": _value(t.type), "status": _value(t.status), "priority": t.priority}
        for t in outstanding
    ]
    progress = int(len(completed) * 100 / len(tasks)) if tasks else 0

    current_focus = None
    latest = messages[-1] if messages else None
    if latest is not None:
        current_focus = _value(latest.task_type) if latest.task_type else None
    if current_focus is None and outstanding:
        current_focus = _value(outstanding[0].type)

    return RoutingContext(
        completed=completed,
        pending=pending,
        progress=progress,
        current_focus=current_focus,
        latest_message={"type": latest.type.value, "sender": latest.sender, "content": latest.content}
        if latest is not None
        else None,
    )


# ============================================================================
# ENGINE
# ============================================================================

class RoutingEngine:
    """Maps task state to the next team via a constrained oracle decision."""

    def __init__(self, oracle: LanguageOracle):
        self.oracle = oracle

    async def decide_next_agent(self, messages: Sequence[AgentMessage], tasks: Sequence[Any]) -> str:
        """
        Pick the next team, or FINISH.

        Args:
            messages: Message history
            tasks: Current task registry contents

        Returns:
            A team name such as "TopicTeam", or FINISH
        """
        context = build_routing_context(messages, tasks)

        if not context.pending:
            logger.info(f"[Routing] No outstanding tasks ({context.progress}% complete), routing to {FINISH}")
            return FINISH

        try:
            decision = await self.oracle.decide(
                context.to_prompt(),
                SupervisorRouteDecision,
                system_prompt=ROUTING_SYSTEM_PROMPT,
                label="routing",
            )
        except Exception as e:
            logger.error(f"[Routing] Decision failed: {e}. Routing to {FINISH}")
            return FINISH

        if not decision:
            logger.warning(f"[Routing] Oracle made no decision, routing to {FINISH}")
            return FINISH

        action = decision.get("next_action") or decision.get("nextAction")
        team = team_for_decision(action)
        logger.info(
            f"[Routing] {action} -> {team} (priority={decision.get('priority_level')}, "
            f"reason={str(decision.get('reasoning') or '')[:80]})"
        )
        return team

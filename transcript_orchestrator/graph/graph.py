"""
Supervisor Workflow Graph

This module wires the supervisor's replanning loop as a LangGraph StateGraph:
1. Plan: create the job's main task and decompose it into subtasks
2. Supervisor: choose the next team via the routing engine (or FINISH)
3. Team nodes: dispatch that team's ready subtasks to managers and wait for
   the message bus to settle (completions, escalations, follow-ups)
4. Synthesize: progressive synthesis over completed subtasks, then END

Architecture:
    START -> plan -> supervisor -> {TopicTeam, ActionTeam, ..., synthesize}
    each team -> supervisor
    synthesize -> END

The loop is bounded by ``max_steps`` supervisor decisions; reaching the bound
routes to synthesis.
"""

import logging
from typing import Any, Callable, Dict, Optional

from langgraph.graph import END, START, StateGraph

from ..agents.supervisor_agent import AnalysisSupervisorAgent
from ..models.constants import FINISH, TEAM_NAMES
from .state import OrchestrationState

logger = logging.getLogger(__name__)

SYNTHESIZE_NODE = "synthesize"


# ============================================================================
# CONDITIONAL ROUTING
# ============================================================================

def route_after_supervisor(state: OrchestrationState) -> str:
    """
    Conditional edge: route to the chosen team node.

    Returns:
        The team node name, or "synthesize" for FINISH and anything unknown
    """
    next_team = state.get("next_team", FINISH)
    if next_team in TEAM_NAMES:
        return next_team
    return SYNTHESIZE_NODE


# ============================================================================
# NODE FACTORIES
# ============================================================================

def _make_plan_node(supervisor: AnalysisSupervisorAgent) -> Callable:
    async def plan_node(state: OrchestrationState) -> Dict[str, Any]:
        if state.get("subtask_ids"):
            return {}
        workflow = await supervisor.create_hierarchical_workflow(
            state["goal"], state["transcript"], job_id=state["job_id"]
        )
        logger.info(f"[Graph] Planned job {state['job_id']}: {workflow['required_expertise']}")
        return {"subtask_ids": [s.id for s in workflow["subtasks"]]}

    return plan_node


def _make_supervisor_node(supervisor: AnalysisSupervisorAgent, max_steps: int) -> Callable:
    async def supervisor_node(state: OrchestrationState) -> Dict[str, Any]:
        steps = state.get("steps", 0) + 1
        if steps > max_steps:
            logger.warning(f"[Graph] Step limit {max_steps} reached for job {state['job_id']}")
            return {"next_team": FINISH, "steps": steps}
        next_team = await supervisor.decide_next_agent(job_id=state["job_id"])
        logger.info(f"[Graph] Step {steps}: {next_team}")
        return {"next_team": next_team, "steps": steps}

    return supervisor_node


def _make_team_node(supervisor: AnalysisSupervisorAgent, team: str) -> Callable:
    async def team_node(state: OrchestrationState) -> Dict[str, Any]:
        seen = len(supervisor.messages)
        dispatched = await supervisor.dispatch_ready_for_team(team, job_id=state["job_id"])
        await supervisor.bus.join()
        new_messages = [m.to_dict() for m in supervisor.messages[seen:]]
        logger.info(f"[Graph] {team}: dispatched {len(dispatched)}, received {len(new_messages)} messages")
        return {"dispatched": [s.id for s in dispatched], "messages": new_messages}

    return team_node


def _make_synthesize_node(supervisor: AnalysisSupervisorAgent) -> Callable:
    async def synthesize_node(state: OrchestrationState) -> Dict[str, Any]:
        job_id = state["job_id"]
        result = await supervisor.synthesize_job(job_id)
        if result is None:
            # Below quorum: synthesize whatever completed rather than returning nothing
            result = await supervisor.synthesize_job(job_id, min_components=1)
        return {"final_result": result.to_dict() if result is not None else None}

    return synthesize_node


# ============================================================================
# GRAPH BUILDER
# ============================================================================

def create_supervisor_graph(
    supervisor: AnalysisSupervisorAgent,
    max_steps: Optional[int] = None,
    checkpointer: Optional[Any] = None,
):
    """
    Build and compile the supervisor workflow graph.

    Args:
        supervisor: Started supervisor agent (managers registered on its bus)
        max_steps: Upper bound on supervisor decisions (settings default)
        checkpointer: Optional LangGraph checkpointer

    Returns:
        Compiled graph

    Usage:
        ```python
        graph = create_supervisor_graph(supervisor)
        final_state = await graph.ainvoke(
            {"job_id": "job-1", "goal": "full_analysis", "transcript": text,
             "subtask_ids": [], "next_team": "", "steps": 0,
             "messages": [], "dispatched": [], "final_result": None}
        )
        ```
    """
    limit = max_steps if max_steps is not None else supervisor.settings.max_routing_steps

    graph = StateGraph(OrchestrationState)

    # ========================================================================
    # ADD NODES
    # ========================================================================

    graph.add_node("plan", _make_plan_node(supervisor))
    graph.add_node("supervisor", _make_supervisor_node(supervisor, limit))
    for team in TEAM_NAMES:
        graph.add_node(team, _make_team_node(supervisor, team))
    graph.add_node(SYNTHESIZE_NODE, _make_synthesize_node(supervisor))

    # ========================================================================
    # DEFINE EDGES
    # ========================================================================

    graph.add_edge(START, "plan")
    graph.add_edge("plan", "supervisor")

    routes = {team: team for team in TEAM_NAMES}
    routes[SYNTHESIZE_NODE] = SYNTHESIZE_NODE
    graph.add_conditional_edges("supervisor", route_after_supervisor, routes)

    for team in TEAM_NAMES:
        graph.add_edge(team, "supervisor")
    graph.add_edge(SYNTHESIZE_NODE, END)

    return graph.compile(checkpointer=checkpointer)


async def run_orchestration(
    supervisor: AnalysisSupervisorAgent,
    goal: str,
    transcript: str,
    job_id: str,
    max_steps: Optional[int] = None,
    checkpointer: Optional[Any] = None,
) -> OrchestrationState:
    """
    Run one analysis job through the supervisor graph.

    Returns:
        Final graph state; ``final_result`` holds the synthesized deliverable
    """
    graph = create_supervisor_graph(supervisor, max_steps=max_steps, checkpointer=checkpointer)
    limit = max_steps if max_steps is not None else supervisor.settings.max_routing_steps

    initial_state: OrchestrationState = {
        "job_id": job_id,
        "goal": goal,
        "transcript": transcript,
        "subtask_ids": [],
        "next_team": "",
        "steps": 0,
        "messages": [],
        "dispatched": [],
        "final_result": None,
    }
    config: Dict[str, Any] = {"recursion_limit": 2 * limit + 10}
    if checkpointer is not None:
        config["configurable"] = {"thread_id": job_id}

    return await graph.ainvoke(initial_state, config)

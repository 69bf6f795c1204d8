"""
Unit tests for the supervisor workflow graph.

Test Coverage:
- Conditional routing after the supervisor node
- Graph structure (plan, supervisor, team nodes, synthesize)
- Step limit and FINISH handling with a scripted chat model
- Checkpointer support
"""

import pytest
from langgraph.checkpoint.memory import MemorySaver

from transcript_orchestrator.agents.supervisor_agent import AnalysisSupervisorAgent
from transcript_orchestrator.graph.graph import (
    SYNTHESIZE_NODE,
    create_supervisor_graph,
    route_after_supervisor,
    run_orchestration,
)
from transcript_orchestrator.models.constants import FINISH, TEAM_NAMES, TaskStatus
from transcript_orchestrator.services.oracle import LanguageOracle


TOPIC_PLAN = [{"description": "Identify the main topics", "expertise": "topic_analysis", "priority": 1}]


@pytest.fixture
def unstaffed_supervisor(bus, settings, scripted_llm):
    """Supervisor without managers: every delegation lands in dead letters."""

    def build(**script):
        llm = scripted_llm(**script)
        agent = AnalysisSupervisorAgent(bus, oracle=LanguageOracle(llm=llm, timeout=1.0), settings=settings)
        agent.start()
        return agent, llm

    return build


class TestRouteAfterSupervisor:
    @pytest.mark.parametrize("team", TEAM_NAMES)
    def test_team_names_route_to_team(self, team):
        assert route_after_supervisor({"next_team": team}) == team

    @pytest.mark.parametrize("value", [FINISH, "", "KaraokeTeam"])
    def test_everything_else_routes_to_synthesis(self, value):
        assert route_after_supervisor({"next_team": value}) == SYNTHESIZE_NODE

    def test_missing_decision_routes_to_synthesis(self):
        assert route_after_supervisor({}) == SYNTHESIZE_NODE


class TestGraphStructure:
    def test_nodes(self, unstaffed_supervisor):
        supervisor, _ = unstaffed_supervisor()

        graph = create_supervisor_graph(supervisor)
        nodes = set(graph.get_graph().nodes)

        assert {"plan", "supervisor", SYNTHESIZE_NODE}.issubset(nodes)
        assert set(TEAM_NAMES).issubset(nodes)


class TestGraphExecution:
    @pytest.mark.asyncio
    async def test_step_limit_forces_synthesis(self, unstaffed_supervisor):
        supervisor, llm = unstaffed_supervisor(decomposition=TOPIC_PLAN, routes=["TOPIC_ANALYSIS"] * 10)

        state = await run_orchestration(supervisor, "extract_topics", "Alice: hi", "job-1", max_steps=2)

        subtask_id = state["subtask_ids"][0]
        assert state["steps"] == 3
        assert state["next_team"] == FINISH
        assert state["dispatched"] == [subtask_id]
        assert state["final_result"] is None
        assert llm.route_calls == 2
        assert supervisor.tasks.get_subtask(subtask_id).status == TaskStatus.ASSIGNED
        assert supervisor.bus.dead_letters[0].message.content["task"]["id"] == subtask_id

    @pytest.mark.asyncio
    async def test_immediate_finish(self, unstaffed_supervisor):
        supervisor, llm = unstaffed_supervisor(decomposition=TOPIC_PLAN, routes=[])

        state = await run_orchestration(supervisor, "extract_topics", "Alice: hi", "job-2")

        assert state["steps"] == 1
        assert state["dispatched"] == []
        assert state["messages"] == []
        assert state["final_result"] is None

    @pytest.mark.asyncio
    async def test_runs_with_checkpointer(self, unstaffed_supervisor):
        supervisor, _ = unstaffed_supervisor(decomposition=TOPIC_PLAN, routes=[])
        checkpointer = MemorySaver()

        state = await run_orchestration(
            supervisor, "extract_topics", "Alice: hi", "job-3", checkpointer=checkpointer
        )

        saved = checkpointer.get({"configurable": {"thread_id": "job-3"}})
        assert saved is not None
        assert state["job_id"] == "job-3"

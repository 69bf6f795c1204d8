"""
Pytest Configuration and Shared Fixtures

This module provides shared fixtures for all test suites:
- Mock chat models (plain MagicMock and a scripted stand-in)
- Oracle, registries, message bus and state store instances
- A started supervisor wired to the fixtures above
- Sample transcript data
"""

import json
import os
import warnings

os.environ["LANGCHAIN_VERBOSE"] = "false"
os.environ.setdefault("OPENAI_API_KEY", "sk-test-not-used")

from langchain_core.globals import set_debug
set_debug(False)

import pytest
import pytest_asyncio
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock
from langchain_core.messages import AIMessage

from transcript_orchestrator.agents.supervisor_agent import AnalysisSupervisorAgent
from transcript_orchestrator.config import OrchestratorSettings
from transcript_orchestrator.models.constants import AgentExpertise
from transcript_orchestrator.services.manager_registry import ManagerRegistry
from transcript_orchestrator.services.message_bus import MessageBus
from transcript_orchestrator.services.oracle import LanguageOracle
from transcript_orchestrator.services.state_store import InMemoryStateStore
from transcript_orchestrator.services.task_registry import TaskRegistry

warnings.filterwarnings("ignore", category=DeprecationWarning)


# ============================================================================
# SAMPLE DATA
# ============================================================================

SAMPLE_TRANSCRIPT = """Alice: Welcome everyone. Today we review the Q3 launch plan.
Bob: The landing page is ready, but the pricing copy still needs legal review.
Alice: Let's decide to ship on October 14th. Bob, can you get legal sign-off by Friday?
Bob: Yes, I'll take that.
Carol: I'm worried the support team hasn't been briefed.
Alice: Good point. Carol, please run a briefing next Tuesday."""


@pytest.fixture
def sample_transcript() -> str:
    return SAMPLE_TRANSCRIPT


# ============================================================================
# MOCK LLM FIXTURES
# ============================================================================

def json_reply(payload: Any) -> AIMessage:
    """AIMessage carrying ``payload`` inside a ```json fence."""
    return AIMessage(content=f"```json\n{json.dumps(payload)}\n```")


def route_reply(next_action: str, reasoning: str = "Next logical step") -> AIMessage:
    """AIMessage carrying a SupervisorRouteDecision tool call."""
    return AIMessage(
        content="",
        tool_calls=[
            {
                "name": "SupervisorRouteDecision",
                "args": {"reasoning": reasoning, "next_action": next_action, "priority_level": 5},
                "id": "call-route-1",
            }
        ],
    )


@pytest.fixture
def mock_llm():
    """
    MagicMock chat model.

    ``ainvoke`` answers free-form prompts; ``bind_tools(...).ainvoke`` answers
    constrained decisions. Tests set ``return_value`` / ``side_effect`` on
    either as needed.
    """
    llm = MagicMock()
    llm.ainvoke = AsyncMock(return_value=AIMessage(content="{}"))
    bound = MagicMock()
    bound.ainvoke = AsyncMock(return_value=route_reply("FINISH"))
    llm.bind_tools.return_value = bound
    return llm


@pytest.fixture
def reply():
    """Factory for JSON-fenced AIMessage replies."""
    return json_reply


@pytest.fixture
def route():
    """Factory for routing tool-call replies."""
    return route_reply


class ScriptedChatModel:
    """
    Chat model stand-in that answers by prompt kind.

    - decomposition prompts get ``decomposition``, later ones pop ``replans``
    - synthesis prompts get ``synthesis``
    - escalation prompts get ``escalation``
    - specialist prompts get ``specialist_results[expertise]``
    - routing decisions pop ``routes`` in order, then FINISH
    """

    def __init__(
        self,
        decomposition: Optional[List[Dict[str, Any]]] = None,
        routes: Optional[List[str]] = None,
        synthesis: Optional[Dict[str, Any]] = None,
        escalation: Optional[Dict[str, Any]] = None,
        specialist_results: Optional[Dict[AgentExpertise, Any]] = None,
        replans: Optional[List[Any]] = None,
    ):
        self.decomposition = decomposition
        self.replans = list(replans or [])
        self.decompositions = 0
        self.routes = list(routes or [])
        self.synthesis = synthesis
        self.escalation = escalation
        self.specialist_results = specialist_results or {}
        self.prompts: List[str] = []
        self.route_calls = 0

    async def ainvoke(self, messages):
        system = messages[0].content if len(messages) > 1 else ""
        prompt = messages[-1].content
        self.prompts.append(prompt)

        if "Break the following" in prompt:
            self.decompositions += 1
            if self.decompositions > 1 and self.replans:
                return self._answer(self.replans.pop(0))
            return self._answer(self.decomposition)
        if "Synthesize the following" in prompt:
            return self._answer(self.synthesis)
        if "escalated a subtask" in prompt:
            return self._answer(self.escalation)
        for expertise, result in self.specialist_results.items():
            if f"focused on {expertise.value.replace('_', ' ')}" in system:
                if isinstance(result, Exception):
                    raise result
                return self._answer(result)
        return AIMessage(content="I cannot help with that.")

    def bind_tools(self, tools, tool_choice=None):
        model = self

        class _Bound:
            async def ainvoke(self, messages):
                model.route_calls += 1
                action = model.routes.pop(0) if model.routes else "FINISH"
                return route_reply(action)

        return _Bound()

    @staticmethod
    def _answer(payload: Any) -> AIMessage:
        if payload is None:
            return AIMessage(content="no structured answer")
        return json_reply(payload)


@pytest.fixture
def scripted_llm():
    """The ScriptedChatModel class, for tests that build their own script."""
    return ScriptedChatModel


# ============================================================================
# SERVICE FIXTURES
# ============================================================================

@pytest.fixture
def oracle(mock_llm) -> LanguageOracle:
    return LanguageOracle(llm=mock_llm, timeout=1.0)


@pytest.fixture
def manager_registry() -> ManagerRegistry:
    return ManagerRegistry(capacity=2)


@pytest.fixture
def task_registry() -> TaskRegistry:
    return TaskRegistry()


@pytest.fixture
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest_asyncio.fixture
async def bus():
    """Message bus whose pair workers are cancelled after the test."""
    message_bus = MessageBus()
    yield message_bus
    await message_bus.close()


@pytest.fixture
def settings() -> OrchestratorSettings:
    return OrchestratorSettings(oracle_timeout=1.0, manager_capacity=2, max_routing_steps=6)


@pytest_asyncio.fixture
async def supervisor(bus, oracle, manager_registry, task_registry, state_store, settings):
    """Supervisor subscribed to the bus, using the mock LLM through ``oracle``."""
    agent = AnalysisSupervisorAgent(
        bus,
        oracle=oracle,
        managers=manager_registry,
        tasks=task_registry,
        state_store=state_store,
        settings=settings,
    )
    agent.start()
    return agent

"""
Orchestrator Composition Root

Wires one oracle, one message bus, the registries, the synthesis service,
the supervisor and one manager per analysis expertise into a ready-to-run
Orchestrator.

Usage:
    ```python
    orchestrator = build_orchestrator()
    await orchestrator.start()
    state = await orchestrator.run("full_analysis", transcript, job_id="weekly-sync")
    print(state["final_result"]["summary"])
    await orchestrator.close()
    ```
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .agents.manager_agent import AnalysisManagerAgent
from .agents.specialist_agents import create_specialists
from .agents.supervisor_agent import AnalysisSupervisorAgent
from .config import OrchestratorSettings, configure_logging
from .graph.graph import run_orchestration
from .graph.state import OrchestrationState
from .models.constants import ANALYSIS_EXPERTISE
from .models.tasks import generate_task_id
from .services.manager_registry import ManagerRegistry
from .services.message_bus import MessageBus
from .services.oracle import LanguageOracle
from .services.result_synthesis import ResultSynthesisService
from .services.state_store import StateStore
from .services.task_registry import TaskRegistry

logger = logging.getLogger(__name__)


@dataclass
class Orchestrator:
    """Handle on a wired supervisor, its managers and their bus."""

    settings: OrchestratorSettings
    bus: MessageBus
    supervisor: AnalysisSupervisorAgent
    managers: List[AnalysisManagerAgent] = field(default_factory=list)
    started: bool = False

    async def start(self) -> None:
        """Subscribe every actor and let managers register with the supervisor."""
        if self.started:
            return
        self.supervisor.start()
        for manager in self.managers:
            await manager.start()
        await self.bus.join()
        self.started = True
        logger.info(f"[Orchestrator] Started with {len(self.managers)} managers")

    async def run(self, goal: str, transcript: str, job_id: Optional[str] = None) -> OrchestrationState:
        """Run one analysis job through the supervisor graph."""
        await self.start()
        return await run_orchestration(
            self.supervisor,
            goal,
            transcript,
            job_id or generate_task_id("job"),
            max_steps=self.settings.max_routing_steps,
        )

    async def close(self) -> None:
        await self.bus.close()
        self.started = False


def build_orchestrator(
    settings: Optional[OrchestratorSettings] = None,
    llm: Optional[Any] = None,
    state_store: Optional[StateStore] = None,
) -> Orchestrator:
    """
    Build an Orchestrator.

    Args:
        settings: Settings (read from the environment when omitted)
        llm: Chat model to use instead of ChatOpenAI
        state_store: Versioned store for job records and task snapshots

    Returns:
        Orchestrator, not yet started
    """
    settings = settings or OrchestratorSettings.from_env()
    configure_logging(settings.log_level)

    oracle = LanguageOracle(
        llm=llm,
        model_name=settings.model_name,
        temperature=settings.temperature,
        timeout=settings.oracle_timeout,
    )
    bus = MessageBus()
    specialists = create_specialists(oracle)

    supervisor = AnalysisSupervisorAgent(
        bus,
        oracle=oracle,
        managers=ManagerRegistry(capacity=settings.manager_capacity),
        tasks=TaskRegistry(),
        synthesis=ResultSynthesisService(oracle, default_quality=settings.default_quality),
        specialists=specialists,
        state_store=state_store,
        settings=settings,
    )
    managers = [
        AnalysisManagerAgent(
            f"manager-{expertise.value}",
            [expertise],
            bus,
            specialists,
            supervisor_id=supervisor.id,
            max_workers=settings.manager_capacity,
        )
        for expertise in ANALYSIS_EXPERTISE
    ]
    return Orchestrator(settings=settings, bus=bus, supervisor=supervisor, managers=managers)

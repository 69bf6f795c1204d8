"""
Transcript Orchestrator

Hierarchical task orchestration and result synthesis for transcript analysis:
a supervisor decomposes an analysis goal, managers run specialist workers,
escalations are resolved by the supervisor, and partial results are folded
into one confidence-weighted deliverable.
"""

from .config import OrchestratorSettings, configure_logging
from .factory import Orchestrator, build_orchestrator

__version__ = "0.1.0"

__all__ = [
    "OrchestratorSettings",
    "configure_logging",
    "Orchestrator",
    "build_orchestrator",
]

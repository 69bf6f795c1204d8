"""
LangGraph Workflow

This module contains the supervisor workflow graph:
- OrchestrationState: job state carried through the graph
- create_supervisor_graph: plan -> supervisor -> team nodes -> synthesize
- run_orchestration: run one job end to end
"""

from .state import OrchestrationState
from .graph import create_supervisor_graph, route_after_supervisor, run_orchestration

__all__ = [
    "OrchestrationState",
    "create_supervisor_graph",
    "route_after_supervisor",
    "run_orchestration",
]

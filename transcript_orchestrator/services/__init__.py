"""
Orchestration Services

Registries, the message bus, the language oracle wrapper, and the escalation,
routing and synthesis services the supervisor composes.
"""

from .oracle import LanguageOracle
from .message_bus import MessageBus, Delivery
from .manager_registry import ManagerRegistry, ManagerRecord
from .task_registry import TaskRegistry
from .state_store import StateStore, InMemoryStateStore, deep_merge
from .routing_engine import RoutingEngine, RoutingContext, SupervisorRouteDecision, build_routing_context
from .escalation_handler import EscalationHandler, EscalationDecision
from .result_synthesis import ResultSynthesisService

__all__ = [
    "LanguageOracle",
    "MessageBus",
    "Delivery",
    "ManagerRegistry",
    "ManagerRecord",
    "TaskRegistry",
    "StateStore",
    "InMemoryStateStore",
    "deep_merge",
    "RoutingEngine",
    "RoutingContext",
    "SupervisorRouteDecision",
    "build_routing_context",
    "EscalationHandler",
    "EscalationDecision",
    "ResultSynthesisService",
]

"""
Agent Implementations

This module contains the actors of the analysis hierarchy:
- AnalysisSupervisorAgent: decomposition, assignment, escalation, routing, synthesis
- AnalysisManagerAgent: runs delegated subtasks on specialist workers
- SpecialistAgent: one analysis expertise (topics, action items, ...)
"""

from .supervisor_agent import AnalysisSupervisorAgent, SUPERVISOR_ID, get_task_type_from_result
from .manager_agent import AnalysisManagerAgent
from .specialist_agents import SpecialistAgent, create_specialists

__all__ = [
    "AnalysisSupervisorAgent",
    "SUPERVISOR_ID",
    "get_task_type_from_result",
    "AnalysisManagerAgent",
    "SpecialistAgent",
    "create_specialists",
]

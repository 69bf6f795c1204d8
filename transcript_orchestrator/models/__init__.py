"""
Data Models

Enums, lookup tables, task entities, messages and results shared by every
orchestration component.
"""

from .constants import (
    AgentExpertise,
    AnalysisGoalType,
    TaskStatus,
    ConfidenceLevel,
    MessageType,
    FINISH,
    DEFAULT_EXPERTISE,
    ANALYSIS_EXPERTISE,
    TEAM_NAMES,
    TEAM_TO_EXPERTISE,
    quality_to_confidence,
    confidence_to_quality,
    parse_confidence,
    parse_expertise,
    parse_goal_type,
    goal_for_expertise,
    expertise_for_goal,
    team_for_decision,
)
from .tasks import AnalysisTask, SubTask, generate_task_id, utc_now
from .messages import AgentMessage, create_message
from .results import AgentOutput, AgentResultCollection, FinalResult, IntermediateResult

__all__ = [
    # Enums
    "AgentExpertise",
    "AnalysisGoalType",
    "TaskStatus",
    "ConfidenceLevel",
    "MessageType",
    # Constants and lookups
    "FINISH",
    "DEFAULT_EXPERTISE",
    "ANALYSIS_EXPERTISE",
    "TEAM_NAMES",
    "TEAM_TO_EXPERTISE",
    "quality_to_confidence",
    "confidence_to_quality",
    "parse_confidence",
    "parse_expertise",
    "parse_goal_type",
    "goal_for_expertise",
    "expertise_for_goal",
    "team_for_decision",
    # Tasks
    "AnalysisTask",
    "SubTask",
    "generate_task_id",
    "utc_now",
    # Messages
    "AgentMessage",
    "create_message",
    # Results
    "AgentOutput",
    "AgentResultCollection",
    "FinalResult",
    "IntermediateResult",
]

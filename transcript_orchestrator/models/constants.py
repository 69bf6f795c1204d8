"""
Orchestration Constants and Enums

This module defines the enums, constants, and lookup tables shared by the
supervisor, the managers and the synthesis service:
- AgentExpertise / AnalysisGoalType: what a worker can do, and what a task asks for
- TaskStatus: lifecycle state machine shared by AnalysisTask and SubTask
- ConfidenceLevel: ordered confidence scale used by outputs and syntheses
- MessageType: kinds of inter-actor messages
- Lookup tables between the enums above, each with an explicit default
"""

from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple


class AgentExpertise(str, Enum):
    """Specialist domain a manager or worker covers."""

    TOPIC_ANALYSIS = "topic_analysis"
    ACTION_ITEM_EXTRACTION = "action_item_extraction"
    DECISION_TRACKING = "decision_tracking"
    SENTIMENT_ANALYSIS = "sentiment_analysis"
    PARTICIPANT_DYNAMICS = "participant_dynamics"
    SUMMARY_GENERATION = "summary_generation"
    CONTEXT_INTEGRATION = "context_integration"
    COORDINATION = "coordination"
    MANAGEMENT = "management"


class AnalysisGoalType(str, Enum):
    """Goal type carried by an AnalysisTask or SubTask."""

    EXTRACT_TOPICS = "extract_topics"
    EXTRACT_ACTION_ITEMS = "extract_action_items"
    EXTRACT_DECISIONS = "extract_decisions"
    ANALYZE_SENTIMENT = "analyze_sentiment"
    ANALYZE_PARTICIPATION = "analyze_participation"
    GENERATE_SUMMARY = "generate_summary"
    INTEGRATE_CONTEXT = "integrate_context"
    FULL_ANALYSIS = "full_analysis"


class TaskStatus(str, Enum):
    """Status of a task or subtask."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    REASSIGNED = "reassigned"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class ConfidenceLevel(str, Enum):
    """Ordered confidence scale (HIGH is best)."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNCERTAIN = "uncertain"

    @property
    def rank(self) -> int:
        """Ordinal rank, 3 for HIGH down to 0 for UNCERTAIN."""
        return CONFIDENCE_RANK[self]


class MessageType(str, Enum):
    """Kinds of messages exchanged between actors."""

    REQUEST = "request"
    RESPONSE = "response"
    NOTIFICATION = "notification"
    DELEGATE = "delegate"
    ESCALATE = "escalate"
    UPDATE = "update"
    ERROR = "error"


# ============================================================================
# STATE MACHINE
# ============================================================================

TERMINAL_STATUSES: FrozenSet[TaskStatus] = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})

ALLOWED_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.ASSIGNED, TaskStatus.REASSIGNED, TaskStatus.FAILED}),
    TaskStatus.ASSIGNED: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.REASSIGNED, TaskStatus.FAILED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED, TaskStatus.REASSIGNED, TaskStatus.FAILED}),
    TaskStatus.REASSIGNED: frozenset({TaskStatus.ASSIGNED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}


# ============================================================================
# CONFIDENCE / QUALITY
# ============================================================================

CONFIDENCE_RANK: Dict[ConfidenceLevel, int] = {
    ConfidenceLevel.HIGH: 3,
    ConfidenceLevel.MEDIUM: 2,
    ConfidenceLevel.LOW: 1,
    ConfidenceLevel.UNCERTAIN: 0,
}

# Lower bounds, checked in order: [0.8, 1.0] HIGH, [0.6, 0.8) MEDIUM, [0.4, 0.6) LOW
QUALITY_THRESHOLDS: List[Tuple[float, ConfidenceLevel]] = [
    (0.8, ConfidenceLevel.HIGH),
    (0.6, ConfidenceLevel.MEDIUM),
    (0.4, ConfidenceLevel.LOW),
]

CONFIDENCE_QUALITY: Dict[ConfidenceLevel, float] = {
    ConfidenceLevel.HIGH: 0.9,
    ConfidenceLevel.MEDIUM: 0.7,
    ConfidenceLevel.LOW: 0.5,
    ConfidenceLevel.UNCERTAIN: 0.3,
}


def quality_to_confidence(quality: float) -> ConfidenceLevel:
    """Map a quality score in [0, 1] onto the confidence scale."""
    for lower_bound, level in QUALITY_THRESHOLDS:
        if quality >= lower_bound:
            return level
    return ConfidenceLevel.UNCERTAIN


def confidence_to_quality(confidence: Optional[ConfidenceLevel]) -> float:
    """Map a confidence level back to a representative quality score."""
    return CONFIDENCE_QUALITY.get(parse_confidence(confidence), 0.3)


def parse_confidence(value, default: ConfidenceLevel = ConfidenceLevel.UNCERTAIN) -> ConfidenceLevel:
    """Parse a confidence label (case-insensitive), returning default if unknown."""
    if isinstance(value, ConfidenceLevel):
        return value
    if isinstance(value, str):
        try:
            return ConfidenceLevel(value.strip().lower())
        except ValueError:
            return default
    return default


# ============================================================================
# EXPERTISE / GOAL / TEAM LOOKUP TABLES
# ============================================================================

DEFAULT_EXPERTISE = AgentExpertise.TOPIC_ANALYSIS

# Expertise areas a specialist worker exists for
ANALYSIS_EXPERTISE: List[AgentExpertise] = [
    AgentExpertise.TOPIC_ANALYSIS,
    AgentExpertise.ACTION_ITEM_EXTRACTION,
    AgentExpertise.DECISION_TRACKING,
    AgentExpertise.SENTIMENT_ANALYSIS,
    AgentExpertise.PARTICIPANT_DYNAMICS,
    AgentExpertise.SUMMARY_GENERATION,
    AgentExpertise.CONTEXT_INTEGRATION,
]

EXPERTISE_TO_GOAL: Dict[AgentExpertise, AnalysisGoalType] = {
    AgentExpertise.TOPIC_ANALYSIS: AnalysisGoalType.EXTRACT_TOPICS,
    AgentExpertise.ACTION_ITEM_EXTRACTION: AnalysisGoalType.EXTRACT_ACTION_ITEMS,
    AgentExpertise.DECISION_TRACKING: AnalysisGoalType.EXTRACT_DECISIONS,
    AgentExpertise.SENTIMENT_ANALYSIS: AnalysisGoalType.ANALYZE_SENTIMENT,
    AgentExpertise.PARTICIPANT_DYNAMICS: AnalysisGoalType.ANALYZE_PARTICIPATION,
    AgentExpertise.SUMMARY_GENERATION: AnalysisGoalType.GENERATE_SUMMARY,
    AgentExpertise.CONTEXT_INTEGRATION: AnalysisGoalType.INTEGRATE_CONTEXT,
}

GOAL_TO_EXPERTISE: Dict[AnalysisGoalType, List[AgentExpertise]] = {
    goal: [expertise] for expertise, goal in EXPERTISE_TO_GOAL.items()
}
GOAL_TO_EXPERTISE[AnalysisGoalType.FULL_ANALYSIS] = [
    AgentExpertise.TOPIC_ANALYSIS,
    AgentExpertise.ACTION_ITEM_EXTRACTION,
    AgentExpertise.SUMMARY_GENERATION,
]

FINISH = "FINISH"

EXPERTISE_TO_TEAM: Dict[AgentExpertise, str] = {
    AgentExpertise.TOPIC_ANALYSIS: "TopicTeam",
    AgentExpertise.ACTION_ITEM_EXTRACTION: "ActionTeam",
    AgentExpertise.SUMMARY_GENERATION: "SummaryTeam",
    AgentExpertise.SENTIMENT_ANALYSIS: "SentimentTeam",
    AgentExpertise.PARTICIPANT_DYNAMICS: "ParticipationTeam",
    AgentExpertise.DECISION_TRACKING: "DecisionTeam",
    AgentExpertise.CONTEXT_INTEGRATION: "ContextTeam",
}

TEAM_TO_EXPERTISE: Dict[str, AgentExpertise] = {team: expertise for expertise, team in EXPERTISE_TO_TEAM.items()}

# Routing decision value -> team node
ROUTE_DECISIONS: Dict[str, str] = {expertise.name: team for expertise, team in EXPERTISE_TO_TEAM.items()}
ROUTE_DECISIONS[FINISH] = FINISH

TEAM_NAMES: List[str] = list(EXPERTISE_TO_TEAM.values())


def parse_expertise(value, default: Optional[AgentExpertise] = DEFAULT_EXPERTISE) -> Optional[AgentExpertise]:
    """Parse an expertise tag by value or by name, returning default if unknown."""
    if isinstance(value, AgentExpertise):
        return value
    if isinstance(value, str):
        normalized = value.strip()
        try:
            return AgentExpertise(normalized.lower())
        except ValueError:
            member = AgentExpertise.__members__.get(normalized.upper())
            if member is not None:
                return member
    return default


def parse_goal_type(value) -> Optional[AnalysisGoalType]:
    """Parse a goal type by value or by name; None when unknown."""
    if isinstance(value, AnalysisGoalType):
        return value
    if isinstance(value, str):
        normalized = value.strip()
        try:
            return AnalysisGoalType(normalized.lower())
        except ValueError:
            return AnalysisGoalType.__members__.get(normalized.upper())
    return None


def goal_for_expertise(expertise: AgentExpertise) -> AnalysisGoalType:
    return EXPERTISE_TO_GOAL.get(expertise, AnalysisGoalType.FULL_ANALYSIS)


def expertise_for_goal(goal: AnalysisGoalType) -> List[AgentExpertise]:
    return list(GOAL_TO_EXPERTISE.get(goal, [DEFAULT_EXPERTISE]))


def team_for_decision(decision: Optional[str]) -> str:
    """Map a routing decision to a team name; anything unrecognized is FINISH."""
    if not decision:
        return FINISH
    return ROUTE_DECISIONS.get(str(decision).strip().upper(), FINISH)

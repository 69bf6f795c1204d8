"""
Specialist Agents

Workers that perform one kind of transcript analysis each. A specialist
sends a structured prompt to the oracle, parses the JSON answer, and falls
back to an empty default structure (with LOW confidence) when the answer
cannot be parsed.

Specialists carry no orchestration logic; managers decide what they work on.
"""

import dataclasses
import logging
from typing import Any, Dict, List, Optional

from ..models.constants import ANALYSIS_EXPERTISE, AgentExpertise, ConfidenceLevel, parse_confidence
from ..models.results import AgentOutput
from ..services.oracle import LanguageOracle
from ..utils.json_parsing import extract_json_object

logger = logging.getLogger(__name__)


# ============================================================================
# PROMPTS AND DEFAULTS
# ============================================================================

SPECIALIST_SYSTEM_PROMPT = """You are a meeting analysis specialist focused on {focus}.
Base every statement on the transcript. Respond with JSON only."""

SPECIALIST_INSTRUCTIONS: Dict[AgentExpertise, str] = {
    AgentExpertise.TOPIC_ANALYSIS: (
        'Identify the main topics discussed. Return {"topics": [{"name": str, '
        '"description": str, "keywords": [str], "relevance": float}]}'
    ),
    AgentExpertise.ACTION_ITEM_EXTRACTION: (
        'Extract every action item. Return {"action_items": [{"description": str, '
        '"assignee": str|null, "due_date": str|null, "priority": "high"|"medium"|"low"}]}'
    ),
    AgentExpertise.DECISION_TRACKING: (
        'List the decisions that were made. Return {"decisions": [{"description": str, '
        '"rationale": str, "stakeholders": [str]}]}'
    ),
    AgentExpertise.SENTIMENT_ANALYSIS: (
        'Assess the sentiment of the meeting. Return {"overall": "positive"|"neutral"|"negative", '
        '"segments": [{"speaker": str, "sentiment": str, "evidence": str}]}'
    ),
    AgentExpertise.PARTICIPANT_DYNAMICS: (
        'Describe how participants interacted. Return {"participants": [{"name": str, '
        '"contribution": str, "speaking_share": float}], "dynamics": str}'
    ),
    AgentExpertise.SUMMARY_GENERATION: (
        'Summarize the meeting. Return {"summary": str, "key_points": [str]}'
    ),
    AgentExpertise.CONTEXT_INTEGRATION: (
        'Relate the meeting to earlier discussions and external references it mentions. '
        'Return {"references": [{"subject": str, "relation": str}]}'
    ),
}

DEFAULT_RESULTS: Dict[AgentExpertise, Dict[str, Any]] = {
    AgentExpertise.TOPIC_ANALYSIS: {"topics": []},
    AgentExpertise.ACTION_ITEM_EXTRACTION: {"action_items": []},
    AgentExpertise.DECISION_TRACKING: {"decisions": []},
    AgentExpertise.SENTIMENT_ANALYSIS: {"overall": "neutral", "segments": []},
    AgentExpertise.PARTICIPANT_DYNAMICS: {"participants": [], "dynamics": ""},
    AgentExpertise.SUMMARY_GENERATION: {"summary": "", "key_points": []},
    AgentExpertise.CONTEXT_INTEGRATION: {"references": []},
}

SPECIALIST_PROMPT = """{instructions}

{extra}TRANSCRIPT:
{transcript}
"""


# ============================================================================
# SPECIALIST AGENT
# ============================================================================

class SpecialistAgent:
    """
    Worker for one analysis expertise.

    Attributes:
        expertise: Analysis area this worker covers
        oracle: Language oracle
        agent_id: Worker identifier used in output metadata
    """

    def __init__(self, expertise: AgentExpertise, oracle: LanguageOracle, agent_id: Optional[str] = None):
        if expertise not in SPECIALIST_INSTRUCTIONS:
            raise ValueError(f"No specialist exists for expertise {expertise.value}")
        self.expertise = expertise
        self.oracle = oracle
        self.agent_id = agent_id or f"specialist-{expertise.value}"

    async def analyze(self, payload: Dict[str, Any], guidance: Optional[str] = None) -> AgentOutput:
        """
        Run the analysis over ``payload["transcript"]``.

        Args:
            payload: Task input; must contain a non-empty transcript
            guidance: Extra instructions, e.g. supervisor guidance after an escalation

        Returns:
            AgentOutput whose metadata names the component and task

        Raises:
            ValueError: If the payload has no transcript to analyze
        """
        transcript = payload.get("transcript")
        if not transcript:
            raise ValueError(f"[{self.agent_id}] No transcript provided")

        extra_parts = []
        if payload.get("description"):
            extra_parts.append(f"FOCUS: {payload['description']}")
        if guidance:
            extra_parts.append(f"SUPERVISOR GUIDANCE: {guidance}")
        extra = "\n".join(extra_parts) + "\n\n" if extra_parts else ""

        prompt = SPECIALIST_PROMPT.format(
            instructions=SPECIALIST_INSTRUCTIONS[self.expertise],
            extra=extra,
            transcript=transcript,
        )
        metadata = {
            "component": self.expertise.value,
            "task_id": payload.get("task_id"),
            "agent_id": self.agent_id,
        }

        def decode(content: str) -> AgentOutput:
            data = extract_json_object(content)
            confidence = parse_confidence(data.pop("confidence", None), default=ConfidenceLevel.MEDIUM)
            return AgentOutput(content=data, confidence=confidence, metadata=metadata)

        def fallback() -> AgentOutput:
            return AgentOutput(
                content=dict(DEFAULT_RESULTS[self.expertise]),
                confidence=ConfidenceLevel.LOW,
                reasoning="Analysis response could not be parsed",
                metadata={**metadata, "fallback": True},
            )

        logger.info(f"[{self.agent_id}] Analyzing transcript ({len(transcript)} chars)")
        return await self.oracle.structured_call(
            prompt,
            decoder=decode,
            fallback=fallback,
            label=self.agent_id,
            system_prompt=SPECIALIST_SYSTEM_PROMPT.format(focus=self.expertise.value.replace("_", " ")),
        )


def create_specialists(oracle: LanguageOracle) -> Dict[AgentExpertise, SpecialistAgent]:
    """Build one specialist per analysis expertise, sharing one oracle."""
    return {expertise: SpecialistAgent(expertise, oracle) for expertise in ANALYSIS_EXPERTISE}


def merge_outputs(outputs: List[AgentOutput], component: str, task_id: Optional[str] = None) -> AgentOutput:
    """
    Fold the outputs of several specialists run for one task into one output.

    A single output is returned as-is (retagged with task_id). Several outputs
    are keyed by component, with the lowest confidence among them.
    """
    if len(outputs) == 1:
        output = outputs[0]
        if task_id is None:
            return output
        return dataclasses.replace(output, metadata={**output.metadata, "task_id": task_id})

    return AgentOutput(
        content={output.component: output.content for output in outputs},
        confidence=min((o.confidence for o in outputs), key=lambda c: c.rank),
        reasoning="Merged output of specialist analyses",
        metadata={"task_id": task_id, "component": component},
    )

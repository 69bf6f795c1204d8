"""
Result Data Models

- AgentOutput: one unit of work's result (immutable)
- AgentResultCollection: transient batch of outputs for one task
- FinalResult: the synthesized deliverable for a job
- IntermediateResult: a registered partial result awaiting synthesis
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .constants import ConfidenceLevel
from .tasks import utc_now


@dataclass(frozen=True)
class AgentOutput:
    """Result of one unit of work. Metadata identifies the producing task and component."""

    content: Any
    confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    reasoning: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def component(self) -> str:
        return self.metadata.get("component") or "general"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "confidence": self.confidence.value,
            "reasoning": self.reasoning,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class AgentResultCollection:
    """Outputs produced for one task id, built for a single synthesis call."""

    task_id: str
    results: List[AgentOutput] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def worker_ids(self) -> List[str]:
        return list(self.metadata.get("worker_ids", []))


@dataclass
class FinalResult:
    """Synthesized deliverable for a job."""

    summary: str
    sections: Dict[str, Any] = field(default_factory=dict)
    insights: List[str] = field(default_factory=list)
    confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "sections": self.sections,
            "insights": list(self.insights),
            "confidence": self.confidence.value,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class IntermediateResult:
    """A partial result registered for a job, keyed by ``<job>:<task>``."""

    job_id: str
    task_id: str
    component: str
    result: Any
    quality: float
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def key(self) -> str:
        return f"{self.job_id}:{self.task_id}"

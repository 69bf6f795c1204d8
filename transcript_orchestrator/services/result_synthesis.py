"""
Result Synthesis Service

This module folds partial analysis results into a single deliverable:
1. Workers' results are registered per job as intermediate results
2. Progressive synthesis runs once a quorum of distinct results is available
3. The core synthesis asks the oracle for a summary, sections, insights and an
   overall confidence
4. If the oracle fails or answers in an unusable shape, a deterministic
   aggregation is returned instead; that path makes no external calls

Stores:
- intermediate results keyed ``<job>:<task>`` (idempotent upsert)
- one live FinalResult per job (a new synthesis overwrites the previous one)
"""

import json
import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from ..models.constants import ConfidenceLevel, parse_confidence, quality_to_confidence
from ..models.results import AgentOutput, AgentResultCollection, FinalResult, IntermediateResult
from ..models.tasks import utc_now
from ..utils.json_parsing import extract_json_object
from .oracle import LanguageOracle

logger = logging.getLogger(__name__)


# ============================================================================
# PROMPTS
# ============================================================================

SYNTHESIS_SYSTEM_PROMPT = """You are an expert meeting analyst. You combine the outputs of several
specialist analysts into one coherent, accurate report. Resolve contradictions, keep
only claims supported by the components, and say when evidence is weak."""

SYNTHESIS_PROMPT = """Synthesize the following analysis components into a unified meeting analysis.

{components}

Produce:
1. An executive summary of the meeting
2. A sections map, one entry per analysis area, with the consolidated findings
3. 3-5 cross-cutting insights that connect findings from different areas
4. An overall confidence label: high, medium, low or uncertain

Respond with JSON only:
```json
{{
  "summary": "Executive summary...",
  "sections": {{"topics": {{}}, "action_items": []}},
  "insights": ["Insight 1", "Insight 2", "Insight 3"],
  "confidence": "medium"
}}
```
"""

FALLBACK_SUMMARY = (
    "Automated synthesis failed. This is a simple aggregation of the analysis components."
)
FALLBACK_INSIGHT = "Automated insight generation unavailable due to synthesis failure"


class SynthesisPayload(BaseModel):
    """Expected shape of the oracle's synthesis answer."""

    summary: str
    sections: Dict[str, Any] = Field(default_factory=dict)
    insights: List[str] = Field(default_factory=list)
    confidence: Optional[str] = None


# ============================================================================
# SERVICE
# ============================================================================

class ResultSynthesisService:
    """
    Registers partial results and synthesizes them into FinalResults.

    Args:
        oracle: Language oracle used for the synthesis prompt
        default_quality: Quality assigned when a caller does not provide one

    Example:
        ```python
        service = ResultSynthesisService(oracle)
        service.register_task_result("job-1", "subtask-a", "topic_analysis", {"topics": [...]})
        service.register_task_result("job-1", "subtask-b", "summary_generation", {"summary": "..."})
        result = await service.progressive_synthesis("job-1", ["subtask-a", "subtask-b"])
        ```
    """

    def __init__(self, oracle: LanguageOracle, default_quality: float = 0.8):
        self.oracle = oracle
        self.default_quality = default_quality
        self._intermediate: Dict[str, IntermediateResult] = {}
        self._final: Dict[str, FinalResult] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Intermediate results
    # ------------------------------------------------------------------

    def register_task_result(
        self,
        job_id: str,
        task_id: str,
        component: str,
        result: Any,
        quality: Optional[float] = None,
    ) -> IntermediateResult:
        """
        Register (or replace) the result of one task for a job.

        Args:
            job_id: Job the task belongs to
            task_id: Producing task
            component: Component / category label, e.g. "topic_analysis"
            result: Raw result content
            quality: Score in [0, 1]; defaults to ``default_quality``

        Returns:
            The stored intermediate result
        """
        score = self.default_quality if quality is None else max(0.0, min(1.0, float(quality)))
        entry = IntermediateResult(
            job_id=job_id,
            task_id=task_id,
            component=component or "general",
            result=result,
            quality=score,
        )
        with self._lock:
            self._intermediate[entry.key] = entry
        logger.info(f"[Synthesis] Registered {component} result for {entry.key} (quality={score:.2f})")
        return entry

    def get_intermediate_results(self, job_id: str) -> List[IntermediateResult]:
        prefix = f"{job_id}:"
        with self._lock:
            return [entry for key, entry in self._intermediate.items() if key.startswith(prefix)]

    def get_latest_synthesis(self, job_id: str) -> Optional[FinalResult]:
        with self._lock:
            return self._final.get(job_id)

    def clear_results(self, job_id: str) -> None:
        """Drop every intermediate result and the stored synthesis for a job."""
        prefix = f"{job_id}:"
        with self._lock:
            for key in [k for k in self._intermediate if k.startswith(prefix)]:
                del self._intermediate[key]
            self._final.pop(job_id, None)
        logger.info(f"[Synthesis] Cleared results for job {job_id}")

    # ------------------------------------------------------------------
    # Progressive synthesis
    # ------------------------------------------------------------------

    async def progressive_synthesis(
        self,
        job_id: str,
        task_ids: Iterable[str],
        min_components: int = 2,
    ) -> Optional[FinalResult]:
        """
        Synthesize a job once enough distinct task results are registered.

        Args:
            job_id: Job to synthesize
            task_ids: Tasks whose results should contribute
            min_components: Quorum of distinct results

        Returns:
            The new FinalResult, or None when the quorum is not met yet
        """
        with self._lock:
            entries = [
                self._intermediate[f"{job_id}:{task_id}"]
                for task_id in dict.fromkeys(task_ids)
                if f"{job_id}:{task_id}" in self._intermediate
            ]

        if len(entries) < min_components:
            logger.info(
                f"[Synthesis] Job {job_id}: {len(entries)}/{min_components} components, not ready"
            )
            return None

        outputs = [
            AgentOutput(
                content=entry.result,
                confidence=quality_to_confidence(entry.quality),
                metadata={
                    "component": entry.component,
                    "task_id": entry.task_id,
                    "job_id": job_id,
                    "quality": entry.quality,
                },
                timestamp=entry.timestamp,
            )
            for entry in entries
        ]
        collection = AgentResultCollection(
            task_id=job_id,
            results=outputs,
            metadata={
                "worker_ids": [entry.task_id for entry in entries],
                "start_time": min(entry.timestamp for entry in entries).isoformat(),
                "end_time": max(entry.timestamp for entry in entries).isoformat(),
            },
        )

        final = await self.synthesize_results(collection, job_id)
        with self._lock:
            self._final[job_id] = final
        return final

    # ------------------------------------------------------------------
    # Core synthesis
    # ------------------------------------------------------------------

    async def synthesize_results(self, collection: AgentResultCollection, job_id: str) -> FinalResult:
        """
        Merge a collection of outputs into a FinalResult.

        Never raises: an oracle failure or unusable answer produces the
        deterministic fallback with LOW confidence.
        """
        grouped = self.group_by_component(collection.results)
        component_types = list(grouped)
        logger.info(
            f"[Synthesis] Job {job_id}: synthesizing {len(collection.results)} outputs "
            f"across {component_types}"
        )

        prompt = SYNTHESIS_PROMPT.format(components=self.render_components(grouped))

        def decode(content: str) -> FinalResult:
            payload = SynthesisPayload.model_validate(extract_json_object(content))
            return FinalResult(
                summary=payload.summary,
                sections=payload.sections,
                insights=payload.insights,
                confidence=parse_confidence(payload.confidence, default=ConfidenceLevel.MEDIUM),
                metadata=self._metadata(job_id, collection, component_types, fallback=False),
            )

        return await self.oracle.structured_call(
            prompt,
            decoder=decode,
            fallback=lambda: self.build_fallback(job_id, collection, grouped),
            label=f"synthesis[{job_id}]",
            system_prompt=SYNTHESIS_SYSTEM_PROMPT,
        )

    def build_fallback(
        self,
        job_id: str,
        collection: AgentResultCollection,
        grouped: Optional[Dict[str, List[AgentOutput]]] = None,
    ) -> FinalResult:
        """Deterministic aggregation used when the oracle cannot synthesize."""
        grouped = grouped if grouped is not None else self.group_by_component(collection.results)
        logger.warning(f"[Synthesis] Job {job_id}: using fallback aggregation")
        return FinalResult(
            summary=FALLBACK_SUMMARY,
            sections={component: [output.content for output in outputs] for component, outputs in grouped.items()},
            insights=[FALLBACK_INSIGHT],
            confidence=ConfidenceLevel.LOW,
            metadata=self._metadata(job_id, collection, list(grouped), fallback=True),
        )

    @staticmethod
    def group_by_component(outputs: Iterable[AgentOutput]) -> "OrderedDict[str, List[AgentOutput]]":
        grouped: "OrderedDict[str, List[AgentOutput]]" = OrderedDict()
        for output in outputs:
            grouped.setdefault(output.component, []).append(output)
        return grouped

    @staticmethod
    def render_components(grouped: Dict[str, List[AgentOutput]]) -> str:
        blocks: List[str] = []
        for component, outputs in grouped.items():
            lines = [f"## {component.upper()} COMPONENTS ({len(outputs)} items)"]
            for index, output in enumerate(outputs, start=1):
                lines.append(f"### Item {index}")
                lines.append(f"Content: {json.dumps(output.content, indent=2, default=str)}")
                lines.append(f"Confidence: {output.confidence.value}")
                lines.append(f"Timestamp: {output.timestamp.isoformat()}")
                if output.reasoning:
                    lines.append(f"Reasoning: {output.reasoning}")
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks)

    @staticmethod
    def _metadata(
        job_id: str,
        collection: AgentResultCollection,
        component_types: List[str],
        fallback: bool,
    ) -> Dict[str, Any]:
        return {
            "job_id": job_id,
            "task_id": collection.task_id,
            "components_count": len(collection.results),
            "component_types": component_types,
            "contributors": collection.worker_ids,
            "synthesized_at": utc_now().isoformat(),
            "fallback": fallback,
        }

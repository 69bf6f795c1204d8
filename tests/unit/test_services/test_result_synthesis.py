"""
Tests for ResultSynthesisService.

Coverage:
- Intermediate result registration (upsert, quality defaults)
- Progressive synthesis quorum gating
- Oracle synthesis parsing
- Deterministic fallback aggregation
"""

import pytest
from langchain_core.messages import AIMessage

from transcript_orchestrator.models.constants import ConfidenceLevel
from transcript_orchestrator.models.results import AgentOutput, AgentResultCollection
from transcript_orchestrator.services.result_synthesis import (
    FALLBACK_INSIGHT,
    FALLBACK_SUMMARY,
    ResultSynthesisService,
)


@pytest.fixture
def service(oracle):
    return ResultSynthesisService(oracle, default_quality=0.8)


SYNTHESIS_ANSWER = {
    "summary": "The team agreed to ship on October 14th.",
    "sections": {"topics": ["Q3 launch"], "action_items": ["Legal sign-off"]},
    "insights": ["Launch date depends on legal review"],
    "confidence": "HIGH",
}


class TestRegistration:
    def test_default_quality(self, service):
        entry = service.register_task_result("job-1", "t1", "topic_analysis", {"topics": []})

        assert entry.quality == 0.8
        assert entry.key == "job-1:t1"

    def test_quality_is_clamped(self, service):
        assert service.register_task_result("job-1", "t1", "x", {}, quality=1.7).quality == 1.0

    def test_reregistration_replaces(self, service):
        service.register_task_result("job-1", "t1", "topic_analysis", {"v": 1})
        service.register_task_result("job-1", "t1", "topic_analysis", {"v": 2})

        entries = service.get_intermediate_results("job-1")

        assert len(entries) == 1
        assert entries[0].result == {"v": 2}

    def test_results_are_scoped_by_job(self, service):
        service.register_task_result("job-1", "t1", "a", {})
        service.register_task_result("job-10", "t1", "a", {})

        assert len(service.get_intermediate_results("job-1")) == 1


class TestProgressiveSynthesis:
    @pytest.mark.asyncio
    async def test_below_quorum_returns_none(self, service, mock_llm):
        service.register_task_result("job-1", "t1", "topic_analysis", {"topics": []})

        result = await service.progressive_synthesis("job-1", ["t1", "t1", "t2"], min_components=2)

        assert result is None
        mock_llm.ainvoke.assert_not_called()

    @pytest.mark.asyncio
    async def test_quorum_met_synthesizes_and_stores(self, service, mock_llm, reply):
        mock_llm.ainvoke.return_value = reply(SYNTHESIS_ANSWER)
        service.register_task_result("job-1", "t1", "topic_analysis", {"topics": ["Q3 launch"]}, quality=0.9)
        service.register_task_result("job-1", "t2", "action_item_extraction", {"action_items": []}, quality=0.5)

        result = await service.progressive_synthesis("job-1", ["t1", "t2"])

        assert result.summary == SYNTHESIS_ANSWER["summary"]
        assert result.confidence == ConfidenceLevel.HIGH
        assert result.metadata["components_count"] == 2
        assert result.metadata["component_types"] == ["topic_analysis", "action_item_extraction"]
        assert result.metadata["contributors"] == ["t1", "t2"]
        assert result.metadata["fallback"] is False
        assert service.get_latest_synthesis("job-1") is result

        prompt = mock_llm.ainvoke.call_args.args[0][-1].content
        assert "## TOPIC_ANALYSIS COMPONENTS (1 items)" in prompt
        assert "Confidence: high" in prompt
        assert "Confidence: low" in prompt

    @pytest.mark.asyncio
    async def test_new_synthesis_overwrites_latest(self, service, mock_llm, reply):
        mock_llm.ainvoke.return_value = reply(SYNTHESIS_ANSWER)
        for task_id in ("t1", "t2", "t3"):
            service.register_task_result("job-1", task_id, "summary_generation", {"summary": task_id})

        first = await service.progressive_synthesis("job-1", ["t1", "t2"])
        second = await service.progressive_synthesis("job-1", ["t1", "t2", "t3"])

        assert first is not second
        assert service.get_latest_synthesis("job-1") is second
        assert second.metadata["components_count"] == 3

    @pytest.mark.asyncio
    async def test_clear_results(self, service, mock_llm, reply):
        mock_llm.ainvoke.return_value = reply(SYNTHESIS_ANSWER)
        service.register_task_result("job-1", "t1", "a", {})
        await service.progressive_synthesis("job-1", ["t1"], min_components=1)

        service.clear_results("job-1")

        assert service.get_intermediate_results("job-1") == []
        assert service.get_latest_synthesis("job-1") is None


class TestSynthesizeResults:
    @pytest.fixture
    def collection(self):
        return AgentResultCollection(
            task_id="job-1",
            results=[
                AgentOutput(content={"topics": ["launch"]}, metadata={"component": "topic_analysis"}),
                AgentOutput(content={"topics": ["support"]}, metadata={"component": "topic_analysis"}),
                AgentOutput(content={"summary": "short"}, metadata={"component": "summary_generation"}),
            ],
        )

    @pytest.mark.asyncio
    async def test_unparseable_answer_uses_fallback(self, service, mock_llm, collection):
        mock_llm.ainvoke.return_value = AIMessage(content="The meeting went well overall.")

        result = await service.synthesize_results(collection, "job-1")

        assert result.summary == FALLBACK_SUMMARY
        assert result.insights == [FALLBACK_INSIGHT]
        assert result.confidence == ConfidenceLevel.LOW
        assert result.sections == {
            "topic_analysis": [{"topics": ["launch"]}, {"topics": ["support"]}],
            "summary_generation": [{"summary": "short"}],
        }
        assert result.metadata["fallback"] is True
        assert result.metadata["contributors"] == []

    @pytest.mark.asyncio
    async def test_oracle_error_uses_fallback(self, service, mock_llm, collection):
        mock_llm.ainvoke.side_effect = RuntimeError("connection reset")

        result = await service.synthesize_results(collection, "job-1")

        assert result.confidence == ConfidenceLevel.LOW
        assert set(result.sections) == {"topic_analysis", "summary_generation"}

    @pytest.mark.asyncio
    async def test_missing_summary_uses_fallback(self, service, mock_llm, reply, collection):
        mock_llm.ainvoke.return_value = reply({"sections": {}, "insights": []})

        result = await service.synthesize_results(collection, "job-1")

        assert result.summary == FALLBACK_SUMMARY

    @pytest.mark.asyncio
    async def test_unknown_confidence_defaults_to_medium(self, service, mock_llm, reply, collection):
        mock_llm.ainvoke.return_value = reply({"summary": "ok", "confidence": "pretty sure"})

        result = await service.synthesize_results(collection, "job-1")

        assert result.confidence == ConfidenceLevel.MEDIUM
        assert result.insights == []

    def test_group_by_component_keeps_first_seen_order(self, collection):
        grouped = ResultSynthesisService.group_by_component(reversed(collection.results))

        assert list(grouped) == ["summary_generation", "topic_analysis"]

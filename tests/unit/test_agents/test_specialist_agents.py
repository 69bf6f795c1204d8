"""Tests for the specialist analysis workers."""

import pytest
from langchain_core.messages import AIMessage

from transcript_orchestrator.agents.specialist_agents import (
    DEFAULT_RESULTS,
    SpecialistAgent,
    create_specialists,
)
from transcript_orchestrator.models.constants import ANALYSIS_EXPERTISE, AgentExpertise, ConfidenceLevel


@pytest.fixture
def action_specialist(oracle):
    return SpecialistAgent(AgentExpertise.ACTION_ITEM_EXTRACTION, oracle)


class TestSpecialistAgent:
    @pytest.mark.asyncio
    async def test_parses_structured_answer(self, action_specialist, mock_llm, reply, sample_transcript):
        mock_llm.ainvoke.return_value = reply(
            {
                "action_items": [{"description": "Get legal sign-off", "assignee": "Bob", "due_date": "Friday"}],
                "confidence": "high",
            }
        )

        output = await action_specialist.analyze({"transcript": sample_transcript, "task_id": "subtask-1"})

        assert output.content == {
            "action_items": [{"description": "Get legal sign-off", "assignee": "Bob", "due_date": "Friday"}]
        }
        assert output.confidence == ConfidenceLevel.HIGH
        assert output.metadata == {
            "component": "action_item_extraction",
            "task_id": "subtask-1",
            "agent_id": "specialist-action_item_extraction",
        }

    @pytest.mark.asyncio
    async def test_missing_confidence_defaults_to_medium(self, action_specialist, mock_llm, reply):
        mock_llm.ainvoke.return_value = reply({"action_items": []})

        output = await action_specialist.analyze({"transcript": "Bob: I'll do it"})

        assert output.confidence == ConfidenceLevel.MEDIUM

    @pytest.mark.asyncio
    async def test_unparseable_answer_returns_default_structure(self, action_specialist, mock_llm):
        mock_llm.ainvoke.return_value = AIMessage(content="Bob owes legal a document.")

        output = await action_specialist.analyze({"transcript": "Bob: I'll do it"})

        assert output.content == DEFAULT_RESULTS[AgentExpertise.ACTION_ITEM_EXTRACTION]
        assert output.confidence == ConfidenceLevel.LOW
        assert output.metadata["fallback"] is True

    @pytest.mark.asyncio
    async def test_missing_transcript_raises(self, action_specialist, mock_llm):
        with pytest.raises(ValueError, match="No transcript"):
            await action_specialist.analyze({"description": "Find action items"})

        mock_llm.ainvoke.assert_not_called()

    @pytest.mark.asyncio
    async def test_focus_and_guidance_in_prompt(self, action_specialist, mock_llm, reply):
        mock_llm.ainvoke.return_value = reply({"action_items": []})

        await action_specialist.analyze(
            {"transcript": "Bob: I'll do it", "description": "Only Bob's items"},
            guidance="Ignore tentative commitments",
        )

        system, human = mock_llm.ainvoke.call_args.args[0]
        assert "action item extraction" in system.content
        assert "FOCUS: Only Bob's items" in human.content
        assert "SUPERVISOR GUIDANCE: Ignore tentative commitments" in human.content
        assert human.content.rstrip().endswith("Bob: I'll do it")

    def test_non_analysis_expertise_is_rejected(self, oracle):
        with pytest.raises(ValueError):
            SpecialistAgent(AgentExpertise.COORDINATION, oracle)


def test_create_specialists_covers_every_analysis_expertise(oracle):
    specialists = create_specialists(oracle)

    assert list(specialists) == ANALYSIS_EXPERTISE
    assert all(s.oracle is oracle for s in specialists.values())

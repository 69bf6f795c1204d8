"""Tests for the language oracle wrapper."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from transcript_orchestrator.exceptions import OracleError
from transcript_orchestrator.services.oracle import LanguageOracle
from transcript_orchestrator.services.routing_engine import SupervisorRouteDecision
from transcript_orchestrator.utils.json_parsing import extract_json_object


class TestComplete:
    @pytest.mark.asyncio
    async def test_sends_system_and_human_messages(self, oracle, mock_llm):
        mock_llm.ainvoke.return_value = AIMessage(content="hello")

        text = await oracle.complete("prompt", system_prompt="be brief")

        sent = mock_llm.ainvoke.call_args.args[0]
        assert text == "hello"
        assert isinstance(sent[0], SystemMessage)
        assert isinstance(sent[1], HumanMessage)

    @pytest.mark.asyncio
    async def test_joins_content_blocks(self, oracle, mock_llm):
        mock_llm.ainvoke.return_value = AIMessage(
            content=[{"type": "text", "text": "part one, "}, {"type": "text", "text": "part two"}]
        )

        assert await oracle.complete("prompt") == "part one, part two"

    @pytest.mark.asyncio
    async def test_model_error_becomes_oracle_error(self, oracle, mock_llm):
        mock_llm.ainvoke.side_effect = RuntimeError("rate limited")

        with pytest.raises(OracleError, match="rate limited"):
            await oracle.complete("prompt", label="test")

    @pytest.mark.asyncio
    async def test_timeout_becomes_oracle_error(self):
        async def never_answers(messages):
            await asyncio.sleep(10)

        llm = MagicMock()
        llm.ainvoke = never_answers
        oracle = LanguageOracle(llm=llm, timeout=0.01)

        with pytest.raises(OracleError, match="timed out"):
            await oracle.complete("prompt")


class TestStructuredCall:
    @pytest.mark.asyncio
    async def test_decodes_answer(self, oracle, mock_llm, reply):
        mock_llm.ainvoke.return_value = reply({"summary": "ok"})

        result = await oracle.structured_call("prompt", decoder=extract_json_object, fallback={})

        assert result == {"summary": "ok"}

    @pytest.mark.asyncio
    async def test_malformed_answer_uses_fallback(self, oracle, mock_llm):
        mock_llm.ainvoke.return_value = AIMessage(content="Sorry, I can't do JSON today")

        result = await oracle.structured_call(
            "prompt", decoder=extract_json_object, fallback=lambda: {"fallback": True}
        )

        assert result == {"fallback": True}

    @pytest.mark.asyncio
    async def test_timeout_uses_fallback(self):
        async def never_answers(messages):
            await asyncio.sleep(10)

        llm = MagicMock()
        llm.ainvoke = never_answers
        oracle = LanguageOracle(llm=llm, timeout=0.01)

        result = await oracle.structured_call("prompt", decoder=extract_json_object, fallback=None)

        assert result is None


class TestDecide:
    @pytest.mark.asyncio
    async def test_returns_matching_tool_call_args(self, oracle, mock_llm, route):
        mock_llm.bind_tools.return_value.ainvoke = AsyncMock(return_value=route("TOPIC_ANALYSIS"))

        decision = await oracle.decide("prompt", SupervisorRouteDecision)

        assert decision["next_action"] == "TOPIC_ANALYSIS"
        mock_llm.bind_tools.assert_called_once_with(
            [SupervisorRouteDecision], tool_choice="SupervisorRouteDecision"
        )

    @pytest.mark.asyncio
    async def test_no_tool_call_returns_none(self, oracle, mock_llm):
        mock_llm.bind_tools.return_value.ainvoke = AsyncMock(return_value=AIMessage(content="FINISH"))

        assert await oracle.decide("prompt", SupervisorRouteDecision) is None

    @pytest.mark.asyncio
    async def test_bind_failure_raises_oracle_error(self, oracle, mock_llm):
        mock_llm.bind_tools.side_effect = NotImplementedError("no tools")

        with pytest.raises(OracleError):
            await oracle.decide("prompt", SupervisorRouteDecision)

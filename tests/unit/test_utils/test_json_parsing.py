"""Tests for JSON extraction from model responses."""

import pytest

from transcript_orchestrator.utils.json_parsing import extract_json, extract_json_object


class TestExtractJson:
    def test_json_fence(self):
        content = 'Here is the plan:\n```json\n{"action": 2}\n```\nLet me know.'
        assert extract_json(content) == {"action": 2}

    def test_plain_fence(self):
        assert extract_json('```\n[1, 2, 3]\n```') == [1, 2, 3]

    def test_bare_object_with_prose(self):
        content = 'Decision: {"action": 4, "reasoning": "out of scope"} - thanks'
        assert extract_json(content)["action"] == 4

    def test_array_before_object(self):
        content = 'Subtasks: [{"description": "a"}, {"description": "b"}]'
        assert extract_json(content) == [{"description": "a"}, {"description": "b"}]

    @pytest.mark.parametrize("content", ["", "   ", "no json here", "{not: valid}", None])
    def test_unparseable_raises(self, content):
        with pytest.raises(ValueError):
            extract_json(content)


class TestExtractJsonObject:
    def test_requires_object(self):
        with pytest.raises(ValueError, match="Expected a JSON object"):
            extract_json_object("[1, 2]")

    def test_returns_object(self):
        assert extract_json_object('{"summary": "x"}') == {"summary": "x"}

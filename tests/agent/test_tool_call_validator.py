"""Tests for agent.tool_call_validator -- call filtering and argument repair."""

import json

import pytest

from agent.messages import FunctionCall, ToolCall
from agent.tool_call_validator import filter_valid_tool_calls, normalize_arguments, parse_arguments


def _call(call_id, name):
    return ToolCall(id=call_id, function=FunctionCall(name=name))


class TestFilterValidToolCalls:
    def test_drops_missing_id_or_name(self):
        valid, dropped = filter_valid_tool_calls([_call("", "ls"), _call("c1", ""), _call("c2", "ls")])
        assert [tc.id for tc in valid] == ["c2"]
        assert len(dropped) == 2

    def test_drops_duplicate_ids_keeping_first(self):
        valid, dropped = filter_valid_tool_calls([_call("c1", "ls"), _call("c1", "cat"), _call("c2", "pwd")])
        assert [(tc.id, tc.function.name) for tc in valid] == [("c1", "ls"), ("c2", "pwd")]
        assert [tc.function.name for tc in dropped] == ["cat"]


class TestNormalizeArguments:
    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_empty_becomes_empty_object(self, raw):
        assert normalize_arguments(raw) == "{}"

    def test_valid_json_passes_through(self):
        raw = '{"path": "a.py", "lines": [1, 2]}'
        assert normalize_arguments(raw) == raw

    def test_null_prefix_and_suffix(self):
        assert json.loads(normalize_arguments('null{"path": "a"}')) == {"path": "a"}
        assert json.loads(normalize_arguments('{"path": "a"}null')) == {"path": "a"}

    def test_json_encoded_string(self):
        raw = json.dumps('{"path": "a"}')
        assert json.loads(normalize_arguments(raw)) == {"path": "a"}

    def test_bare_keys(self):
        assert json.loads(normalize_arguments('{path: "a", limit: 3}')) == {"path": "a", "limit": 3}

    def test_key_like_text_inside_strings_is_kept(self):
        assert json.loads(normalize_arguments('{"cmd": "a, b: c"')) == {"cmd": "a, b: c"}
        assert json.loads(normalize_arguments('{cmd: "x, y: z", n: 1}')) == {"cmd": "x, y: z", "n": 1}

    def test_unbalanced_brackets(self):
        assert json.loads(normalize_arguments('{"paths": ["a", "b"')) == {"paths": ["a", "b"]}


class TestParseArguments:
    def test_returns_dict(self):
        assert parse_arguments('{"a": 1}') == {"a": 1}

    def test_non_object_rejected(self):
        with pytest.raises(ValueError):
            parse_arguments("[1, 2, 3]")

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            parse_arguments("definitely not json")

"""Tests for agent.messages -- roles, content parts and OpenAI rendering."""

import pytest
from pydantic import ValidationError

from agent.messages import FunctionCall, ImagePart, Message, Role, TextPart, ToolCall


class TestMessageConstraints:
    def test_tool_message_requires_tool_call_id(self):
        with pytest.raises(ValidationError):
            Message(role=Role.TOOL, content="x")

    def test_tool_calls_only_on_assistant(self):
        call = ToolCall(id="c1", function=FunctionCall(name="ls"))
        with pytest.raises(ValidationError):
            Message(role=Role.USER, content="x", tool_calls=[call])

    def test_tool_call_id_only_on_tool(self):
        with pytest.raises(ValidationError):
            Message(role=Role.ASSISTANT, content="x", tool_call_id="c1")

    def test_messages_are_immutable(self):
        msg = Message.user("hi")
        with pytest.raises(ValidationError):
            msg.content = "changed"


class TestContentParts:
    def test_parts_parsed_from_dicts_by_tag(self):
        msg = Message.user([
            {"type": "text", "text": "look at "},
            {"type": "image_url", "url": "https://example.com/a.png"},
            {"type": "text", "text": "this"},
        ])
        assert isinstance(msg.parts[0], TextPart)
        assert isinstance(msg.parts[1], ImagePart)
        assert msg.text == "look at this"

    def test_unknown_part_type_rejected(self):
        with pytest.raises(ValidationError):
            Message.user([{"type": "audio", "data": "..."}])

    def test_string_content_is_single_text_part(self):
        assert Message.assistant("ok").parts == [TextPart(text="ok")]
        assert Message.assistant().parts == []


class TestToOpenAI:
    def test_assistant_with_tool_calls(self):
        call = ToolCall(id="c1", function=FunctionCall(name="read_file", arguments='{"path": "a"}'))
        rendered = Message.assistant(tool_calls=[call]).to_openai()
        assert rendered == {
            "role": "assistant",
            "content": None,
            "tool_calls": [
                {"id": "c1", "type": "function",
                 "function": {"name": "read_file", "arguments": '{"path": "a"}'}},
            ],
        }

    def test_tool_message(self):
        rendered = Message.tool_result("c1", "output", name="read_file").to_openai()
        assert rendered == {"role": "tool", "content": "output", "tool_call_id": "c1"}

    def test_image_part_rendering(self):
        msg = Message.user([ImagePart(url="https://x/y.png", detail="low")])
        assert msg.to_openai()["content"] == [
            {"type": "image_url", "image_url": {"url": "https://x/y.png", "detail": "low"}}
        ]

"""Tests for agent.openai_transport -- request building and response mapping."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from agent.messages import Message, Role
from agent.openai_transport import OpenAITransport


def _fake_client(message, usage=None):
    response = SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=usage)
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    return client


class TestOpenAITransport:
    def test_build_api_kwargs(self):
        transport = OpenAITransport("gpt-4o", client=MagicMock(), max_tokens=512)
        schemas = [{"type": "function", "function": {"name": "ls"}}]
        kwargs = transport.build_api_kwargs("be helpful", [Message.user("hi")], schemas)
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["messages"] == [
            {"role": "system", "content": "be helpful"},
            {"role": "user", "content": "hi"},
        ]
        assert kwargs["tools"] == schemas
        assert kwargs["max_tokens"] == 512

    def test_no_tools_key_without_schemas(self):
        transport = OpenAITransport("gpt-4o", client=MagicMock())
        assert "tools" not in transport.build_api_kwargs("", [Message.user("hi")], [])

    @pytest.mark.asyncio
    async def test_generate_maps_tool_calls_and_usage(self):
        tool_call = SimpleNamespace(
            id="call_1", function=SimpleNamespace(name="read_file", arguments='{"path": "a.py"}'),
        )
        client = _fake_client(
            SimpleNamespace(content=None, tool_calls=[tool_call]),
            usage=SimpleNamespace(prompt_tokens=100, completion_tokens=20, total_tokens=120),
        )
        transport = OpenAITransport("gpt-4o", client=client)

        response = await transport.generate("", [Message.user("read a.py")], [])

        assert response.message.role == Role.ASSISTANT
        assert response.message.tool_calls[0].id == "call_1"
        assert response.message.tool_calls[0].function.name == "read_file"
        assert response.usage.total_tokens == 120
        client.chat.completions.create.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_generate_plain_text(self):
        client = _fake_client(SimpleNamespace(content="all done", tool_calls=None))
        response = await OpenAITransport("gpt-4o", client=client).generate("", [], [])
        assert response.message.text == "all done"
        assert response.message.tool_calls is None
        assert response.usage is None

    @pytest.mark.asyncio
    async def test_empty_choices_raise(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[], usage=None))
        with pytest.raises(RuntimeError):
            await OpenAITransport("gpt-4o", client=client).generate("", [], [])

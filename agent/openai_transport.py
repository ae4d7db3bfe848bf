"""OpenAI-compatible model transport.

Adapts the openai SDK's chat-completions API to the loop's transport
contract: ``generate(system_prompt, history, tool_schemas) -> ModelResponse``.
Works with any OpenAI-compatible endpoint (OpenAI, OpenRouter, vLLM, ...)
through ``base_url``.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from openai import AsyncOpenAI

from agent.messages import FunctionCall, Message, ModelResponse, ToolCall, Usage

logger = logging.getLogger(__name__)


class OpenAITransport:
    def __init__(
        self,
        model: str,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        client: Optional[Any] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        if client is None:
            client_kwargs: Dict[str, Any] = {}
            if base_url:
                client_kwargs["base_url"] = base_url
            if api_key:
                client_kwargs["api_key"] = api_key
            client = AsyncOpenAI(**client_kwargs)
        self.client = client

    def build_api_kwargs(self, system_prompt: str, history: Sequence[Message],
                         tool_schemas: List[Dict[str, Any]]) -> Dict[str, Any]:
        api_messages = []
        if system_prompt:
            api_messages.append({"role": "system", "content": system_prompt})
        api_messages.extend(msg.to_openai() for msg in history)

        kwargs: Dict[str, Any] = {"model": self.model, "messages": api_messages}
        if tool_schemas:
            kwargs["tools"] = tool_schemas
        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        return kwargs

    async def generate(self, system_prompt: str, history: Sequence[Message],
                       tool_schemas: List[Dict[str, Any]]) -> ModelResponse:
        api_kwargs = self.build_api_kwargs(system_prompt, history, tool_schemas)
        response = await self.client.chat.completions.create(**api_kwargs)

        if not response.choices:
            raise RuntimeError("Model returned no choices")
        choice = response.choices[0].message

        tool_calls = None
        if getattr(choice, "tool_calls", None):
            tool_calls = [
                ToolCall(
                    id=tc.id or "",
                    function=FunctionCall(
                        name=tc.function.name or "",
                        arguments=tc.function.arguments or "{}",
                    ),
                )
                for tc in choice.tool_calls
            ]

        usage = None
        if getattr(response, "usage", None):
            usage = Usage(
                prompt_tokens=getattr(response.usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(response.usage, "completion_tokens", 0) or 0,
                total_tokens=getattr(response.usage, "total_tokens", 0) or 0,
            )
            logger.debug(
                f"Token usage: prompt={usage.prompt_tokens:,}, "
                f"completion={usage.completion_tokens:,}, total={usage.total_tokens:,}"
            )

        return ModelResponse(
            message=Message.assistant(content=choice.content, tool_calls=tool_calls),
            usage=usage,
        )

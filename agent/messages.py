"""Conversation message types.

Messages are immutable pydantic models shaped after the OpenAI
chat-completions format so they can be handed to an OpenAI-compatible
client with ``to_openai()`` and persisted with ``model_dump()``.

Content is either a plain string or an ordered list of content parts. The
part types form a closed tagged union keyed on ``type``.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["image_url"] = "image_url"
    url: str
    detail: Optional[str] = None


ContentPart = Annotated[Union[TextPart, ImagePart], Field(discriminator="type")]


class FunctionCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    # Raw JSON text as produced by the model; decoding is the tool's job
    arguments: str = "{}"


class ToolCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    type: Literal["function"] = "function"
    function: FunctionCall


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Message(BaseModel):
    """A single conversation turn."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: Union[str, List[ContentPart], None] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None
    # Tool name on tool messages, purely informational
    name: Optional[str] = None

    @model_validator(mode="after")
    def _check_role_fields(self) -> "Message":
        if self.tool_calls and self.role != Role.ASSISTANT:
            raise ValueError("only assistant messages may carry tool_calls")
        if self.role == Role.TOOL and not self.tool_call_id:
            raise ValueError("tool messages require a tool_call_id")
        if self.role != Role.TOOL and self.tool_call_id is not None:
            raise ValueError("tool_call_id is only valid on tool messages")
        return self

    # -- Constructors ---------------------------------------------------------

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: Union[str, List[Any]]) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: Optional[str] = None,
                  tool_calls: Optional[List[ToolCall]] = None) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str, name: Optional[str] = None) -> "Message":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id, name=name)

    # -- Properties -----------------------------------------------------------

    @property
    def parts(self) -> List[Union[TextPart, ImagePart]]:
        """Content normalised to a list of parts."""
        if self.content is None:
            return []
        if isinstance(self.content, str):
            return [TextPart(text=self.content)] if self.content else []
        return list(self.content)

    @property
    def text(self) -> str:
        """Concatenated text of all text parts; image parts are skipped."""
        chunks = []
        for part in self.parts:
            if part.type == "text":
                chunks.append(part.text)
            elif part.type == "image_url":
                continue
        return "".join(chunks)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_openai(self) -> Dict[str, Any]:
        """Render as a chat-completions message dict."""
        msg: Dict[str, Any] = {"role": self.role.value}
        if isinstance(self.content, list):
            rendered = []
            for part in self.content:
                if part.type == "text":
                    rendered.append({"type": "text", "text": part.text})
                elif part.type == "image_url":
                    image = {"url": part.url}
                    if part.detail:
                        image["detail"] = part.detail
                    rendered.append({"type": "image_url", "image_url": image})
            msg["content"] = rendered
        else:
            msg["content"] = self.content
        if self.tool_calls:
            msg["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": tc.type,
                    "function": {"name": tc.function.name, "arguments": tc.function.arguments},
                }
                for tc in self.tool_calls
            ]
        if self.tool_call_id is not None:
            msg["tool_call_id"] = self.tool_call_id
        return msg


class ModelResponse(BaseModel):
    """What a model transport hands back for one generate() call."""

    message: Message
    usage: Optional[Usage] = None

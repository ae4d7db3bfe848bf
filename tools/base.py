"""
Base Tool abstraction for jimi-agent.

Tools follow a simple pattern:
1. Declare name, description and a pydantic ``params_model``
2. Implement execute(params, context)
3. Return a ToolResult (ok / error / rejected)

The parameter model doubles as the schema descriptor: ``Tool.schema`` walks
it and produces an OpenAI function schema, expanding enums, arrays and
nested models recursively.
"""

import dataclasses
import json
import types
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Dict, FrozenSet, List, Literal, Optional, Tuple, Type, Union, get_args, get_origin

from pydantic import BaseModel

from agent.messages import Message
from tools.sandbox import SandboxDecision, SandboxValidator


@dataclass
class ToolSchema:
    """JSON Schema for a tool's parameters."""

    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    required: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to OpenAI-compatible function schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": self.parameters,
                    "required": self.required,
                },
            },
        }


class ToolResultStatus(str, Enum):
    OK = "ok"
    ERROR = "error"
    # Never executed: sandbox denial or user rejection
    REJECTED = "rejected"


@dataclass
class ToolResult:
    """Result from executing (or refusing to execute) a tool."""

    status: ToolResultStatus
    message: str = ""
    data: Any = None
    truncated: bool = False

    @classmethod
    def ok(cls, message: str = "", data: Any = None) -> "ToolResult":
        return cls(ToolResultStatus.OK, message, data)

    @classmethod
    def error(cls, message: str, data: Any = None) -> "ToolResult":
        return cls(ToolResultStatus.ERROR, message, data)

    @classmethod
    def rejected(cls, message: str) -> "ToolResult":
        return cls(ToolResultStatus.REJECTED, message)

    @property
    def is_ok(self) -> bool:
        return self.status == ToolResultStatus.OK

    @property
    def is_error(self) -> bool:
        return self.status == ToolResultStatus.ERROR

    @property
    def is_rejected(self) -> bool:
        return self.status == ToolResultStatus.REJECTED

    def output_text(self) -> str:
        if self.message or self.data is None:
            return self.message
        try:
            return json.dumps(self.data, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return str(self.data)

    def truncate(self, max_chars: int) -> "ToolResult":
        """Return a copy cut to max_chars with a truncation note, or self if it fits."""
        text = self.output_text()
        if len(text) <= max_chars:
            return self
        note = (
            f"\n\n[Truncated: tool response was {len(text):,} chars, "
            f"exceeding the {max_chars:,} char limit]"
        )
        return dataclasses.replace(self, message=text[:max_chars] + note, truncated=True)

    def to_content(self) -> str:
        """Text placed in the tool message handed back to the model."""
        text = self.output_text()
        if self.status == ToolResultStatus.ERROR:
            return text if text.startswith("Error") else f"Error: {text}"
        if self.status == ToolResultStatus.REJECTED:
            return f"Rejected: {text}" if text else "Rejected by user"
        return text


@dataclass(frozen=True)
class ToolContext:
    """Per-call execution context handed to Tool.execute."""

    tool_call_id: str
    history: Tuple[Message, ...] = ()
    work_dir: Optional[Path] = None
    agent_name: Optional[str] = None


class EmptyParams(BaseModel):
    pass


class Tool(ABC):
    """
    Abstract base class for tools.

    Subclasses set ``name``, ``description`` and ``params_model`` and
    implement ``execute``. ``execute`` may be sync or async; sync bodies are
    run off the event loop by the dispatcher.
    """

    name: str = ""
    description: str = ""
    params_model: Type[BaseModel] = EmptyParams
    requires_approval: bool = False
    # Seconds; None means no per-tool timeout
    timeout: Optional[float] = None

    @property
    def schema(self) -> ToolSchema:
        properties, required = model_properties(self.params_model)
        return ToolSchema(
            name=self.name,
            description=self.description,
            parameters=properties,
            required=required,
        )

    def parse_params(self, arguments: Dict[str, Any]) -> BaseModel:
        return self.params_model.model_validate(arguments)

    def approval_description(self, params: BaseModel) -> str:
        args = params.model_dump(exclude_none=True)
        return f"{self.name}({json.dumps(args, ensure_ascii=False, default=str)})"

    def validate_params(self, params: BaseModel) -> bool:
        return True

    def sandbox_check(self, params: BaseModel, sandbox: SandboxValidator) -> SandboxDecision:
        return SandboxDecision.allowed()

    def affected_files(self, params: BaseModel) -> List[str]:
        """Files this call touches, used by hook file-pattern filters."""
        files = []
        for key in ("path", "file_path", "filename"):
            value = getattr(params, key, None)
            if isinstance(value, str) and value:
                files.append(value)
        paths = getattr(params, "paths", None)
        if isinstance(paths, (list, tuple)):
            files.extend(p for p in paths if isinstance(p, str))
        return files

    @abstractmethod
    async def execute(self, params: BaseModel, context: ToolContext) -> ToolResult:
        pass


# ---------------------------------------------------------------------------
# Schema generation
# ---------------------------------------------------------------------------

_PRIMITIVE_TYPES = (
    # bool first: bool is a subclass of int
    (bool, "boolean"),
    (int, "integer"),
    (float, "number"),
    (str, "string"),
)


def _json_type(value: Any) -> str:
    for py_type, json_type in _PRIMITIVE_TYPES:
        if isinstance(value, py_type):
            return json_type
    return "string"


def model_properties(model: Type[BaseModel], _seen: FrozenSet[type] = frozenset()) -> Tuple[Dict[str, Any], List[str]]:
    """Return (properties, required) for a pydantic model's fields.

    A model that refers back to itself (directly or through another model)
    is cut off as a plain ``{"type": "object"}`` at the repeat.
    """
    seen = _seen | {model}
    properties: Dict[str, Any] = {}
    required: List[str] = []
    for field_name, info in model.model_fields.items():
        key = info.alias or field_name
        prop = annotation_schema(info.annotation, seen)
        if info.description:
            prop["description"] = info.description
        properties[key] = prop
        if info.is_required():
            required.append(key)
    return properties, required


def annotation_schema(annotation: Any, _seen: FrozenSet[type] = frozenset()) -> Dict[str, Any]:
    """Map a Python type annotation to a JSON-schema fragment."""
    origin = get_origin(annotation)
    args = get_args(annotation)

    if origin is Annotated:
        return annotation_schema(args[0], _seen)

    if origin is Union or origin is types.UnionType:
        members = [a for a in args if a is not type(None)]
        if len(members) == 1:
            return annotation_schema(members[0], _seen)
        return {"anyOf": [annotation_schema(a, _seen) for a in members]}

    if origin is Literal:
        values = list(args)
        return {"type": _json_type(values[0]) if values else "string", "enum": values}

    if origin in (list, tuple, set, frozenset):
        schema: Dict[str, Any] = {"type": "array"}
        if args:
            schema["items"] = annotation_schema(args[0], _seen)
        return schema

    if origin is dict:
        return {"type": "object"}

    if annotation is Any:
        return {}

    if isinstance(annotation, type):
        if issubclass(annotation, Enum):
            values = [member.value for member in annotation]
            return {"type": _json_type(values[0]) if values else "string", "enum": values}
        if issubclass(annotation, BaseModel):
            if annotation in _seen:
                return {"type": "object"}
            properties, required = model_properties(annotation, _seen)
            return {"type": "object", "properties": properties, "required": required}
        if annotation in (list, tuple, set, frozenset):
            return {"type": "array"}
        if annotation is dict:
            return {"type": "object"}
        for py_type, json_type in _PRIMITIVE_TYPES:
            if issubclass(annotation, py_type):
                return {"type": json_type}

    return {"type": "string"}

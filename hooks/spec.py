"""Hook specification models.

A hook is declared in YAML (see hooks/loader.py) and validated into a frozen
HookSpec:

    name: format-python
    description: Run black after Python edits
    priority: 10
    trigger:
      type: POST_TOOL_CALL
      tools: [write_file, patch_file]
      file_patterns: ["*.py"]
    conditions:
      - type: env_var
        var: JIMI_AUTOFORMAT
    execution:
      type: script
      script: black ${MODIFIED_FILES}
      timeout: 30

Conditions and executions are closed tagged unions keyed on ``type``.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from jimi_constants import DEFAULT_HOOK_TIMEOUT_SECONDS, SCRIPT_CONDITION_TIMEOUT_SECONDS


class HookValidationError(ValueError):
    pass


class HookType(str, Enum):
    PRE_USER_INPUT = "PRE_USER_INPUT"
    POST_USER_INPUT = "POST_USER_INPUT"
    PRE_TOOL_CALL = "PRE_TOOL_CALL"
    POST_TOOL_CALL = "POST_TOOL_CALL"
    PRE_AGENT_SWITCH = "PRE_AGENT_SWITCH"
    POST_AGENT_SWITCH = "POST_AGENT_SWITCH"
    ON_ERROR = "ON_ERROR"
    ON_SESSION_START = "ON_SESSION_START"
    ON_SESSION_END = "ON_SESSION_END"


TOOL_HOOK_TYPES = frozenset({HookType.PRE_TOOL_CALL, HookType.POST_TOOL_CALL})
AGENT_SWITCH_HOOK_TYPES = frozenset({HookType.PRE_AGENT_SWITCH, HookType.POST_AGENT_SWITCH})


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class HookTrigger(_Frozen):
    type: HookType
    tools: List[str] = Field(default_factory=list)
    file_patterns: List[str] = Field(default_factory=list)
    agent_name: Optional[str] = None
    error_pattern: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _upper_type(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _check_filters(self) -> "HookTrigger":
        if (self.tools or self.file_patterns) and self.type not in TOOL_HOOK_TYPES:
            raise ValueError(f"tools/file_patterns filters only apply to tool-call hooks, not {self.type.value}")
        if self.agent_name and self.type not in AGENT_SWITCH_HOOK_TYPES:
            raise ValueError(f"agent_name filter only applies to agent-switch hooks, not {self.type.value}")
        if self.error_pattern is not None:
            if self.type != HookType.ON_ERROR:
                raise ValueError(f"error_pattern filter only applies to ON_ERROR hooks, not {self.type.value}")
            try:
                re.compile(self.error_pattern)
            except re.error as e:
                raise ValueError(f"invalid error_pattern: {e}") from e
        return self


# -- Conditions ---------------------------------------------------------------

class EnvVarCondition(_Frozen):
    type: Literal["env_var"] = "env_var"
    var: str = Field(min_length=1)
    # When set the variable must equal it, otherwise presence is enough
    value: Optional[str] = None
    description: Optional[str] = None


class FileExistsCondition(_Frozen):
    type: Literal["file_exists"] = "file_exists"
    path: str = Field(min_length=1)
    description: Optional[str] = None


class ScriptCondition(_Frozen):
    type: Literal["script"] = "script"
    script: str = Field(min_length=1)
    timeout: float = SCRIPT_CONDITION_TIMEOUT_SECONDS
    description: Optional[str] = None


class ToolResultContainsCondition(_Frozen):
    type: Literal["tool_result_contains"] = "tool_result_contains"
    pattern: str = Field(min_length=1)
    description: Optional[str] = None

    @field_validator("pattern")
    @classmethod
    def _compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid pattern: {e}") from e
        return value


HookCondition = Annotated[
    Union[EnvVarCondition, FileExistsCondition, ScriptCondition, ToolResultContainsCondition],
    Field(discriminator="type"),
]


# -- Executions ---------------------------------------------------------------

class ScriptExecution(_Frozen):
    type: Literal["script"] = "script"
    script: Optional[str] = None
    script_file: Optional[str] = None
    working_dir: Optional[str] = None
    timeout: float = Field(default=DEFAULT_HOOK_TIMEOUT_SECONDS, gt=0)
    environment: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _needs_script(self) -> "ScriptExecution":
        if not (self.script and self.script.strip()) and not (self.script_file and self.script_file.strip()):
            raise ValueError("script execution needs 'script' or 'script_file'")
        return self


class AgentExecution(_Frozen):
    type: Literal["agent"] = "agent"
    agent: str = Field(min_length=1)
    task: str = Field(min_length=1)
    timeout: float = Field(default=DEFAULT_HOOK_TIMEOUT_SECONDS, gt=0)


class CompositeStep(_Frozen):
    type: Literal["script", "command"]
    script: Optional[str] = None
    command: Optional[str] = None
    description: Optional[str] = None
    continue_on_failure: bool = False

    @model_validator(mode="after")
    def _needs_body(self) -> "CompositeStep":
        if self.type == "script" and not self.script:
            raise ValueError("composite script step needs 'script'")
        if self.type == "command" and not self.command:
            raise ValueError("composite command step needs 'command'")
        return self


class CompositeExecution(_Frozen):
    type: Literal["composite"] = "composite"
    steps: List[CompositeStep] = Field(min_length=1)
    working_dir: Optional[str] = None
    timeout: float = Field(default=DEFAULT_HOOK_TIMEOUT_SECONDS, gt=0)
    environment: Dict[str, str] = Field(default_factory=dict)


ExecutionSpec = Annotated[
    Union[ScriptExecution, AgentExecution, CompositeExecution],
    Field(discriminator="type"),
]


class HookSpec(_Frozen):
    name: str = Field(min_length=1)
    description: str = ""
    enabled: bool = True
    trigger: HookTrigger
    execution: ExecutionSpec
    conditions: List[HookCondition] = Field(default_factory=list)
    # Higher runs first
    priority: int = 0
    config_file_path: Optional[str] = None

    @property
    def type(self) -> HookType:
        return self.trigger.type


@dataclass
class HookContext:
    """What a trigger point knows when it fires hooks."""

    hook_type: Optional[HookType] = None
    work_dir: Optional[Path] = None
    tool_name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_result: Optional[str] = None
    affected_files: List[str] = field(default_factory=list)
    agent_name: Optional[str] = None
    previous_agent_name: Optional[str] = None
    error_message: Optional[str] = None
    user_input: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

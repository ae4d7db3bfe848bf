"""
Tools Package

Tool abstractions shared by the agent loop and tool implementations:

- base: Tool base class, ToolResult (ok / error / rejected), ToolContext,
  and schema generation from pydantic parameter models
- registry: ToolRegistry, copy-on-write tool lookup and schema listing
- approval: approval channel contract and the task-scoped approval cache
- sandbox: tri-state sandbox decisions and the validator contract

Concrete tools live outside this package and are registered on a
ToolRegistry instance handed to the agent loop.
"""

from .base import Tool, ToolContext, ToolResult, ToolResultStatus, ToolSchema
from .registry import ToolRegistry
from .approval import ApprovalResponse, TaskApprovals
from .sandbox import PermissiveSandbox, SandboxDecision, SandboxVerdict

__all__ = [
    "Tool",
    "ToolContext",
    "ToolResult",
    "ToolResultStatus",
    "ToolSchema",
    "ToolRegistry",
    "ApprovalResponse",
    "TaskApprovals",
    "PermissiveSandbox",
    "SandboxDecision",
    "SandboxVerdict",
]

"""Lifecycle hooks: YAML-declared scripts, agents, or composite steps fired
at tool calls, user input, agent switches, errors and session boundaries."""

from hooks.spec import HookContext, HookSpec, HookType, HookValidationError
from hooks.executor import HookExecutionError, HookExecutor
from hooks.engine import HookEngine, hook_matches
from hooks.loader import HookLoader

__all__ = [
    "HookContext",
    "HookSpec",
    "HookType",
    "HookValidationError",
    "HookExecutionError",
    "HookExecutor",
    "HookEngine",
    "HookLoader",
    "hook_matches",
]

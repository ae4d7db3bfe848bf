"""Concurrent tool-call dispatch with frozen configuration.

All tool calls of one assistant turn run at the same time, one asyncio task
per call, and the step waits until every call has settled. Each call goes
through the same pipeline:

    PRE_TOOL_CALL hooks -> lookup / argument decoding -> sandbox check
    -> approval -> execute -> truncate -> POST_TOOL_CALL (+ ON_ERROR) hooks
    -> tool Message

Whatever happens inside one call (exception, timeout, rejection) becomes
that call's ToolResult; sibling calls are unaffected. Results come back in
the order of the assistant's tool_calls regardless of completion order.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, FrozenSet, List, Optional, Sequence

from pydantic import ValidationError

from agent.async_bridge import call_maybe_async
from agent.messages import Message, ToolCall
from agent.tool_call_validator import parse_arguments
from agent.tool_error_tracker import ToolErrorTracker
from agent.wire import ToolCallMessage, ToolResultMessage, Wire
from hooks.engine import HookEngine
from hooks.spec import HookContext, HookType
from jimi_constants import MAX_TOOL_RESULT_CHARS
from tools.approval import TaskApprovals
from tools.base import Tool, ToolContext, ToolResult
from tools.registry import ToolRegistry
from tools.sandbox import PermissiveSandbox, SandboxValidator

logger = logging.getLogger(__name__)

INTERRUPTED_TOOL_CONTENT = "[Tool execution cancelled - user interrupted]"


@dataclass(frozen=True)
class ToolExecConfig:
    """Immutable configuration for tool execution."""

    max_result_chars: int = MAX_TOOL_RESULT_CHARS
    # Applies to tools that do not set their own timeout; None disables it
    default_timeout: Optional[float] = None
    agent_name: Optional[str] = None
    work_dir: Optional[Path] = None
    # Names the agent may call; None allows every registered tool
    allowed_tools: Optional[FrozenSet[str]] = None


def interrupted_tool_messages(tool_calls: Sequence[ToolCall]) -> List[Message]:
    """Placeholder answers for calls whose results were dropped by an interrupt."""
    return [
        Message.tool_result(tc.id, INTERRUPTED_TOOL_CONTENT, name=tc.function.name)
        for tc in tool_calls
    ]


class ToolDispatcher:
    def __init__(
        self,
        registry: ToolRegistry,
        *,
        config: Optional[ToolExecConfig] = None,
        approvals: Optional[TaskApprovals] = None,
        hooks: Optional[HookEngine] = None,
        sandbox: Optional[SandboxValidator] = None,
        wire: Optional[Wire] = None,
        on_tool_executed: Optional[Callable[[str], None]] = None,
        error_tracker: Optional[ToolErrorTracker] = None,
    ):
        self.registry = registry
        self.config = config if config is not None else ToolExecConfig()
        self.approvals = approvals if approvals is not None else TaskApprovals()
        self.hooks = hooks
        self.sandbox = sandbox if sandbox is not None else PermissiveSandbox()
        self._wire = wire
        self._on_tool_executed = on_tool_executed
        self.error_tracker = error_tracker

    async def dispatch(self, tool_calls: Sequence[ToolCall], history: Sequence[Message] = ()) -> List[Message]:
        """Run a batch concurrently and return tool messages in tool_calls order."""
        snapshot = tuple(history)
        outcomes = await asyncio.gather(
            *(self.execute_one(tc, snapshot) for tc in tool_calls),
            return_exceptions=True,
        )

        messages = []
        for tc, outcome in zip(tool_calls, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error("Tool worker for %s crashed: %s", tc.function.name, outcome)
                outcome = ToolResult.error(f"Tool execution failed: {outcome}")
            if self.error_tracker is not None:
                self.error_tracker.record(tc.function.name, tc.function.arguments, outcome)
            messages.append(Message.tool_result(tc.id, outcome.to_content(), name=tc.function.name))
        return messages

    async def execute_one(self, tool_call: ToolCall, history: Sequence[Message] = ()) -> ToolResult:
        """Run one call through the full pipeline. Never raises for tool-level failures."""
        name = tool_call.function.name
        self._send(ToolCallMessage(tool_call=tool_call))

        tool = self.registry.get(name)
        params = None
        affected_files: List[str] = []
        result: Optional[ToolResult] = None

        allowed = self.config.allowed_tools
        if tool is None:
            result = ToolResult.error(f"Tool not found: {name}")
        elif allowed is not None and name not in allowed:
            logger.warning("Refusing %s: not in the tool allow-list", name)
            result = ToolResult.error(f"Tool not available to this agent: {name}")
        else:
            try:
                params = tool.parse_params(parse_arguments(tool_call.function.arguments))
                affected_files = tool.affected_files(params)
            except (ValueError, ValidationError) as e:
                result = ToolResult.error(f"Invalid arguments for {name}: {e}")

        hook_context = HookContext(
            tool_name=name,
            tool_call_id=tool_call.id,
            affected_files=affected_files,
            agent_name=self.config.agent_name,
            work_dir=self.config.work_dir,
        )
        await self._fire(HookType.PRE_TOOL_CALL, hook_context)

        if result is None and not tool.validate_params(params):
            result = ToolResult.error(f"Invalid parameters for {name}")

        if result is None:
            result = await self._gate(tool, params)

        executed = False
        if result is None:
            executed = True
            result = await self._invoke(tool, params, tool_call, history)

        result = result.truncate(self.config.max_result_chars)
        if result.truncated:
            logger.warning("Truncated %s output to %s chars", name, f"{self.config.max_result_chars:,}")

        if executed:
            hook_context.tool_result = result.output_text()
            await self._fire(HookType.POST_TOOL_CALL, hook_context)
            if self._on_tool_executed is not None:
                try:
                    self._on_tool_executed(name)
                except Exception as e:
                    logger.debug("on_tool_executed callback failed: %s", e)
        if result.is_error:
            hook_context.error_message = result.message
            await self._fire(HookType.ON_ERROR, hook_context)

        self._send(ToolResultMessage(
            tool_call_id=tool_call.id,
            tool_name=name,
            status=result.status.value,
            message=result.output_text(),
            truncated=result.truncated,
        ))
        logger.debug("Tool %s (%s) -> %s", name, tool_call.id, result.status.value)
        return result

    async def _gate(self, tool: Tool, params) -> Optional[ToolResult]:
        """Sandbox and approval checks. Returns a ToolResult only when the call must not run."""
        needs_approval = tool.requires_approval
        description = tool.approval_description(params)

        try:
            decision = tool.sandbox_check(params, self.sandbox)
        except Exception as e:
            logger.error("Sandbox check for %s failed: %s", tool.name, e)
            return ToolResult.rejected(f"Sandbox check failed: {e}")
        if decision.is_denied:
            logger.info("Sandbox denied %s: %s", tool.name, decision.reason)
            return ToolResult.rejected(f"Sandbox denied: {decision.reason}")
        if decision.needs_approval:
            needs_approval = True
            description = f"{description}\n{decision.reason}" if decision.reason else description

        if needs_approval:
            response = await self.approvals.request(tool.name, description)
            if not response.approved:
                return ToolResult.rejected(f"User rejected {tool.name}")
        return None

    async def _invoke(self, tool: Tool, params, tool_call: ToolCall,
                      history: Sequence[Message]) -> ToolResult:
        context = ToolContext(
            tool_call_id=tool_call.id,
            history=tuple(history),
            work_dir=self.config.work_dir,
            agent_name=self.config.agent_name,
        )
        timeout = tool.timeout if tool.timeout is not None else self.config.default_timeout
        try:
            call = call_maybe_async(tool.execute, params, context)
            output = await asyncio.wait_for(call, timeout=timeout) if timeout else await call
        except asyncio.TimeoutError:
            logger.warning("Tool %s timed out after %ss", tool.name, timeout)
            return ToolResult.error(f"Tool {tool.name} timed out after {timeout}s")
        except Exception as e:
            logger.error("Tool %s raised: %s", tool.name, e, exc_info=True)
            return ToolResult.error(f"Error executing tool '{tool.name}': {e}")

        if isinstance(output, ToolResult):
            return output
        return ToolResult.ok("" if output is None else str(output))

    async def _fire(self, hook_type: HookType, context: HookContext) -> None:
        if self.hooks is None:
            return
        try:
            await self.hooks.trigger(hook_type, context)
        except Exception as e:
            logger.error("Hook trigger %s failed: %s", hook_type.value, e)

    def _send(self, message) -> None:
        if self._wire is not None:
            self._wire.send(message)

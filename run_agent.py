#!/usr/bin/env python3
"""
Agent Runner with Tool Calling

This module provides the agent step loop: it queries a language model,
dispatches the tool calls the model asks for, folds the results back into
the conversation, and repeats until the model answers without tools, a step
limit is hit, or the user interrupts.

Features:
- Step loop state machine (done / max steps exceeded / interrupted)
- Stops a run stuck repeating the same failing tool call
- Checkpointed history with automatic context compaction
- Concurrent tool execution with approval and sandbox gating
- Lifecycle hooks and a wire event stream for UIs

Usage:
    from run_agent import AgentLoop
    from agent.config import load_config

    loop = AgentLoop.from_config(load_config(project_dir=Path.cwd()), registry=my_tools)
    result = await loop.run("Add type hints to utils.py")
    print(result.final_response)
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from agent.async_bridge import call_maybe_async, run_async
from agent.compaction import CompactionTrigger, Summarizer
from agent.config import AgentConfig
from agent.execution_state import ExecutionState
from agent.history import HistoryStore
from agent.messages import Message, ModelResponse
from agent.model_metadata import get_model_context_length
from agent.session_persister import SessionPersister
from agent.tool_call_validator import filter_valid_tool_calls
from agent.tool_error_tracker import ToolErrorTracker
from agent.tool_executor import ToolDispatcher, ToolExecConfig, interrupted_tool_messages
from agent.wire import (
    ContentPartMessage,
    StatusUpdate,
    StepBegin,
    StepEnd,
    StepInterrupted,
    TokenUsageMessage,
    Wire,
)
from hooks.engine import HookEngine
from hooks.loader import HookLoader
from hooks.spec import HookContext, HookType
from tools.approval import ApprovalChannel, TaskApprovals
from tools.registry import ToolRegistry
from tools.sandbox import SandboxValidator

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    """Set up root logging the way the runner expects and quiet noisy libraries."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )
        # Keep third-party libraries at WARNING level to reduce noise
        for noisy in ('openai', 'openai._base_client', 'httpx', 'httpcore', 'asyncio', 'urllib3'):
            logging.getLogger(noisy).setLevel(logging.WARNING)
        logger.info("Verbose logging enabled (third-party library logs suppressed)")
    else:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )
        for noisy in ('openai', 'openai._base_client', 'httpx', 'httpcore', 'urllib3'):
            logging.getLogger(noisy).setLevel(logging.ERROR)


class LoopState(str, Enum):
    INIT = "init"
    STEPPING = "stepping"
    CONTINUE = "continue"
    DONE = "done"
    MAX_STEPS_EXCEEDED = "max_steps_exceeded"
    INTERRUPTED = "interrupted"
    RECOVERED_ERROR = "recovered_error"
    REPEATED_TOOL_ERRORS = "repeated_tool_errors"


class AgentLoopError(RuntimeError):
    pass


class MaxStepsExceeded(AgentLoopError):
    def __init__(self, max_steps: int):
        super().__init__(f"Maximum steps per run exceeded ({max_steps})")
        self.max_steps = max_steps


class ModelTransport(Protocol):
    def generate(self, system_prompt: str, history: Sequence[Message],
                 tool_schemas: List[Dict[str, Any]]) -> ModelResponse: ...


class CancellationToken:
    """Thread-safe stop flag checked by the loop at step boundaries."""

    def __init__(self):
        self._event = threading.Event()
        self.message: Optional[str] = None

    def cancel(self, message: Optional[str] = None) -> None:
        self.message = message
        self._event.set()

    def reset(self) -> None:
        self.message = None
        self._event.clear()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class ExecutionResult:
    state: LoopState
    final_response: Optional[str] = None
    steps: int = 0
    token_count: int = 0
    messages: List[Message] = field(default_factory=list)
    error: Optional[str] = None
    tools_used: List[str] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.state == LoopState.DONE

    @property
    def interrupted(self) -> bool:
        return self.state == LoopState.INTERRUPTED


class AgentLoop:
    """
    Step loop for one agent over one conversation history.

    Collaborators are injected; only the transport is required. Without a
    summarizer no compaction happens, without hooks no hooks fire, and
    without an approval channel approval-gated tools are auto-approved.
    """

    def __init__(
        self,
        transport: ModelTransport,
        *,
        registry: Optional[ToolRegistry] = None,
        history: Optional[HistoryStore] = None,
        hooks: Optional[HookEngine] = None,
        approvals: Optional[TaskApprovals] = None,
        approval_channel: Optional[ApprovalChannel] = None,
        sandbox: Optional[SandboxValidator] = None,
        wire: Optional[Wire] = None,
        summarizer: Optional[Summarizer] = None,
        config: Optional[AgentConfig] = None,
    ):
        self.config = config if config is not None else AgentConfig()
        self.transport = transport
        self.registry = registry if registry is not None else ToolRegistry()
        self.history = history if history is not None else HistoryStore()
        self.hooks = hooks
        self.wire = wire if wire is not None else Wire()
        if approvals is None:
            approvals = TaskApprovals(
                approval_channel, yolo=self.config.yolo, permanent=self.config.approved_tools,
            )
        self.approvals = approvals
        self.state = ExecutionState()
        self.loop_state = LoopState.INIT
        self._cancel = CancellationToken()
        self._session_started = False
        self.error_tracker = ToolErrorTracker(self.config.max_repeated_tool_errors)

        self.dispatcher = ToolDispatcher(
            self.registry,
            config=ToolExecConfig(
                max_result_chars=self.config.max_tool_result_chars,
                default_timeout=self.config.tool_timeout,
                agent_name=self.config.agent_name,
                work_dir=self.config.work_dir,
                allowed_tools=frozenset(self.config.tools) if self.config.tools is not None else None,
            ),
            approvals=self.approvals,
            hooks=hooks,
            sandbox=sandbox,
            wire=self.wire,
            on_tool_executed=self.state.record_tool_used,
            error_tracker=self.error_tracker,
        )

        self.compaction: Optional[CompactionTrigger] = None
        if summarizer is not None:
            max_context = self.config.model_max_context or get_model_context_length(
                self.config.model, self.config.base_url, self.config.api_key,
            )
            self.compaction = CompactionTrigger(
                summarizer,
                model_max_context=max_context,
                reserved_budget=self.config.reserved_context_tokens,
                wire=self.wire,
                enabled=self.config.compaction_enabled,
            )

    @classmethod
    def from_config(
        cls,
        config: AgentConfig,
        *,
        transport: Optional[ModelTransport] = None,
        registry: Optional[ToolRegistry] = None,
        session_id: Optional[str] = None,
        load_hooks: bool = True,
        **kwargs,
    ) -> "AgentLoop":
        """Wire up the default collaborators: OpenAI transport, JSONL
        persistence (resumed when session_id names an existing session)
        and hooks discovered from the user and project hook directories."""
        if transport is None:
            from agent.openai_transport import OpenAITransport
            transport = OpenAITransport(config.model, base_url=config.base_url, api_key=config.api_key)

        persister = SessionPersister(sessions_dir=config.sessions_dir, session_id=session_id)
        if session_id and persister.session_file.exists():
            history = HistoryStore.restore(persister)
        else:
            history = HistoryStore(persister=persister)

        hooks = kwargs.pop("hooks", None)
        if hooks is None and load_hooks:
            hooks = HookEngine()
            HookLoader(project_dir=config.work_dir).load_into(hooks)

        return cls(transport, registry=registry, history=history, hooks=hooks, config=config, **kwargs)

    # -- Interrupts -----------------------------------------------------------

    def interrupt(self, message: str = None) -> None:
        """
        Request the loop to stop at the next step boundary.

        Safe to call from another thread. Tool calls already running finish,
        but their results are discarded.
        """
        self._cancel.cancel(message)
        logger.info("Interrupt requested" + (f": {message[:40]}" if message else ""))

    def clear_interrupt(self) -> None:
        self._cancel.reset()

    @property
    def is_interrupted(self) -> bool:
        return self._cancel.is_cancelled

    # -- Extension points -----------------------------------------------------

    def _should_continue_without_tools(self, message: Message) -> bool:
        """Whether a step without tool calls should keep the loop going.

        The base loop always finishes on a tool-less answer. Subclasses that
        let the model keep thinking are capped by ``max_thinking_steps``.
        """
        return False

    # -- Main loop ------------------------------------------------------------

    async def run(self, user_input: Union[str, Message]) -> ExecutionResult:
        """Run one task to completion.

        Raises:
            MaxStepsExceeded: the task needed more than max_steps_per_run steps.
        """
        user_message = user_input if isinstance(user_input, Message) else Message.user(user_input)
        self.clear_interrupt()
        self.approvals.clear()
        self.error_tracker.clear()
        self.state.initialize_task(user_message.text)
        self.loop_state = LoopState.INIT

        if not self._session_started:
            self._session_started = True
            self._fire_background(HookType.ON_SESSION_START, HookContext())

        self._fire_background(HookType.PRE_USER_INPUT, HookContext(user_input=user_message.text))
        self.history.append(user_message)
        if not self.history.has_checkpoint(0):
            self.history.checkpoint(0)
        self._fire_background(HookType.POST_USER_INPUT, HookContext(user_input=user_message.text))

        max_steps = self.config.max_steps_per_run
        while True:
            step = self.state.increment_step()
            self.loop_state = LoopState.STEPPING

            if step > max_steps:
                self.loop_state = LoopState.MAX_STEPS_EXCEEDED
                logger.warning("Reached maximum steps (%d)", max_steps)
                self.wire.send(StatusUpdate(level="error", text=f"Reached maximum steps ({max_steps})"))
                self._fire_background(HookType.ON_ERROR, HookContext(error_message=f"max steps {max_steps} exceeded"))
                raise MaxStepsExceeded(max_steps)

            if self.error_tracker.should_terminate():
                return self._repeated_tool_errors(step)

            self.wire.send(StepBegin(step=step))
            if self.is_interrupted:
                return self._interrupted(step)

            if self.compaction is not None:
                await self.compaction.maybe_compact(self.history)

            self.history.checkpoint()
            if self.is_interrupted:
                return self._interrupted(step)

            schemas = self.registry.list_schemas(self.config.tools)
            logger.debug("Step %d: calling model with %d messages, %d tools",
                         step, len(self.history), len(schemas))
            try:
                response = await call_maybe_async(
                    self.transport.generate, self.config.system_prompt, self.history.history(), schemas,
                )
            except Exception as e:
                return self._recover_from_model_error(step, e)

            assistant = self._record_response(step, response)

            if not assistant.tool_calls:
                if self._should_continue_without_tools(assistant) and \
                        not self.state.should_force_complete(self.config.max_thinking_steps):
                    self.loop_state = LoopState.CONTINUE
                    continue
                self.loop_state = LoopState.DONE
                logger.info("Task done after %d steps", step)
                return self._result(LoopState.DONE, final_response=assistant.text)

            self.state.reset_no_tool_call_counter()
            tool_messages = await self.dispatcher.dispatch(assistant.tool_calls, self.history.history())
            if self.is_interrupted:
                logger.info("Interrupted during tool execution; discarding %d results", len(tool_messages))
                tool_messages = interrupted_tool_messages(assistant.tool_calls)
            self.history.append(tool_messages)
            self.loop_state = LoopState.CONTINUE

    def _record_response(self, step: int, response: ModelResponse) -> Message:
        """Update token accounting, append the assistant message and publish it."""
        if response.usage is not None:
            usage = response.usage
            self.state.add_usage(usage.prompt_tokens, usage.completion_tokens, usage.total_tokens)
            self.history.update_token_count(usage.total_tokens)
            self.wire.send(TokenUsageMessage(
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
                token_count=self.history.token_count,
            ))

        assistant = response.message
        if assistant.tool_calls:
            valid, dropped = filter_valid_tool_calls(assistant.tool_calls)
            if dropped:
                assistant = assistant.model_copy(update={"tool_calls": valid or None})
        self.history.append(assistant)

        for part in assistant.parts:
            self.wire.send(ContentPartMessage(part=part))
        self.wire.send(StepEnd(step=step, has_tool_calls=bool(assistant.tool_calls)))
        return assistant

    def _recover_from_model_error(self, step: int, error: Exception) -> ExecutionResult:
        self.loop_state = LoopState.RECOVERED_ERROR
        logger.error("Model call failed at step %d: %s", step, error)
        text = f"Sorry, the model request failed: {error}"
        self.history.append(Message.assistant(text))
        self.wire.send(StatusUpdate(level="error", text=text))
        self.wire.send(StepEnd(step=step, has_tool_calls=False))
        self._fire_background(HookType.ON_ERROR, HookContext(error_message=str(error)))
        self.loop_state = LoopState.DONE
        return self._result(LoopState.DONE, final_response=text, error=str(error))

    def _repeated_tool_errors(self, step: int) -> ExecutionResult:
        tool_name, _ = self.error_tracker.last_signature
        text = (f"Stopped: {tool_name} failed {self.error_tracker.repeated_count} times "
                f"in a row with the same arguments")
        self.loop_state = LoopState.REPEATED_TOOL_ERRORS
        logger.error("%s (step %d)", text, step)
        self.wire.send(StatusUpdate(level="error", text=text))
        self._fire_background(HookType.ON_ERROR, HookContext(tool_name=tool_name, error_message=text))
        return self._result(LoopState.REPEATED_TOOL_ERRORS, error=text)

    def _interrupted(self, step: int) -> ExecutionResult:
        self.loop_state = LoopState.INTERRUPTED
        logger.info("Interrupted at step %d", step)
        self.wire.send(StepInterrupted(step=step))
        return self._result(LoopState.INTERRUPTED)

    def _result(self, state: LoopState, final_response: Optional[str] = None,
                error: Optional[str] = None) -> ExecutionResult:
        return ExecutionResult(
            state=state,
            final_response=final_response,
            steps=self.state.current_step,
            token_count=self.history.token_count,
            messages=self.history.history(),
            error=error,
            tools_used=list(self.state.tools_used),
        )

    # -- Hooks ----------------------------------------------------------------

    def _fire_background(self, hook_type: HookType, context: HookContext) -> None:
        if self.hooks is None:
            return
        context.agent_name = context.agent_name or self.config.agent_name
        context.work_dir = context.work_dir or self.config.work_dir
        self.hooks.trigger_background(hook_type, context)

    async def drain_hooks(self) -> None:
        """Wait for hooks the loop fired in the background."""
        if self.hooks is not None:
            await self.hooks.drain()

    async def close(self) -> None:
        """End the session: fire ON_SESSION_END and wait for pending hooks."""
        if self.hooks is not None and self._session_started:
            await self.hooks.trigger(
                HookType.ON_SESSION_END,
                HookContext(agent_name=self.config.agent_name, work_dir=self.config.work_dir),
            )
        await self.drain_hooks()

    def chat(self, message: str) -> str:
        """
        Simple chat interface that returns just the final response.

        Args:
            message (str): User message

        Returns:
            str: Final assistant response
        """
        result = run_async(self.run(message))
        return result.final_response

"""Agent internals -- the modules behind run_agent.AgentLoop.

These modules contain the self-contained pieces the step loop is built
from.

Module Overview
---------------
**messages.py**
    Message, ToolCall, content parts and usage types (pydantic).

**history.py**
    HistoryStore -- live conversation, token count and write-once
    checkpoints with revert.

**session_persister.py**
    Append-only JSONL mirror of a HistoryStore, with restore.

**compaction.py**
    Threshold check and the revert-to-checkpoint-0 + summary swap.

**tool_executor.py**
    ToolDispatcher -- concurrent, order-preserving tool execution with
    hooks, sandbox and approval gating.

**tool_call_validator.py**
    Drops malformed tool calls and repairs almost-JSON arguments.

**tool_error_tracker.py**
    Stops a run when the same tool call keeps failing the same way.

**execution_state.py**
    Step counter, token totals and the no-tool-call loop guard.

**wire.py**
    Fire-and-forget event bus for UIs and loggers.

**config.py**
    AgentConfig loading from config.yaml, .env and environment.

**model_metadata.py**
    Context lengths and rough token estimates.

**openai_transport.py**
    OpenAI-compatible model transport.

**async_bridge.py**
    Helpers for calling sync-or-async callables from the async core.
"""

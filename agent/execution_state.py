"""Per-task execution bookkeeping for the agent loop.

Tracks the step counter, token totals, which tools ran, and the number of
consecutive steps that ended without tool calls. The last one backs the
loop guard: a loop that keeps itself alive after a tool-less step must stop
once ``should_force_complete`` says so.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ExecutionState:
    task_id: Optional[str] = None
    user_input: str = ""
    current_step: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    tools_used: List[str] = field(default_factory=list)
    consecutive_no_tool_call_steps: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def initialize_task(self, user_input: str, task_id: Optional[str] = None) -> None:
        self.task_id = task_id
        self.user_input = user_input
        self.current_step = 0
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.total_tokens = 0
        self.tools_used = []
        self.consecutive_no_tool_call_steps = 0
        self.started_at = time.monotonic()

    def increment_step(self) -> int:
        self.current_step += 1
        return self.current_step

    def add_usage(self, prompt_tokens: int, completion_tokens: int, total_tokens: int) -> None:
        self.prompt_tokens += prompt_tokens
        self.completion_tokens += completion_tokens
        self.total_tokens += total_tokens

    def record_tool_used(self, name: str) -> None:
        self.tools_used.append(name)

    # -- Loop guard -----------------------------------------------------------

    def should_force_complete(self, max_thinking_steps: int) -> bool:
        """Count a tool-less step that would continue; True once the cap is hit."""
        self.consecutive_no_tool_call_steps += 1
        return self.consecutive_no_tool_call_steps >= max_thinking_steps

    def reset_no_tool_call_counter(self) -> None:
        self.consecutive_no_tool_call_steps = 0

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.started_at

    def summary(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "steps": self.current_step,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "tools_used": list(self.tools_used),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }

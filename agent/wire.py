"""Wire -- one-way event bus from the agent core to UIs and loggers.

The loop publishes progress events; subscribers observe them. Publishing is
fire-and-forget: a subscriber that raises is logged and skipped, and queue
subscribers that fall behind lose events instead of stalling the loop.

Usage:
    wire = Wire()
    wire.subscribe(lambda msg: print(msg.type))
    queue = wire.subscribe_queue(maxsize=1000)
    wire.send(StepBegin(step=1))
"""

import asyncio
import logging
import threading
from typing import Callable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict

from agent.messages import ImagePart, TextPart, ToolCall

logger = logging.getLogger(__name__)


class WireMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str


class StepBegin(WireMessage):
    type: Literal["step_begin"] = "step_begin"
    step: int


class StepEnd(WireMessage):
    type: Literal["step_end"] = "step_end"
    step: int
    has_tool_calls: bool = False


class StepInterrupted(WireMessage):
    type: Literal["step_interrupted"] = "step_interrupted"
    step: int


class ContentPartMessage(WireMessage):
    type: Literal["content_part"] = "content_part"
    part: Union[TextPart, ImagePart]


class ToolCallMessage(WireMessage):
    type: Literal["tool_call"] = "tool_call"
    tool_call: ToolCall


class ToolResultMessage(WireMessage):
    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str
    tool_name: str
    status: str
    message: str = ""
    truncated: bool = False


class CompactionBegin(WireMessage):
    type: Literal["compaction_begin"] = "compaction_begin"
    token_count: int


class CompactionEnd(WireMessage):
    type: Literal["compaction_end"] = "compaction_end"
    success: bool
    error: Optional[str] = None


class TokenUsageMessage(WireMessage):
    type: Literal["token_usage"] = "token_usage"
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    # Current history size after this step
    token_count: int = 0


class StatusUpdate(WireMessage):
    type: Literal["status"] = "status"
    level: Literal["info", "warning", "error"] = "info"
    text: str


Subscriber = Callable[[WireMessage], None]


class Wire:
    """Multicast publisher for WireMessage events."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Add a callback subscriber. Returns a function that unsubscribes it.

        Callbacks run inline on the publisher and must not block.
        """
        with self._lock:
            self._subscribers = self._subscribers + [callback]

        def _unsubscribe() -> None:
            with self._lock:
                self._subscribers = [s for s in self._subscribers if s is not callback]

        return _unsubscribe

    def subscribe_queue(self, maxsize: int = 1000) -> "asyncio.Queue[WireMessage]":
        """Subscribe an asyncio queue; events are dropped when it is full."""
        queue: "asyncio.Queue[WireMessage]" = asyncio.Queue(maxsize=maxsize)

        def _enqueue(message: WireMessage) -> None:
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.debug("Wire queue full, dropping %s", message.type)

        self.subscribe(_enqueue)
        return queue

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def send(self, message: WireMessage) -> None:
        for callback in self._subscribers:
            try:
                callback(message)
            except Exception as e:
                logger.warning("Wire subscriber failed on %s: %s", message.type, e)

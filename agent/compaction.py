"""Context compaction trigger.

Decides when the history has grown too close to the model's context window
and, when it has, swaps the live history for a summary produced by an
external Summarizer:

    history at checkpoint 0  +  summarizer output

Checkpoint 0 (the history right after the task's first user message) is
never touched, so repeated compactions always restart from the same base.
Compaction is best effort: any failure leaves the history as it was and the
next step simply tries again.
"""

import logging
from typing import List, Optional, Protocol, Sequence, Union

from agent.async_bridge import call_maybe_async
from agent.history import HistoryStore
from agent.messages import Message, Role
from agent.model_metadata import estimate_messages_tokens_rough
from agent.wire import CompactionBegin, CompactionEnd, Wire
from jimi_constants import DEFAULT_RESERVED_CONTEXT_TOKENS

logger = logging.getLogger(__name__)


class CompactionError(RuntimeError):
    pass


class Summarizer(Protocol):
    """Produces a compact replacement for a history. May be sync or async."""

    def summarize(self, history: List[Message]) -> Union[Message, Sequence[Message]]: ...


def should_compact(token_count: int, model_max_context: int,
                   reserved_budget: int = DEFAULT_RESERVED_CONTEXT_TOKENS) -> bool:
    return token_count > model_max_context - reserved_budget


class CompactionTrigger:
    def __init__(
        self,
        summarizer: Summarizer,
        *,
        model_max_context: int,
        reserved_budget: int = DEFAULT_RESERVED_CONTEXT_TOKENS,
        wire: Optional[Wire] = None,
        enabled: bool = True,
    ):
        self.summarizer = summarizer
        self.model_max_context = model_max_context
        self.reserved_budget = reserved_budget
        self.enabled = enabled
        self._wire = wire
        self.compaction_count = 0

    def should_compact(self, token_count: int) -> bool:
        return self.enabled and should_compact(token_count, self.model_max_context, self.reserved_budget)

    async def maybe_compact(self, history: HistoryStore) -> Optional[bool]:
        """Compact if over threshold. None when no compaction was needed."""
        if not self.should_compact(history.token_count):
            return None
        return await self.compact(history)

    async def compact(self, history: HistoryStore) -> bool:
        token_count = history.token_count
        logger.info(
            "Compacting context: %s tokens > %s - %s reserved",
            f"{token_count:,}", f"{self.model_max_context:,}", f"{self.reserved_budget:,}",
        )
        self._send(CompactionBegin(token_count=token_count))

        error = None
        try:
            summary = await call_maybe_async(self.summarizer.summarize, history.history())
            if isinstance(summary, Message):
                summary = [summary]
            summary = list(summary or [])
            if not summary:
                raise CompactionError("summarizer returned no messages")
            if any(m.role == Role.TOOL or m.tool_calls for m in summary):
                raise CompactionError("summary may not contain tool calls or tool results")
            if not history.revert_to(0):
                raise CompactionError("checkpoint 0 is missing")
            history.append(summary)
            history.update_token_count(estimate_messages_tokens_rough(history.history()))
        except Exception as e:
            error = str(e)
            logger.warning("Context compaction failed, continuing with full history: %s", e)

        success = error is None
        if success:
            self.compaction_count += 1
            logger.info("Compaction done: %d messages, ~%s tokens",
                        len(history), f"{history.token_count:,}")
        self._send(CompactionEnd(success=success, error=error))
        return success

    def _send(self, message) -> None:
        if self._wire is not None:
            self._wire.send(message)

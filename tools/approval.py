"""Thread-safe, task-scoped approval management for tool calls.

Each agent task owns one TaskApprovals instance; nothing here is module
state, so concurrent tasks never see each other's approvals. A call that
needs approval asks the configured ApprovalChannel (usually a front-end
prompt) and blocks only its own tool worker while waiting.

Answers:
  approve_once      -- run this call
  approve_for_task  -- run this call and skip the prompt for the same tool
                       for the rest of the task
  reject            -- do not run; the call becomes a Rejected result
"""

import asyncio
import logging
import threading
from enum import Enum
from typing import Dict, Iterable, Optional, Protocol, Set

from agent.async_bridge import call_maybe_async

logger = logging.getLogger(__name__)


class ApprovalResponse(str, Enum):
    APPROVE_ONCE = "approve_once"
    APPROVE_FOR_TASK = "approve_for_task"
    REJECT = "reject"

    @property
    def approved(self) -> bool:
        return self != ApprovalResponse.REJECT


class ApprovalChannel(Protocol):
    """Front-end side of an approval prompt. May be sync or async."""

    def request(self, tool_name: str, description: str) -> ApprovalResponse: ...


class TaskApprovals:
    """Approval state for one task.

    Args:
        channel: Where approval prompts go. Without a channel every request
            is approved with a warning (non-interactive use).
        yolo: Approve everything without asking.
        permanent: Tool names approved up front (e.g. from config).
    """

    def __init__(
        self,
        channel: Optional[ApprovalChannel] = None,
        *,
        yolo: bool = False,
        permanent: Optional[Iterable[str]] = None,
    ):
        self._channel = channel
        self._yolo = yolo
        self._lock = threading.Lock()
        self._task_approved: Set[str] = set()
        self._permanent: Set[str] = set(permanent or ())
        # One prompt at a time per tool name
        self._prompt_locks: Dict[str, asyncio.Lock] = {}

    @property
    def yolo(self) -> bool:
        return self._yolo

    def set_yolo(self, enabled: bool) -> None:
        self._yolo = enabled

    def is_approved(self, tool_name: str) -> bool:
        """Check if a tool is approved (task-scoped or permanent)."""
        with self._lock:
            return tool_name in self._permanent or tool_name in self._task_approved

    def approve_for_task(self, tool_name: str) -> None:
        with self._lock:
            self._task_approved.add(tool_name)

    def approve_permanent(self, tool_name: str) -> None:
        with self._lock:
            self._permanent.add(tool_name)

    def clear(self) -> None:
        """Forget task-scoped approvals (new task)."""
        with self._lock:
            self._task_approved.clear()

    async def request(self, tool_name: str, description: str) -> ApprovalResponse:
        if self._yolo:
            return ApprovalResponse.APPROVE_ONCE

        if self.is_approved(tool_name):
            logger.debug("Tool '%s' already approved for this task", tool_name)
            return ApprovalResponse.APPROVE_FOR_TASK

        if self._channel is None:
            logger.warning("No approval channel configured; auto-approving %s", tool_name)
            return ApprovalResponse.APPROVE_ONCE

        async with self._prompt_lock(tool_name):
            if self.is_approved(tool_name):
                return ApprovalResponse.APPROVE_FOR_TASK
            return await self._prompt(tool_name, description)

    def _prompt_lock(self, tool_name: str) -> asyncio.Lock:
        with self._lock:
            lock = self._prompt_locks.get(tool_name)
            if lock is None:
                lock = self._prompt_locks[tool_name] = asyncio.Lock()
            return lock

    async def _prompt(self, tool_name: str, description: str) -> ApprovalResponse:
        try:
            response = await call_maybe_async(self._channel.request, tool_name, description)
            response = ApprovalResponse(response)
        except Exception as e:
            logger.error("Approval request for %s failed: %s", tool_name, e)
            return ApprovalResponse.REJECT

        if response == ApprovalResponse.APPROVE_FOR_TASK:
            self.approve_for_task(tool_name)
        logger.info("Approval for %s: %s", tool_name, response.value)
        return response

"""Detection of a model stuck repeating the same failing tool call.

Every Error result is recorded under a signature made of the tool name and
its normalized arguments. A run of identical failures longer than the limit
tells the loop to stop; any successful call or a differently-shaped failure
starts the count over. Rejected calls are a user decision, not a tool
failure, and leave the count alone.
"""

import json
import logging
import threading
from typing import Optional, Tuple

from agent.tool_call_validator import parse_arguments
from jimi_constants import DEFAULT_MAX_REPEATED_TOOL_ERRORS
from tools.base import ToolResult

logger = logging.getLogger(__name__)


def error_signature(tool_name: str, arguments: Optional[str]) -> Tuple[str, str]:
    """(tool name, canonical JSON of the arguments); raw text when undecodable."""
    try:
        canonical = json.dumps(parse_arguments(arguments), sort_keys=True, ensure_ascii=False)
    except ValueError:
        canonical = (arguments or "").strip()
    return tool_name, canonical


class ToolErrorTracker:
    def __init__(self, max_repeated: int = DEFAULT_MAX_REPEATED_TOOL_ERRORS):
        self.max_repeated = max_repeated
        self._lock = threading.Lock()
        self._last: Optional[Tuple[str, str]] = None
        self._count = 0

    @property
    def repeated_count(self) -> int:
        return self._count

    @property
    def last_signature(self) -> Optional[Tuple[str, str]]:
        return self._last

    def record(self, tool_name: str, arguments: Optional[str], result: ToolResult) -> None:
        if result.is_error:
            self.record_error(tool_name, arguments)
        elif result.is_ok:
            self.record_success()

    def record_error(self, tool_name: str, arguments: Optional[str]) -> None:
        signature = error_signature(tool_name, arguments)
        with self._lock:
            if signature == self._last:
                self._count += 1
            else:
                self._last = signature
                self._count = 1
            count = self._count
        if count > 1:
            logger.warning("Tool %s failed %d times in a row with the same arguments", tool_name, count)

    def record_success(self) -> None:
        with self._lock:
            self._last = None
            self._count = 0

    def should_terminate(self) -> bool:
        return self._count >= self.max_repeated

    def clear(self) -> None:
        self.record_success()

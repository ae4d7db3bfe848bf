"""Tool registry.

Holds the tools available to an agent and produces the function schemas
sent to the model. Writes replace the backing dict wholesale under a lock,
so concurrent readers (tool workers, schema listing) always see either the
old or the new mapping and never a half-applied change.
"""

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

from tools.base import Tool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry of available tools."""

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self._lock = threading.Lock()
        self._tools: Dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool, replacing any tool with the same name."""
        if not tool.name:
            raise ValueError(f"Tool {type(tool).__name__} has no name")
        with self._lock:
            updated = dict(self._tools)
            if tool.name in updated:
                logger.info("Replacing registered tool '%s'", tool.name)
            updated[tool.name] = tool
            self._tools = updated
        logger.debug("Registered tool '%s'", tool.name)

    def unregister(self, name: str) -> bool:
        with self._lock:
            if name not in self._tools:
                return False
            updated = dict(self._tools)
            del updated[name]
            self._tools = updated
        return True

    def get(self, name: str) -> Optional[Tool]:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> List[Tool]:
        """List all registered tools."""
        return list(self._tools.values())

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def list_schemas(self, allow: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        """OpenAI function schemas, optionally restricted to an allow-list.

        Allow-list entries that name no registered tool are skipped.
        """
        tools = self._tools
        if allow is None:
            selected = list(tools.values())
        else:
            selected = []
            for name in allow:
                tool = tools.get(name)
                if tool is None:
                    logger.warning("Tool '%s' in allow-list is not registered; skipping", name)
                    continue
                selected.append(tool)
        return [tool.schema.to_dict() for tool in selected]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

"""
Hook Engine

Runs user-declared side effects at lifecycle points of the agent:

  - PRE_USER_INPUT / POST_USER_INPUT   -- around recording the user message
  - PRE_TOOL_CALL / POST_TOOL_CALL     -- around each tool call
  - PRE_AGENT_SWITCH / POST_AGENT_SWITCH
  - ON_ERROR                           -- model or tool failure
  - ON_SESSION_START / ON_SESSION_END

Hooks are registered as HookSpecs (usually discovered by HookLoader) and
indexed by event type, highest priority first. ``trigger`` runs every
enabled, matching hook whose conditions hold, one after another, each under
its own timeout. Errors in hooks are caught and logged but never block the
main pipeline.
"""

import asyncio
import fnmatch
import logging
import re
import threading
from pathlib import PurePath
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from pydantic import ValidationError

from hooks.executor import HookExecutor
from hooks.spec import HookContext, HookSpec, HookType, HookValidationError

logger = logging.getLogger(__name__)


def hook_matches(hook: HookSpec, context: HookContext) -> bool:
    """Check a hook's trigger filters against a context. Empty filters match."""
    trigger = hook.trigger

    if trigger.tools:
        if context.tool_name is None or context.tool_name not in trigger.tools:
            return False

    if trigger.file_patterns:
        if not any(
            _glob_match(path, pattern)
            for path in context.affected_files
            for pattern in trigger.file_patterns
        ):
            return False

    if trigger.agent_name:
        if context.agent_name != trigger.agent_name:
            return False

    if trigger.error_pattern:
        if context.error_message is None or re.search(trigger.error_pattern, context.error_message) is None:
            return False

    return True


def _glob_match(path: str, pattern: str) -> bool:
    return fnmatch.fnmatch(PurePath(path).name, pattern) or fnmatch.fnmatch(path, pattern)


class HookEngine:
    """
    Registers, matches, and fires hooks.

    Usage:
        engine = HookEngine()
        HookLoader(project_dir=Path.cwd()).load_into(engine)
        await engine.trigger(HookType.POST_TOOL_CALL, HookContext(tool_name="write_file"))
    """

    def __init__(self, executor: Optional[HookExecutor] = None):
        self.executor = executor if executor is not None else HookExecutor()
        self._lock = threading.Lock()
        # hook_type -> hooks sorted by descending priority
        self._by_type: Dict[HookType, List[HookSpec]] = {}
        self._by_name: Dict[str, HookSpec] = {}
        self._background: Set[asyncio.Task] = set()

    # -- Registration ---------------------------------------------------------

    def register(self, hook: Union[HookSpec, Dict[str, Any]]) -> HookSpec:
        """Validate and register a hook, replacing any hook with the same name."""
        if not isinstance(hook, HookSpec):
            try:
                hook = HookSpec.model_validate(hook)
            except ValidationError as e:
                raise HookValidationError(str(e)) from e
        with self._lock:
            if hook.name in self._by_name:
                logger.info("Replacing hook '%s'", hook.name)
                self._remove_locked(hook.name)
            self._by_name[hook.name] = hook
            bucket = self._by_type.setdefault(hook.trigger.type, [])
            bucket.append(hook)
            # stable sort keeps registration order among equal priorities
            bucket.sort(key=lambda h: h.priority, reverse=True)
        logger.info("Registered hook '%s' (%s, priority %d)", hook.name, hook.trigger.type.value, hook.priority)
        return hook

    def unregister(self, name: str) -> bool:
        with self._lock:
            if name not in self._by_name:
                return False
            self._remove_locked(name)
        logger.info("Unregistered hook '%s'", name)
        return True

    def _remove_locked(self, name: str) -> None:
        old = self._by_name.pop(name)
        bucket = self._by_type.get(old.trigger.type, [])
        self._by_type[old.trigger.type] = [h for h in bucket if h.name != name]

    def reload(self, hooks: Iterable[Union[HookSpec, Dict[str, Any]]]) -> int:
        """Replace every registered hook with the given ones."""
        validated = []
        for hook in hooks:
            if isinstance(hook, HookSpec):
                validated.append(hook)
                continue
            try:
                validated.append(HookSpec.model_validate(hook))
            except ValidationError as e:
                raise HookValidationError(str(e)) from e
        with self._lock:
            self._by_type = {}
            self._by_name = {}
        for hook in validated:
            self.register(hook)
        return len(validated)

    def enable(self, name: str) -> bool:
        return self._set_enabled(name, True)

    def disable(self, name: str) -> bool:
        return self._set_enabled(name, False)

    def _set_enabled(self, name: str, enabled: bool) -> bool:
        hook = self.get(name)
        if hook is None:
            return False
        if hook.enabled != enabled:
            self.register(hook.model_copy(update={"enabled": enabled}))
        return True

    # -- Queries --------------------------------------------------------------

    def get(self, name: str) -> Optional[HookSpec]:
        with self._lock:
            return self._by_name.get(name)

    def hooks(self, hook_type: HookType) -> List[HookSpec]:
        with self._lock:
            return list(self._by_type.get(hook_type, []))

    @property
    def all_hooks(self) -> List[HookSpec]:
        with self._lock:
            return list(self._by_name.values())

    def statistics(self) -> Dict[str, Any]:
        with self._lock:
            hooks = list(self._by_name.values())
            by_type = {t.value: len(b) for t, b in self._by_type.items() if b}
        return {
            "total": len(hooks),
            "enabled": sum(1 for h in hooks if h.enabled),
            "by_type": by_type,
        }

    # -- Firing ---------------------------------------------------------------

    async def trigger(self, hook_type: HookType, context: Optional[HookContext] = None) -> int:
        """Fire every matching hook for an event. Returns how many ran successfully."""
        if context is None:
            context = HookContext()
        context.hook_type = hook_type

        succeeded = 0
        for hook in self.hooks(hook_type):
            if not hook.enabled or not hook_matches(hook, context):
                continue
            try:
                if not await self.executor.check_conditions(hook.conditions, context):
                    logger.debug("Hook conditions not met: %s", hook.name)
                    continue
                await asyncio.wait_for(self.executor.execute(hook, context), timeout=hook.execution.timeout)
                succeeded += 1
            except asyncio.TimeoutError:
                logger.error("Hook '%s' timed out after %ss", hook.name, hook.execution.timeout)
            except Exception as e:
                logger.error("Hook '%s' failed on %s: %s", hook.name, hook_type.value, e)
        return succeeded

    def trigger_background(self, hook_type: HookType, context: Optional[HookContext] = None) -> Optional[asyncio.Task]:
        """Fire hooks as an independent task; the caller does not wait for them."""
        if not self.hooks(hook_type):
            return None
        task = asyncio.get_running_loop().create_task(self.trigger(hook_type, context))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for all background triggers to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

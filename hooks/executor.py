"""Hook condition checks and execution.

Scripts run through ``/bin/bash -c`` as asyncio subprocesses with the hook's
working directory and environment. Their combined output is logged line by
line under the hook's name. Agent executions and composite ``command``
steps are delegated to callbacks supplied by the embedding application,
since running a sub-agent or a slash command is outside the hook engine.

Variables substituted in scripts, paths and environment values:

    ${JIMI_WORK_DIR}  ${HOME}  ${TOOL_NAME}  ${TOOL_RESULT}
    ${MODIFIED_FILES} ${MODIFIED_FILE}  ${AGENT_NAME}  ${CURRENT_AGENT}
    ${PREVIOUS_AGENT} ${ERROR_MESSAGE}
"""

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Union

from agent.async_bridge import call_maybe_async
from hooks.spec import (
    AgentExecution,
    CompositeExecution,
    HookContext,
    HookSpec,
    ScriptExecution,
)

logger = logging.getLogger(__name__)

AgentRunner = Callable[[str, str, HookContext], Union[Any, Awaitable[Any]]]
CommandRunner = Callable[[str, HookContext], Union[Optional[bool], Awaitable[Optional[bool]]]]


class HookExecutionError(RuntimeError):
    pass


def substitute_variables(text: Optional[str], context: HookContext) -> Optional[str]:
    if text is None:
        return None
    result = text
    if context.work_dir is not None:
        result = result.replace("${JIMI_WORK_DIR}", str(context.work_dir))
    result = result.replace("${HOME}", str(Path.home()))
    if context.tool_name is not None:
        result = result.replace("${TOOL_NAME}", context.tool_name)
    if context.tool_result is not None:
        result = result.replace("${TOOL_RESULT}", context.tool_result)
    if context.affected_files:
        result = result.replace("${MODIFIED_FILES}", " ".join(context.affected_files))
        result = result.replace("${MODIFIED_FILE}", context.affected_files[0])
    if context.agent_name is not None:
        result = result.replace("${AGENT_NAME}", context.agent_name)
        result = result.replace("${CURRENT_AGENT}", context.agent_name)
    if context.previous_agent_name is not None:
        result = result.replace("${PREVIOUS_AGENT}", context.previous_agent_name)
    if context.error_message is not None:
        result = result.replace("${ERROR_MESSAGE}", context.error_message)
    return result


def _resolve_path(path_str: str, context: HookContext) -> Path:
    path = Path(substitute_variables(path_str, context)).expanduser()
    if not path.is_absolute() and context.work_dir is not None:
        path = Path(context.work_dir) / path
    return path


def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass


class HookExecutor:
    def __init__(
        self,
        *,
        agent_runner: Optional[AgentRunner] = None,
        command_runner: Optional[CommandRunner] = None,
        shell: str = "/bin/bash",
    ):
        self.agent_runner = agent_runner
        self.command_runner = command_runner
        self._shell = shell

    # -- Conditions -----------------------------------------------------------

    async def check_conditions(self, conditions: Sequence, context: HookContext) -> bool:
        for condition in conditions:
            if not await self.check_condition(condition, context):
                logger.debug("Condition not met: %s", condition.description or condition.type)
                return False
        return True

    async def check_condition(self, condition, context: HookContext) -> bool:
        if condition.type == "env_var":
            value = os.environ.get(condition.var)
            if value is None:
                return False
            return condition.value is None or value == condition.value
        if condition.type == "file_exists":
            return _resolve_path(condition.path, context).exists()
        if condition.type == "script":
            return await self._check_script(condition.script, condition.timeout, context)
        if condition.type == "tool_result_contains":
            if context.tool_result is None:
                return False
            return re.search(condition.pattern, context.tool_result) is not None
        logger.warning("Unknown condition type: %s", condition.type)
        return False

    async def _check_script(self, script: str, timeout: float, context: HookContext) -> bool:
        try:
            proc = await asyncio.create_subprocess_exec(
                self._shell, "-c", substitute_variables(script, context),
                cwd=str(context.work_dir) if context.work_dir else None,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error("Failed to check script condition: %s", e)
            return False
        try:
            return await asyncio.wait_for(proc.wait(), timeout=timeout) == 0
        except asyncio.TimeoutError:
            _kill(proc)
            await proc.wait()
            logger.warning("Script condition timed out after %ss", timeout)
            return False
        except asyncio.CancelledError:
            _kill(proc)
            raise

    # -- Execution ------------------------------------------------------------

    async def execute(self, hook: HookSpec, context: HookContext) -> None:
        """Run a hook's execution. Raises HookExecutionError on failure."""
        execution = hook.execution
        logger.debug("Executing hook: %s (type=%s)", hook.name, hook.trigger.type.value)
        if execution.type == "script":
            await self._execute_script(hook, execution, context)
        elif execution.type == "agent":
            await self._execute_agent(hook, execution, context)
        elif execution.type == "composite":
            await self._execute_composite(hook, execution, context)
        else:
            raise HookExecutionError(f"Unknown execution type: {execution.type}")

    async def _execute_script(self, hook: HookSpec, execution: ScriptExecution,
                              context: HookContext) -> None:
        script = self._script_content(hook, execution, context)
        exit_code = await self._run_shell(
            hook.name,
            substitute_variables(script, context),
            cwd=self._working_dir(execution.working_dir, context),
            env=self._environment(execution.environment, context),
            timeout=execution.timeout,
        )
        if exit_code != 0:
            raise HookExecutionError(f"script exited with code {exit_code}")
        logger.info("Hook executed successfully: %s", hook.name)

    async def _execute_agent(self, hook: HookSpec, execution: AgentExecution,
                             context: HookContext) -> None:
        if self.agent_runner is None:
            raise HookExecutionError("no agent runner configured for agent hooks")
        task = substitute_variables(execution.task, context)
        await call_maybe_async(self.agent_runner, execution.agent, task, context)
        logger.info("Hook agent '%s' finished: %s", execution.agent, hook.name)

    async def _execute_composite(self, hook: HookSpec, execution: CompositeExecution,
                                 context: HookContext) -> None:
        cwd = self._working_dir(execution.working_dir, context)
        env = self._environment(execution.environment, context)
        for index, step in enumerate(execution.steps, 1):
            label = step.description or f"step {index}"
            try:
                if step.type == "script":
                    exit_code = await self._run_shell(
                        hook.name, substitute_variables(step.script, context),
                        cwd=cwd, env=env, timeout=execution.timeout,
                    )
                    ok = exit_code == 0
                else:
                    if self.command_runner is None:
                        raise HookExecutionError("no command runner configured for command steps")
                    outcome = await call_maybe_async(
                        self.command_runner, substitute_variables(step.command, context), context
                    )
                    ok = outcome is not False
            except HookExecutionError:
                if not step.continue_on_failure:
                    raise
                ok = False

            if not ok:
                if step.continue_on_failure:
                    logger.warning("Hook %s: %s failed, continuing", hook.name, label)
                    continue
                raise HookExecutionError(f"composite {label} failed")

    # -- Helpers --------------------------------------------------------------

    def _script_content(self, hook: HookSpec, execution: ScriptExecution,
                        context: HookContext) -> str:
        if execution.script_file:
            path = Path(substitute_variables(execution.script_file, context)).expanduser()
            if not path.is_absolute():
                base = Path(hook.config_file_path).parent if hook.config_file_path else context.work_dir
                if base is not None:
                    path = Path(base) / path
            if not path.exists():
                raise HookExecutionError(f"Script file not found: {path}")
            return path.read_text(encoding="utf-8")
        return execution.script

    def _working_dir(self, working_dir: Optional[str], context: HookContext) -> Optional[str]:
        if working_dir:
            return str(_resolve_path(working_dir, context))
        return str(context.work_dir) if context.work_dir else None

    def _environment(self, extra: Dict[str, str], context: HookContext) -> Dict[str, str]:
        env = dict(os.environ)
        for key, value in extra.items():
            env[key] = substitute_variables(value, context)
        if context.tool_name is not None:
            env["HOOK_TOOL_NAME"] = context.tool_name
        if context.agent_name is not None:
            env["HOOK_AGENT_NAME"] = context.agent_name
        return env

    async def _run_shell(self, hook_name: str, script: str, *, cwd: Optional[str],
                         env: Dict[str, str], timeout: float) -> int:
        try:
            proc = await asyncio.create_subprocess_exec(
                self._shell, "-c", script,
                cwd=cwd,
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise HookExecutionError(f"failed to start script: {e}") from e

        try:
            output, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            _kill(proc)
            await proc.wait()
            raise HookExecutionError(f"script timed out after {timeout}s")
        except asyncio.CancelledError:
            _kill(proc)
            raise

        for line in output.decode("utf-8", errors="replace").splitlines():
            logger.info("[hook:%s] %s", hook_name, line)
        return proc.returncode

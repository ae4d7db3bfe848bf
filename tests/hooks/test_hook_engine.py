"""Tests for hooks.engine -- registration, matching and firing.

Covers:
- trigger filters: tools, file patterns, agent name, error pattern
- priority ordering and replace-by-name
- validation errors surface as HookValidationError
- disabled hooks and unmet conditions are skipped
- failing and slow hooks never block the caller
- background triggers and drain
"""

import asyncio

import pytest

from hooks.engine import HookEngine, hook_matches
from hooks.spec import HookContext, HookSpec, HookType, HookValidationError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class RecordingExecutor:
    """Executor stand-in: records hook names instead of spawning shells."""

    def __init__(self, conditions_ok=True, fail=(), delay=0.0):
        self.ran = []
        self.conditions_ok = conditions_ok
        self.fail = set(fail)
        self.delay = delay

    async def check_conditions(self, conditions, context):
        return self.conditions_ok

    async def execute(self, hook, context):
        if self.delay:
            await asyncio.sleep(self.delay)
        if hook.name in self.fail:
            raise RuntimeError(f"{hook.name} broke")
        self.ran.append(hook.name)


def _hook(name, hook_type="POST_TOOL_CALL", priority=0, timeout=60, **trigger):
    return {
        "name": name,
        "priority": priority,
        "trigger": {"type": hook_type, **trigger},
        "execution": {"type": "script", "script": "true", "timeout": timeout},
    }


def _engine(*hooks, **executor_kwargs):
    executor = RecordingExecutor(**executor_kwargs)
    engine = HookEngine(executor)
    for hook in hooks:
        engine.register(hook)
    return engine, executor


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

class TestHookMatches:
    def test_no_filters_match_everything(self):
        hook = HookSpec.model_validate(_hook("any"))
        assert hook_matches(hook, HookContext())

    def test_tool_filter(self):
        hook = HookSpec.model_validate(_hook("w", tools=["write_file"]))
        assert hook_matches(hook, HookContext(tool_name="write_file"))
        assert not hook_matches(hook, HookContext(tool_name="read_file"))
        assert not hook_matches(hook, HookContext())

    def test_file_patterns_match_name_or_full_path(self):
        hook = HookSpec.model_validate(_hook("py", file_patterns=["*.py", "docs/*"]))
        assert hook_matches(hook, HookContext(affected_files=["src/pkg/mod.py"]))
        assert hook_matches(hook, HookContext(affected_files=["docs/index.md"]))
        assert not hook_matches(hook, HookContext(affected_files=["README.md"]))
        assert not hook_matches(hook, HookContext(affected_files=[]))

    def test_agent_name_filter(self):
        hook = HookSpec.model_validate(_hook("sw", hook_type="POST_AGENT_SWITCH", agent_name="coder"))
        assert hook_matches(hook, HookContext(agent_name="coder"))
        assert not hook_matches(hook, HookContext(agent_name="planner"))

    def test_error_pattern_is_searched(self):
        hook = HookSpec.model_validate(_hook("err", hook_type="ON_ERROR", error_pattern="time(d)? ?out"))
        assert hook_matches(hook, HookContext(error_message="Tool shell timed out after 5s"))
        assert not hook_matches(hook, HookContext(error_message="permission denied"))
        assert not hook_matches(hook, HookContext())


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

class TestRegistration:
    def test_type_is_case_insensitive(self):
        engine, _ = _engine(_hook("a", hook_type="post_tool_call"))
        assert [h.name for h in engine.hooks(HookType.POST_TOOL_CALL)] == ["a"]

    def test_priority_order_highest_first(self):
        engine, _ = _engine(_hook("low", priority=1), _hook("high", priority=10), _hook("mid", priority=5))
        assert [h.name for h in engine.hooks(HookType.POST_TOOL_CALL)] == ["high", "mid", "low"]

    def test_same_name_replaces(self):
        engine, _ = _engine(_hook("fmt"), _hook("fmt", hook_type="PRE_TOOL_CALL"))
        assert engine.hooks(HookType.POST_TOOL_CALL) == []
        assert [h.name for h in engine.hooks(HookType.PRE_TOOL_CALL)] == ["fmt"]
        assert len(engine.all_hooks) == 1

    @pytest.mark.parametrize("bad", [
        {"name": "x", "trigger": {"type": "NOT_A_HOOK"}, "execution": {"type": "script", "script": "true"}},
        {"name": "x", "trigger": {"type": "PRE_USER_INPUT", "tools": ["ls"]},
         "execution": {"type": "script", "script": "true"}},
        {"name": "x", "trigger": {"type": "ON_ERROR", "error_pattern": "("},
         "execution": {"type": "script", "script": "true"}},
        {"name": "x", "trigger": {"type": "ON_ERROR"}, "execution": {"type": "script"}},
        {"name": "x", "trigger": {"type": "ON_ERROR"}, "execution": {"type": "composite", "steps": []}},
        {"name": "x", "trigger": {"type": "ON_ERROR"},
         "execution": {"type": "script", "script": "true", "timeout": 0}},
        {"name": "", "trigger": {"type": "ON_ERROR"}, "execution": {"type": "script", "script": "true"}},
    ])
    def test_invalid_specs_rejected(self, bad):
        with pytest.raises(HookValidationError):
            HookEngine(RecordingExecutor()).register(bad)

    def test_unregister(self):
        engine, _ = _engine(_hook("a"))
        assert engine.unregister("a") is True
        assert engine.unregister("a") is False
        assert engine.hooks(HookType.POST_TOOL_CALL) == []

    def test_reload_replaces_everything(self):
        engine, _ = _engine(_hook("old"))
        assert engine.reload([_hook("new1"), _hook("new2", hook_type="ON_ERROR")]) == 2
        assert engine.get("old") is None
        assert engine.statistics() == {
            "total": 2,
            "enabled": 2,
            "by_type": {"POST_TOOL_CALL": 1, "ON_ERROR": 1},
        }

    def test_enable_disable(self):
        engine, _ = _engine(_hook("a"))
        assert engine.disable("a") is True
        assert engine.get("a").enabled is False
        assert engine.enable("a") is True
        assert engine.get("a").enabled is True
        assert engine.disable("missing") is False


# ---------------------------------------------------------------------------
# Firing
# ---------------------------------------------------------------------------

class TestTrigger:
    @pytest.mark.asyncio
    async def test_runs_matching_hooks_in_priority_order(self):
        engine, executor = _engine(
            _hook("second", priority=1),
            _hook("first", priority=9),
            _hook("other_tool", priority=5, tools=["read_file"]),
        )
        count = await engine.trigger(HookType.POST_TOOL_CALL, HookContext(tool_name="write_file"))
        assert count == 2
        assert executor.ran == ["first", "second"]

    @pytest.mark.asyncio
    async def test_sets_hook_type_on_context(self):
        engine, _ = _engine(_hook("a"))
        ctx = HookContext()
        await engine.trigger(HookType.POST_TOOL_CALL, ctx)
        assert ctx.hook_type == HookType.POST_TOOL_CALL

    @pytest.mark.asyncio
    async def test_disabled_hook_skipped(self):
        engine, executor = _engine(_hook("a"))
        engine.disable("a")
        assert await engine.trigger(HookType.POST_TOOL_CALL) == 0
        assert executor.ran == []

    @pytest.mark.asyncio
    async def test_unmet_conditions_skip(self):
        engine, executor = _engine(_hook("a"), conditions_ok=False)
        assert await engine.trigger(HookType.POST_TOOL_CALL) == 0
        assert executor.ran == []

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_stop_others(self):
        engine, executor = _engine(_hook("bad", priority=2), _hook("good", priority=1), fail=["bad"])
        assert await engine.trigger(HookType.POST_TOOL_CALL) == 1
        assert executor.ran == ["good"]

    @pytest.mark.asyncio
    async def test_timeout_is_per_hook(self):
        engine, executor = _engine(_hook("slow", timeout=0.05), delay=0.5)
        assert await engine.trigger(HookType.POST_TOOL_CALL) == 0
        assert executor.ran == []

    @pytest.mark.asyncio
    async def test_no_hooks_is_noop(self):
        engine, _ = _engine()
        assert await engine.trigger(HookType.ON_SESSION_START) == 0

    @pytest.mark.asyncio
    async def test_background_and_drain(self):
        engine, executor = _engine(_hook("bg", hook_type="ON_SESSION_START"), delay=0.05)
        task = engine.trigger_background(HookType.ON_SESSION_START, HookContext())
        assert task is not None
        assert executor.ran == []
        await engine.drain()
        assert executor.ran == ["bg"]

    @pytest.mark.asyncio
    async def test_background_without_hooks_returns_none(self):
        engine, _ = _engine()
        assert engine.trigger_background(HookType.ON_SESSION_END) is None

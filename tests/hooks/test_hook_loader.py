"""Tests for hooks.loader -- layered YAML discovery."""

import textwrap
from pathlib import Path

from hooks.engine import HookEngine
from hooks.loader import HookLoader
from hooks.spec import HookType


def _write(directory: Path, filename: str, body: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


_FORMAT_HOOK = """\
    name: format
    description: {description}
    trigger:
      type: post_tool_call
      tools: [write_file]
      file_patterns: ["*.py"]
    execution:
      type: script
      script: black ${{MODIFIED_FILES}}
"""


class TestHookLoader:
    def test_missing_dirs_load_nothing(self, tmp_path):
        loader = HookLoader(user_dir=tmp_path / "none", project_dir=tmp_path / "proj")
        assert loader.load() == []

    def test_search_order(self, tmp_path):
        loader = HookLoader(builtin_dir=tmp_path / "b", user_dir=tmp_path / "u", project_dir=tmp_path / "p")
        assert loader.search_dirs == [tmp_path / "b", tmp_path / "u", tmp_path / "p" / ".jimi" / "hooks"]

    def test_load_file_sets_origin(self, tmp_path):
        path = _write(tmp_path, "format.yaml", _FORMAT_HOOK.format(description="user"))
        hook = HookLoader(user_dir=tmp_path).load_file(path)
        assert hook.name == "format"
        assert hook.type == HookType.POST_TOOL_CALL
        assert hook.config_file_path == str(path)

    def test_project_overrides_user_overrides_builtin(self, tmp_path):
        builtin, user, project = tmp_path / "builtin", tmp_path / "user", tmp_path / "project"
        _write(builtin, "format.yaml", _FORMAT_HOOK.format(description="builtin"))
        _write(user, "format.yml", _FORMAT_HOOK.format(description="user"))
        _write(project / ".jimi" / "hooks", "format.yaml", _FORMAT_HOOK.format(description="project"))
        hooks = HookLoader(builtin_dir=builtin, user_dir=user, project_dir=project).load()
        assert [(h.name, h.description) for h in hooks] == [("format", "project")]

    def test_invalid_files_skipped(self, tmp_path):
        _write(tmp_path, "a_good.yaml", _FORMAT_HOOK.format(description="ok"))
        _write(tmp_path, "b_broken.yaml", "name: [unclosed\n")
        _write(tmp_path, "c_invalid.yaml", "name: x\ntrigger:\n  type: NOPE\n")
        _write(tmp_path, "d_list.yaml", "- just\n- a list\n")
        _write(tmp_path, "notes.txt", "not a hook")
        hooks = HookLoader(user_dir=tmp_path).load_dir(tmp_path)
        assert [h.name for h in hooks] == ["format"]

    def test_load_into_replaces_engine_hooks(self, tmp_path):
        _write(tmp_path, "format.yaml", _FORMAT_HOOK.format(description="ok"))
        engine = HookEngine()
        engine.register({
            "name": "stale",
            "trigger": {"type": "ON_ERROR"},
            "execution": {"type": "script", "script": "true"},
        })
        assert HookLoader(user_dir=tmp_path).load_into(engine) == 1
        assert [h.name for h in engine.all_hooks] == ["format"]

    def test_ensure_user_dir(self, tmp_path):
        loader = HookLoader(user_dir=tmp_path / "hooks")
        assert loader.ensure_user_dir().is_dir()

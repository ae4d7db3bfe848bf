"""Layered YAML hook discovery.

Hooks are plain YAML files (``*.yaml`` / ``*.yml``, one HookSpec each) read
from three layers, later layers overriding same-named hooks from earlier
ones:

  1. built-in hooks shipped with an application (optional directory)
  2. user hooks:    $JIMI_HOME/hooks/
  3. project hooks: <project>/.jimi/hooks/

Files that fail to parse or validate are logged and skipped.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import ValidationError

from hooks.spec import HookSpec
from jimi_constants import JIMI_DIR_NAME, get_jimi_home

logger = logging.getLogger(__name__)

HOOK_FILE_SUFFIXES = (".yaml", ".yml")


class HookLoader:
    def __init__(self, *, project_dir: Optional[Path] = None, builtin_dir: Optional[Path] = None,
                 user_dir: Optional[Path] = None):
        self.builtin_dir = Path(builtin_dir) if builtin_dir else None
        self.user_dir = Path(user_dir) if user_dir else get_jimi_home() / "hooks"
        self.project_dir = Path(project_dir) if project_dir else None

    @property
    def search_dirs(self) -> List[Path]:
        dirs = []
        if self.builtin_dir is not None:
            dirs.append(self.builtin_dir)
        dirs.append(self.user_dir)
        if self.project_dir is not None:
            dirs.append(self.project_dir / JIMI_DIR_NAME / "hooks")
        return dirs

    def load(self) -> List[HookSpec]:
        """Read all layers. Later layers replace earlier hooks with the same name."""
        merged: Dict[str, HookSpec] = {}
        for directory in self.search_dirs:
            for hook in self.load_dir(directory):
                if hook.name in merged:
                    logger.debug("Hook '%s' overridden by %s", hook.name, hook.config_file_path)
                merged[hook.name] = hook
        return list(merged.values())

    def load_dir(self, directory: Path) -> List[HookSpec]:
        if not directory.is_dir():
            return []
        hooks = []
        for path in sorted(directory.iterdir()):
            if not path.is_file() or path.suffix not in HOOK_FILE_SUFFIXES:
                continue
            hook = self.load_file(path)
            if hook is not None:
                hooks.append(hook)
        logger.debug("Loaded %d hooks from %s", len(hooks), directory)
        return hooks

    def load_file(self, path: Path) -> Optional[HookSpec]:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Skipping hook file %s: %s", path, e)
            return None
        if not data or not isinstance(data, dict):
            logger.warning("Skipping hook file %s: expected a mapping", path)
            return None
        data.setdefault("config_file_path", str(path))
        try:
            return HookSpec.model_validate(data)
        except ValidationError as e:
            logger.warning("Skipping invalid hook %s: %s", path, e)
            return None

    def load_into(self, engine) -> int:
        """Replace the engine's hooks with the discovered ones."""
        count = engine.reload(self.load())
        logger.info("Loaded %d hooks", count)
        return count

    def ensure_user_dir(self) -> Path:
        self.user_dir.mkdir(parents=True, exist_ok=True)
        return self.user_dir

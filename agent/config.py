"""Agent configuration: defaults, config.yaml, .env files and environment.

Resolution order (later wins):
    1. defaults from jimi_constants
    2. $JIMI_HOME/config.yaml (``agent:`` section, or top level)
    3. environment variables, after loading $JIMI_HOME/.env and then the
       project .env with python-dotenv (already-set variables are kept)

config.yaml example:

    agent:
      model: gpt-4o
      max_steps_per_run: 50
      reserved_context_tokens: 40000
      tools: [read_file, write_file]
      approved_tools: [read_file]
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from jimi_constants import (
    DEFAULT_MAX_REPEATED_TOOL_ERRORS,
    DEFAULT_MAX_STEPS_PER_RUN,
    DEFAULT_MAX_THINKING_STEPS,
    DEFAULT_MODEL,
    DEFAULT_RESERVED_CONTEXT_TOKENS,
    MAX_TOOL_RESULT_CHARS,
    get_jimi_home,
)

logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""
    pass


@dataclass
class AgentConfig:
    model: str = DEFAULT_MODEL
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    system_prompt: str = ""
    agent_name: str = "default"
    max_steps_per_run: int = DEFAULT_MAX_STEPS_PER_RUN
    max_thinking_steps: int = DEFAULT_MAX_THINKING_STEPS
    max_repeated_tool_errors: int = DEFAULT_MAX_REPEATED_TOOL_ERRORS
    reserved_context_tokens: int = DEFAULT_RESERVED_CONTEXT_TOKENS
    # None: resolve from model metadata
    model_max_context: Optional[int] = None
    compaction_enabled: bool = True
    max_tool_result_chars: int = MAX_TOOL_RESULT_CHARS
    tool_timeout: Optional[float] = None
    yolo: bool = False
    # Tool allow-list exposed to the model; None exposes every registered tool
    tools: Optional[List[str]] = None
    approved_tools: List[str] = field(default_factory=list)
    sessions_dir: Path = field(default_factory=lambda: get_jimi_home() / "sessions")
    work_dir: Optional[Path] = None


# env var -> (field, converter)
_ENV_OVERRIDES = {
    "JIMI_MODEL": ("model", str),
    # JIMI_* entries come after the OPENAI_* fallbacks so they win
    "OPENAI_BASE_URL": ("base_url", str),
    "JIMI_BASE_URL": ("base_url", str),
    "OPENAI_API_KEY": ("api_key", str),
    "JIMI_API_KEY": ("api_key", str),
    "JIMI_MAX_STEPS": ("max_steps_per_run", int),
    "JIMI_MAX_THINKING_STEPS": ("max_thinking_steps", int),
    "JIMI_MAX_REPEATED_TOOL_ERRORS": ("max_repeated_tool_errors", int),
    "JIMI_RESERVED_CONTEXT_TOKENS": ("reserved_context_tokens", int),
    "MODEL_CONTEXT_LENGTH": ("model_max_context", int),
    "CONTEXT_COMPRESSION_ENABLED": ("compaction_enabled", None),
    "JIMI_YOLO": ("yolo", None),
    "JIMI_TOOL_TIMEOUT": ("tool_timeout", float),
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def load_env_files(project_dir: Optional[Path] = None) -> List[Path]:
    """Load $JIMI_HOME/.env, then <project>/.env. Returns the files loaded."""
    candidates = [get_jimi_home() / ".env"]
    if project_dir is not None:
        candidates.append(Path(project_dir) / ".env")
    loaded = []
    for env_file in candidates:
        if not env_file.exists():
            continue
        try:
            load_dotenv(dotenv_path=env_file, encoding="utf-8")
        except UnicodeDecodeError:
            load_dotenv(dotenv_path=env_file, encoding="latin-1")
        logger.info("Loaded environment variables from %s", env_file)
        loaded.append(env_file)
    return loaded


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML in {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigValidationError(f"{config_path} must contain a mapping")
    section = data.get("agent", data)
    if not isinstance(section, dict):
        raise ConfigValidationError(f"'agent' section in {config_path} must be a mapping")
    return section


def _coerce(name: str, value: Any) -> Any:
    if value is None:
        return None
    if name in ("compaction_enabled", "yolo"):
        return _parse_bool(value)
    if name in ("sessions_dir", "work_dir"):
        return Path(value).expanduser()
    if name in ("tools", "approved_tools"):
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        return list(value)
    return value


def load_config(config_path: Optional[Path] = None, project_dir: Optional[Path] = None,
                overrides: Optional[Dict[str, Any]] = None) -> AgentConfig:
    """Build an AgentConfig from config.yaml, .env files and the environment."""
    load_env_files(project_dir)

    known = {f.name for f in fields(AgentConfig)}
    values: Dict[str, Any] = {}

    config_path = Path(config_path) if config_path else get_jimi_home() / "config.yaml"
    if config_path.exists():
        for key, value in _read_yaml(config_path).items():
            if key not in known:
                logger.warning("Ignoring unknown config key '%s' in %s", key, config_path)
                continue
            values[key] = value

    for env_var, (name, converter) in _ENV_OVERRIDES.items():
        raw = os.getenv(env_var)
        if raw is None or raw == "":
            continue
        if converter is None:
            values[name] = raw
            continue
        try:
            values[name] = converter(raw)
        except ValueError as e:
            raise ConfigValidationError(f"Invalid value for {env_var}: {raw!r}") from e

    values.update(overrides or {})
    if project_dir is not None:
        values.setdefault("work_dir", project_dir)

    config = AgentConfig(**{k: _coerce(k, v) for k, v in values.items()})
    validate_config(config)
    return config


def validate_model_config(model: str) -> Tuple[bool, str]:
    """Validate that a model string is usable.

    Returns:
        (is_valid, message) tuple
    """
    if not model:
        return (False, "No model specified")
    if "/" in model:
        provider, model_name = model.split("/", 1)
        return (True, f"Provider: {provider}, Model: {model_name}")
    return (True, f"Model: {model}")


def validate_config(config: AgentConfig) -> None:
    """Raise ConfigValidationError listing every problem found."""
    errors = []
    ok, message = validate_model_config(config.model)
    if not ok:
        errors.append(message)
    if config.max_steps_per_run < 1:
        errors.append("max_steps_per_run must be >= 1")
    if config.max_thinking_steps < 1:
        errors.append("max_thinking_steps must be >= 1")
    if config.max_repeated_tool_errors < 1:
        errors.append("max_repeated_tool_errors must be >= 1")
    if config.reserved_context_tokens < 0:
        errors.append("reserved_context_tokens must be >= 0")
    if config.max_tool_result_chars < 1:
        errors.append("max_tool_result_chars must be >= 1")
    if config.tool_timeout is not None and config.tool_timeout <= 0:
        errors.append("tool_timeout must be positive")
    if config.model_max_context is not None:
        if config.model_max_context <= config.reserved_context_tokens:
            errors.append(
                f"model_max_context ({config.model_max_context}) must exceed "
                f"reserved_context_tokens ({config.reserved_context_tokens})"
            )
    if errors:
        raise ConfigValidationError("; ".join(errors))

"""Shared constants for Jimi Agent.

Import-safe module with no dependencies - can be imported from anywhere
without risk of circular imports.
"""

import os
from pathlib import Path

OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"

# Step loop limits
DEFAULT_MAX_STEPS_PER_RUN = 100
DEFAULT_MAX_THINKING_STEPS = 5
# Identical failing tool calls in a row before the run is stopped
DEFAULT_MAX_REPEATED_TOOL_ERRORS = 3

# Compaction fires once token_count > model_max_context - reserved budget
DEFAULT_RESERVED_CONTEXT_TOKENS = 50_000

# Tool output past this many characters is cut and flagged as truncated
MAX_TOOL_RESULT_CHARS = 100_000

# Hooks
DEFAULT_HOOK_TIMEOUT_SECONDS = 60
SCRIPT_CONDITION_TIMEOUT_SECONDS = 5

JIMI_DIR_NAME = ".jimi"


def get_jimi_home() -> Path:
    """Return the Jimi home directory ($JIMI_HOME, default ~/.jimi)."""
    return Path(os.getenv("JIMI_HOME", Path.home() / JIMI_DIR_NAME))

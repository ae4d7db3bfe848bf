"""Model metadata, context lengths, and token estimation utilities.

Pure utility functions with no AgentLoop dependency. Used by the compaction
trigger to resolve the model's context window and to re-estimate the
history size after a compaction.
"""

import logging
import os
import time
from typing import Any, Dict, Optional, Sequence

import requests

from agent.messages import Message

logger = logging.getLogger(__name__)

_model_metadata_cache: Dict[str, Dict[str, Dict[str, Any]]] = {}
_model_metadata_cache_time: Dict[str, float] = {}
_MODEL_CACHE_TTL = 3600

# Conservative floor for unknown models.
# Override with MODEL_CONTEXT_LENGTH env var if needed.
SAFE_DEFAULT_CONTEXT_LENGTH = 8192

DEFAULT_CONTEXT_LENGTHS = {
    "claude-opus-4": 200000,
    "claude-sonnet-4": 200000,
    "claude-haiku-4.5": 200000,
    "gpt-4o": 128000,
    "gpt-4o-mini": 128000,
    "gpt-4-turbo": 128000,
    "gpt-4.1": 1047576,
    "o3": 200000,
    "gemini-2.0-flash": 1048576,
    "gemini-2.5-pro": 1048576,
    "llama-3.3-70b-instruct": 131072,
    "deepseek-chat": 65536,
    "kimi-k2": 131072,
    "moonshot-v1-128k": 131072,
    "qwen-2.5-72b-instruct": 32768,
}


def _get_env_context_length() -> Optional[int]:
    env_override = os.getenv("MODEL_CONTEXT_LENGTH")
    if env_override:
        try:
            return int(env_override)
        except ValueError:
            logger.warning(f"Invalid MODEL_CONTEXT_LENGTH value: {env_override}, ignoring")
    return None


def fetch_model_metadata(base_url: str, api_key: Optional[str] = None,
                         force_refresh: bool = False) -> Dict[str, Dict[str, Any]]:
    """Fetch model listings from an OpenAI-compatible /models endpoint (cached for 1 hour).

    Only entries that advertise a ``context_length`` are useful here; plain
    OpenAI listings do not, OpenRouter and most local servers do.
    """
    cached = _model_metadata_cache.get(base_url)
    if not force_refresh and cached is not None and \
            (time.time() - _model_metadata_cache_time.get(base_url, 0)) < _MODEL_CACHE_TTL:
        return cached

    headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
    try:
        response = requests.get(f"{base_url.rstrip('/')}/models", headers=headers, timeout=10)
        response.raise_for_status()
        data = response.json()

        cache = {}
        for model in data.get("data", []):
            model_id = model.get("id", "")
            if not model_id:
                continue
            cache[model_id] = {
                "context_length": model.get("context_length"),
                "name": model.get("name", model_id),
            }

        _model_metadata_cache[base_url] = cache
        _model_metadata_cache_time[base_url] = time.time()
        logger.debug("Fetched metadata for %s models from %s", len(cache), base_url)
        return cache

    except Exception as e:
        logger.warning(f"Failed to fetch model metadata from {base_url}: {e}")
        return cached or {}


def get_model_context_length(model: str, base_url: Optional[str] = None,
                             api_key: Optional[str] = None) -> int:
    """Get the context length for a model.

    Resolution order:
    1. MODEL_CONTEXT_LENGTH env var (user override)
    2. Endpoint metadata (live lookup, only when base_url is given)
    3. Built-in DEFAULT_CONTEXT_LENGTHS table (known models)
    4. SAFE_DEFAULT_CONTEXT_LENGTH (8192 - conservative floor)
    """
    env_length = _get_env_context_length()
    if env_length:
        return env_length

    if base_url:
        metadata = fetch_model_metadata(base_url, api_key)
        length = metadata.get(model, {}).get("context_length")
        if length:
            return int(length)

    bare = model.split("/")[-1]
    for default_model, length in DEFAULT_CONTEXT_LENGTHS.items():
        if bare.startswith(default_model):
            return length

    logger.warning(
        f"Unknown model '{model}' - using conservative context length of {SAFE_DEFAULT_CONTEXT_LENGTH:,} tokens. "
        f"Set MODEL_CONTEXT_LENGTH env var to override if your model supports more."
    )
    return SAFE_DEFAULT_CONTEXT_LENGTH


def estimate_tokens_rough(text: str) -> int:
    """Rough token estimate (~4 chars/token) for pre-flight checks."""
    if not text:
        return 0
    return len(text) // 4


def estimate_messages_tokens_rough(messages: Sequence[Message]) -> int:
    """Rough token estimate for a message list."""
    total_chars = sum(len(str(msg.to_openai())) for msg in messages)
    return total_chars // 4

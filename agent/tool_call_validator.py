"""Tool-call hygiene: structural validation and argument repair.

Models occasionally emit tool calls with a missing id or name, reuse an id
within one turn, or produce almost-JSON arguments (``null`` glued to the
front, double-escaped strings, bare keys, a missing closing brace). The
loop drops structurally broken calls before recording the assistant turn;
the dispatcher repairs arguments before decoding them.
"""

import json
import logging
import re
from typing import Any, Dict, List, Sequence, Tuple

from agent.messages import ToolCall

logger = logging.getLogger(__name__)

_BARE_KEY_RE = re.compile(r'([{,]\s*)([A-Za-z_][\w\-]*)\s*:')
_ILLEGAL_ESCAPE_RE = re.compile(r'\\(?!["\\/bfnrtu])')


def filter_valid_tool_calls(tool_calls: Sequence[ToolCall]) -> Tuple[List[ToolCall], List[ToolCall]]:
    """Split tool calls into (valid, dropped).

    A call is dropped when its id or function name is empty, or when its id
    repeats an earlier call of the same turn.
    """
    valid: List[ToolCall] = []
    dropped: List[ToolCall] = []
    seen = set()
    for tc in tool_calls:
        if not tc.id or not tc.function.name:
            logger.error("Dropping malformed tool call (id=%r, name=%r)", tc.id, tc.function.name)
            dropped.append(tc)
            continue
        if tc.id in seen:
            logger.error("Dropping tool call with duplicate id %s (%s)", tc.id, tc.function.name)
            dropped.append(tc)
            continue
        seen.add(tc.id)
        valid.append(tc)
    return valid, dropped


def _loads_object(text: str):
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return value


def _strip_null_affixes(text: str) -> str:
    original = text
    while text.startswith("null"):
        text = text[4:].strip()
    while text.endswith("null"):
        text = text[:-4].strip()
    if text != original and text[:1] in ("{", "[", '"'):
        logger.warning("Removed stray 'null' from tool arguments")
        return text
    return original


def _unwrap_double_escaped(text: str) -> str:
    if len(text) > 2 and text.startswith('"') and text.endswith('"'):
        inner = text[1:-1].replace('\\"', '"').replace("\\\\", "\\")
        if inner.startswith(("{", "[")) and inner.endswith(("}", "]")):
            return inner
    if '\\"' in text and not text.startswith('"'):
        inner = text.replace('\\"', '"')
        if inner.startswith(("{", "[")) and inner.endswith(("}", "]")):
            return inner
    return text


def _balance_brackets(text: str) -> str:
    stack = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack and stack[-1] == ch:
            stack.pop()
    if in_string:
        text += '"'
    return text + "".join(reversed(stack))


def _quote_bare_keys(text: str) -> str:
    """Quote bare object keys, leaving string literals untouched."""
    out = []
    start = 0
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
                out.append(text[start:i + 1])
                start = i + 1
            continue
        if ch == '"':
            out.append(_BARE_KEY_RE.sub(r'\1"\2":', text[start:i]))
            start = i
            in_string = True
    tail = text[start:]
    out.append(tail if in_string else _BARE_KEY_RE.sub(r'\1"\2":', tail))
    return "".join(out)


def normalize_arguments(arguments: str) -> str:
    """Best-effort repair of a model-produced arguments string into JSON text."""
    if arguments is None or not arguments.strip():
        return "{}"

    text = arguments.strip()
    value = _loads_object(text)
    if isinstance(value, dict):
        return text
    # JSON-encoded string that itself holds JSON
    if isinstance(value, str) and value.strip().startswith(("{", "[")):
        text = value.strip()
        if isinstance(_loads_object(text), dict):
            return text

    logger.debug("Tool arguments are not valid JSON, normalizing: %s", text[:200])
    text = _strip_null_affixes(text)
    text = _unwrap_double_escaped(text)
    text = _quote_bare_keys(text)
    text = _balance_brackets(text)
    if _loads_object(text) is None:
        text = _ILLEGAL_ESCAPE_RE.sub(r"\\\\", text)
    return text


def parse_arguments(arguments: str) -> Dict[str, Any]:
    """Normalize and decode tool arguments. Raises ValueError if not a JSON object."""
    normalized = normalize_arguments(arguments)
    try:
        value = json.loads(normalized)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in tool arguments: {e}") from e
    if not isinstance(value, dict):
        raise ValueError(f"Tool arguments must be a JSON object, got {type(value).__name__}")
    return value

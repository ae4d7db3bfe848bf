"""Session persistence -- append-only JSONL mirror of a task's history.

Owns session_id and the session file path, keeping them in sync. Each
history mutation becomes one JSON line:

    {"type": "message", "data": {...Message...}}
    {"type": "token",   "data": 1234}
    {"type": "reset",   "data": [...]}    # history replaced by this snapshot

Replaying the lines in order rebuilds the live history, so the file is never
rewritten. Checkpoints themselves are not persisted; after a restore the
store starts a fresh checkpoint series.

Dependencies:
    agent.messages -- Message
    (No imports from run_agent.py)
"""

import json
import logging
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

from pydantic import ValidationError

from agent.messages import Message

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"


class SessionPersister:
    """Mirrors HistoryStore mutations to ``session_<id>.jsonl``.

    Args:
        session_id: Session identifier; generated when omitted.
        sessions_dir: Directory holding the JSONL files.

    Write methods raise OSError on I/O failure; the HistoryStore catches and
    logs those so persistence problems never interrupt a task.
    """

    def __init__(self, *, sessions_dir: Path, session_id: str = None):
        self._sessions_dir = Path(sessions_dir)
        self._lock = threading.Lock()
        self._session_id = session_id or new_session_id()
        # Atomic: session_file always matches session_id
        self._session_file = self._sessions_dir / f"session_{self._session_id}.jsonl"

    # -- Properties -----------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @session_id.setter
    def session_id(self, value: str):
        """Atomically update both session_id and session_file."""
        self._session_id = value
        self._session_file = self._sessions_dir / f"session_{value}.jsonl"

    @property
    def session_file(self) -> Path:
        return self._session_file

    # -- Writes ---------------------------------------------------------------

    def append_messages(self, messages: Sequence[Message]) -> None:
        self._write([
            {"type": "message", "data": msg.model_dump(mode="json", exclude_none=True)}
            for msg in messages
        ])

    def update_token_count(self, count: int) -> None:
        self._write([{"type": "token", "data": count}])

    def record_reset(self, messages: Sequence[Message]) -> None:
        self._write([{
            "type": "reset",
            "data": [msg.model_dump(mode="json", exclude_none=True) for msg in messages],
        }])

    def clear(self) -> None:
        with self._lock:
            if self._session_file.exists():
                self._session_file.unlink()

    def _write(self, records: List[Dict[str, Any]]) -> None:
        lines = "".join(
            json.dumps(record, ensure_ascii=False, default=str) + "\n" for record in records
        )
        with self._lock:
            self._sessions_dir.mkdir(parents=True, exist_ok=True)
            with open(self._session_file, "a", encoding="utf-8") as f:
                f.write(lines)

    # -- Restore --------------------------------------------------------------

    def restore(self) -> Tuple[List[Message], int]:
        """Replay the session file. Returns (messages, token_count).

        Unreadable lines are logged and skipped. A missing file restores an
        empty history.
        """
        messages: List[Message] = []
        token_count = 0
        if not self._session_file.exists():
            return messages, token_count

        with self._lock:
            with open(self._session_file, encoding="utf-8") as f:
                lines = f.readlines()

        for lineno, line in enumerate(lines, 1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
                kind = record.get("type")
                data = record.get("data")
                if kind == "message":
                    messages.append(Message.model_validate(data))
                elif kind == "token":
                    token_count = int(data)
                elif kind == "reset":
                    messages = [Message.model_validate(item) for item in data]
                else:
                    logger.warning("%s:%d: unknown record type %r", self._session_file.name, lineno, kind)
            except (json.JSONDecodeError, ValidationError, TypeError, ValueError, AttributeError) as e:
                logger.warning("%s:%d: skipping corrupt record: %s", self._session_file.name, lineno, e)

        logger.debug("Restored %d messages from %s", len(messages), self._session_file)
        return messages, token_count

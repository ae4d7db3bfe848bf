"""Checkpointable conversation history for a single task.

The store holds the live message list, the current token count, and a set
of write-once checkpoints (full snapshots keyed by integer id). Readers
always receive copies. Every mutation is mirrored to an optional persister;
mirror failures are logged and never surface to the caller.
"""

import logging
import threading
from typing import Dict, List, Optional, Sequence, Tuple, Union

from agent.messages import Message, Role

logger = logging.getLogger(__name__)


class HistoryError(ValueError):
    """Raised when an append would break the tool-call pairing invariant."""


class HistoryStore:
    def __init__(self, persister=None, messages: Optional[Sequence[Message]] = None,
                 token_count: int = 0):
        self._lock = threading.RLock()
        self._persister = persister
        self._messages: List[Message] = list(messages or [])
        self._token_count = token_count
        self._checkpoints: Dict[int, Tuple[Message, ...]] = {}

    @classmethod
    def restore(cls, persister) -> "HistoryStore":
        """Build a store from a persister's saved session."""
        messages, token_count = persister.restore()
        logger.info("Restored history: %d messages, %d tokens", len(messages), token_count)
        return cls(persister=persister, messages=messages, token_count=token_count)

    # -- Reads ----------------------------------------------------------------

    def history(self) -> List[Message]:
        with self._lock:
            return list(self._messages)

    @property
    def token_count(self) -> int:
        return self._token_count

    def __len__(self) -> int:
        return len(self._messages)

    def has_checkpoint(self, checkpoint_id: int) -> bool:
        with self._lock:
            return checkpoint_id in self._checkpoints

    def checkpoint_ids(self) -> List[int]:
        with self._lock:
            return sorted(self._checkpoints)

    # -- Writes ---------------------------------------------------------------

    def append(self, messages: Union[Message, Sequence[Message]]) -> None:
        """Append one message or a batch, all or nothing.

        Tool messages must answer a tool call of the closest preceding
        assistant message; tool messages of the same batch may sit between.
        """
        batch = [messages] if isinstance(messages, Message) else list(messages)
        if not batch:
            return
        with self._lock:
            self._check_tool_pairing(batch)
            self._messages.extend(batch)
        self._mirror("append_messages", batch)

    def update_token_count(self, count: int) -> None:
        with self._lock:
            self._token_count = count
        self._mirror("update_token_count", count)

    def checkpoint(self, checkpoint_id: Optional[int] = None) -> int:
        """Snapshot the current history. Returns the checkpoint id.

        With no id the next free id is used. Existing checkpoints are never
        overwritten.
        """
        with self._lock:
            if checkpoint_id is None:
                checkpoint_id = max(self._checkpoints) + 1 if self._checkpoints else 0
            if checkpoint_id in self._checkpoints:
                logger.warning("Checkpoint %d already exists; keeping the original", checkpoint_id)
                return checkpoint_id
            self._checkpoints[checkpoint_id] = tuple(self._messages)
        logger.debug("Checkpoint %d created (%d messages)", checkpoint_id, len(self._messages))
        return checkpoint_id

    def revert_to(self, checkpoint_id: int) -> bool:
        """Replace the live history with a checkpoint. False if it does not exist."""
        with self._lock:
            snapshot = self._checkpoints.get(checkpoint_id)
            if snapshot is None:
                logger.warning("Cannot revert: checkpoint %d not found", checkpoint_id)
                return False
            self._messages = list(snapshot)
        logger.debug("Reverted to checkpoint %d (%d messages)", checkpoint_id, len(snapshot))
        self._mirror("record_reset", list(snapshot))
        return True

    def clear(self) -> None:
        with self._lock:
            self._messages = []
            self._checkpoints = {}
            self._token_count = 0
        self._mirror("record_reset", [])
        self._mirror("update_token_count", 0)

    # -- Internals ------------------------------------------------------------

    def _check_tool_pairing(self, batch: List[Message]) -> None:
        combined = self._messages + batch
        offset = len(self._messages)
        for i, msg in enumerate(batch, start=offset):
            if msg.role != Role.TOOL:
                continue
            j = i - 1
            while j >= 0 and combined[j].role == Role.TOOL:
                j -= 1
            owner = combined[j] if j >= 0 else None
            if owner is None or owner.role != Role.ASSISTANT or not owner.tool_calls:
                raise HistoryError(
                    f"Tool message {msg.tool_call_id!r} does not follow an assistant tool call"
                )
            if msg.tool_call_id not in {tc.id for tc in owner.tool_calls}:
                raise HistoryError(
                    f"Tool message {msg.tool_call_id!r} matches no tool call of the preceding assistant message"
                )

    def _mirror(self, method: str, *args) -> None:
        if self._persister is None:
            return
        try:
            getattr(self._persister, method)(*args)
        except Exception as e:
            logger.warning("History persistence (%s) failed: %s", method, e)

"""Tests for agent.session_persister -- JSONL mirror and restore.

Run with:
    python -m pytest tests/agent/test_session_persister.py -v
"""

import json

import pytest

from agent.history import HistoryStore
from agent.messages import FunctionCall, ImagePart, Message, TextPart, ToolCall
from agent.session_persister import SessionPersister, new_session_id


@pytest.fixture
def persister(tmp_path):
    return SessionPersister(session_id="test_session", sessions_dir=tmp_path)


def _records(persister):
    lines = persister.session_file.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


# ---------------------------------------------------------------------------
# 1. Session id / file path
# ---------------------------------------------------------------------------

class TestSessionFile:
    def test_file_follows_session_id(self, persister, tmp_path):
        assert persister.session_file == tmp_path / "session_test_session.jsonl"
        persister.session_id = "other"
        assert persister.session_file == tmp_path / "session_other.jsonl"

    def test_generated_session_id(self, tmp_path):
        p = SessionPersister(sessions_dir=tmp_path)
        assert p.session_id
        assert new_session_id() != new_session_id()


# ---------------------------------------------------------------------------
# 2. Writes
# ---------------------------------------------------------------------------

class TestWrites:
    def test_records_are_appended(self, persister):
        persister.append_messages([Message.user("hi")])
        persister.update_token_count(12)
        persister.record_reset([Message.user("base")])

        records = _records(persister)
        assert [r["type"] for r in records] == ["message", "token", "reset"]
        assert records[0]["data"]["role"] == "user"
        assert records[0]["data"]["content"] == "hi"
        assert records[1]["data"] == 12
        assert records[2]["data"][0]["content"] == "base"

    def test_creates_missing_directory(self, tmp_path):
        p = SessionPersister(session_id="s", sessions_dir=tmp_path / "nested" / "dir")
        p.append_messages([Message.user("x")])
        assert p.session_file.exists()

    def test_clear_removes_file(self, persister):
        persister.append_messages([Message.user("x")])
        persister.clear()
        assert not persister.session_file.exists()


# ---------------------------------------------------------------------------
# 3. Restore
# ---------------------------------------------------------------------------

class TestRestore:
    def test_missing_file_restores_empty(self, persister):
        assert persister.restore() == ([], 0)

    def test_round_trip_through_history_store(self, persister):
        store = HistoryStore(persister=persister)
        call = ToolCall(id="c1", function=FunctionCall(name="read_file", arguments='{"path": "a.py"}'))
        store.append(Message.user([TextPart(text="look"), ImagePart(url="data:image/png;base64,AAA")]))
        store.append(Message.assistant(tool_calls=[call]))
        store.append(Message.tool_result("c1", "contents", name="read_file"))
        store.update_token_count(321)

        restored = HistoryStore.restore(persister)
        assert restored.history() == store.history()
        assert restored.token_count == 321

    def test_revert_records_truncate_on_replay(self, persister):
        store = HistoryStore(persister=persister)
        store.append(Message.user("base"))
        store.checkpoint(0)
        store.append([Message.assistant("a"), Message.user("b")])
        store.revert_to(0)
        store.append(Message.assistant("summary"))

        messages, _ = persister.restore()
        assert [m.text for m in messages] == ["base", "summary"]

    def test_revert_after_compaction_replays_checkpoint_contents(self, persister):
        store = HistoryStore(persister=persister)
        store.append(Message.user("task"))
        store.checkpoint(0)
        store.append([Message.assistant("a1"), Message.user("u2")])
        store.checkpoint(1)
        store.append(Message.assistant("a2"))
        store.revert_to(0)
        store.append(Message.assistant("summary"))
        store.revert_to(1)

        restored = HistoryStore.restore(persister)
        assert [m.text for m in store.history()] == ["task", "a1", "u2"]
        assert restored.history() == store.history()

    def test_corrupt_lines_are_skipped(self, persister):
        persister.append_messages([Message.user("good")])
        with open(persister.session_file, "a", encoding="utf-8") as f:
            f.write("{not json\n")
            f.write(json.dumps({"type": "message", "data": {"role": "wizard"}}) + "\n")
        persister.append_messages([Message.assistant("also good")])

        messages, _ = persister.restore()
        assert [m.text for m in messages] == ["good", "also good"]

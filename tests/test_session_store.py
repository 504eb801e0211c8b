"""
Tests for the session store and its persistence ports.

Run with: pytest tests/test_session_store.py -v
"""

import json
from itertools import count

import pytest

from chatwire.platform import FileKeyValueStore, MemoryKeyValueStore, generate_id
from chatwire.session.store import (
    CURRENT_SESSION_KEY,
    SESSIONS_KEY,
    Message,
    Role,
    SessionStore,
    derive_title,
)


@pytest.fixture
def ids():
    counter = count(1)
    return lambda: f"session-{next(counter)}"


@pytest.fixture
def store(storage, ids) -> SessionStore:
    return SessionStore(storage, id_factory=ids)


def user_messages(n: int, start: int = 0) -> list[Message]:
    return [Message.user(f"m{i}") for i in range(start, start + n)]


class TestFreshStore:
    """Tests for a store with no persisted state."""

    def test_generates_current_id(self, store):
        assert store.current_session_id == "session-1"
        assert store.list_sessions() == []

    def test_current_session_is_unsaved_and_empty(self, store):
        session = store.get_current_session()
        assert session.id == "session-1"
        assert session.messages == []
        assert session.title is None
        assert store.get_session("session-1") is None

    def test_default_ids_are_unique(self):
        assert len({generate_id() for _ in range(100)}) == 100

    def test_invalid_max_messages(self, storage):
        with pytest.raises(ValueError):
            SessionStore(storage, max_messages=0)


class TestAppendMessages:
    """Tests for append, truncation and title derivation."""

    def test_first_append_creates_session(self, store):
        session = store.append_messages("session-1", [Message.user("Hello there")])

        assert session.title == "Hello there"
        assert [s.id for s in store.list_sessions()] == ["session-1"]
        assert store.get_history() == [Message.user("Hello there")]

    def test_long_title_is_ellipsized(self, store):
        text = "x" * 80
        session = store.append_messages("session-1", [Message.user(text)])
        assert session.title == "x" * 50 + "..."
        assert derive_title("y" * 50) == "y" * 50

    def test_title_stable_after_truncation(self, storage, ids):
        store = SessionStore(storage, max_messages=3, id_factory=ids)
        store.append_messages("s", [Message.user("original question")])
        store.append_messages("s", user_messages(5))

        session = store.get_session("s")
        assert [m.content for m in session.messages] == ["m2", "m3", "m4"]
        assert session.title == "original question"

    def test_truncates_to_most_recent_fifty(self, store):
        store.append_messages("s", user_messages(50))
        store.append_messages("s", user_messages(7, start=50))

        contents = [m.content for m in store.get_session("s").messages]
        assert len(contents) == 50
        assert contents == [f"m{i}" for i in range(7, 57)]

    def test_empty_append_leaves_title_unset(self, store):
        session = store.append_messages("s", [])
        assert session.title is None
        assert session.messages == []

    def test_other_sessions_untouched(self, store):
        store.append_messages("a", [Message.user("for a")])
        store.append_messages("b", [Message.user("for b")])
        store.append_messages("a", [Message.assistant("reply a")])

        assert [m.content for m in store.get_session("b").messages] == ["for b"]
        assert len(store.get_session("a").messages) == 2


class TestHistory:
    """Tests for the current-session history helpers."""

    def test_save_then_get_round_trip(self, store):
        messages = [Message.user("q"), Message.assistant("a"), Message(Role.SYSTEM, "note")]
        store.save_history(messages)
        assert store.get_history() == messages

    def test_save_history_truncates(self, store):
        messages = user_messages(60)
        store.save_history(messages)
        assert store.get_history() == messages[-50:]

    def test_save_history_replaces(self, store):
        store.save_history(user_messages(3))
        store.save_history([Message.user("only")])
        assert store.get_history() == [Message.user("only")]


class TestSessionPointer:
    """Tests for switching, creating and deleting sessions."""

    def test_set_current_does_not_mutate(self, store):
        store.append_messages("a", [Message.user("x")])
        before = store.get_session("a")

        store.set_current_session("a")

        assert store.current_session_id == "a"
        assert store.get_session("a") == before

    def test_new_session(self, store):
        new_id = store.new_session()
        assert new_id == "session-2"
        assert store.current_session_id == "session-2"

    def test_clear_history_starts_new_session(self, store):
        store.append_messages("session-1", [Message.user("kept")])
        new_id = store.clear_history()

        assert new_id != "session-1"
        assert store.get_history() == []
        assert store.get_session("session-1") is not None

    def test_delete_current_switches(self, store):
        store.append_messages("session-1", [Message.user("x")])

        assert store.delete_session("session-1") is True
        assert store.get_session("session-1") is None
        assert store.current_session_id == "session-2"

    def test_delete_other_keeps_pointer(self, store):
        store.append_messages("other", [Message.user("x")])

        assert store.delete_session("other") is True
        assert store.current_session_id == "session-1"

    def test_delete_missing(self, store):
        assert store.delete_session("nope") is False
        assert store.current_session_id == "session-1"

    def test_list_sorted_newest_first(self, storage, ids):
        records = [
            {"id": "old", "messages": [], "title": "old", "created_at": "2024-01-01T10:00:00"},
            {"id": "new", "messages": [], "title": "new", "created_at": "2024-03-01T10:00:00"},
            {"id": "mid", "messages": [], "title": "mid", "created_at": "2024-02-01T10:00:00"},
        ]
        storage.set(SESSIONS_KEY, json.dumps(records))
        store = SessionStore(storage, id_factory=ids)

        assert [s.id for s in store.list_sessions()] == ["new", "mid", "old"]


class TestPersistence:
    """Tests for persisted state and corruption handling."""

    def test_pointer_survives_reload(self, storage, ids):
        first = SessionStore(storage, id_factory=ids)
        first.append_messages(first.current_session_id, [Message.user("hi")])

        second = SessionStore(storage, id_factory=ids)
        assert second.current_session_id == first.current_session_id
        assert second.get_history() == [Message.user("hi")]

    def test_reads_do_not_write_pointer(self, storage, ids):
        store = SessionStore(storage, id_factory=ids)
        store.list_sessions()
        store.get_current_session()

        assert CURRENT_SESSION_KEY not in storage
        assert SESSIONS_KEY not in storage

    def test_pointer_written_on_first_persist(self, storage, ids):
        store = SessionStore(storage, id_factory=ids)
        store.append_messages(store.current_session_id, [Message.user("hi")])

        assert json.loads(storage.get(CURRENT_SESSION_KEY)) == "session-1"

    def test_read_only_file_store_untouched(self, tmp_path, ids):
        path = tmp_path / "sessions.json"
        SessionStore(FileKeyValueStore(path), id_factory=ids).list_sessions()
        assert not path.exists()

    def test_corrupt_sessions_treated_as_empty(self, storage, ids):
        storage.set(SESSIONS_KEY, "{not json")
        store = SessionStore(storage, id_factory=ids)

        assert store.list_sessions() == []
        store.append_messages("s", [Message.user("recovered")])
        assert store.get_session("s").messages == [Message.user("recovered")]

    def test_wrong_shape_treated_as_empty(self, storage, ids):
        storage.set(SESSIONS_KEY, json.dumps({"id": "s"}))
        assert SessionStore(storage, id_factory=ids).list_sessions() == []

    def test_corrupt_pointer_regenerated(self, storage, ids):
        storage.set(CURRENT_SESSION_KEY, "not json")
        store = SessionStore(storage, id_factory=ids)
        assert store.current_session_id == "session-1"

    def test_malformed_records_skipped(self, storage, ids):
        records = [
            {"id": "good", "messages": [{"role": "user", "content": "ok"}],
             "title": "ok", "created_at": "2024-01-01T00:00:00"},
            {"id": "bad-role", "messages": [{"role": "robot", "content": "?"}],
             "created_at": "2024-01-01T00:00:00"},
            {"messages": []},
            "garbage",
        ]
        storage.set(SESSIONS_KEY, json.dumps(records))
        store = SessionStore(storage, id_factory=ids)

        assert [s.id for s in store.list_sessions()] == ["good"]

    def test_file_store_round_trip(self, tmp_path, ids):
        path = tmp_path / "nested" / "sessions.json"
        store = SessionStore(FileKeyValueStore(path), id_factory=ids)
        store.append_messages("s", [Message.user("on disk")])

        reloaded = SessionStore(FileKeyValueStore(path), id_factory=ids)
        assert reloaded.get_session("s").messages == [Message.user("on disk")]
        assert list(tmp_path.joinpath("nested").glob("*.tmp")) == []


class TestKeyValueStores:
    """Tests for the key-value port implementations."""

    def test_memory_store(self):
        kv = MemoryKeyValueStore({"a": "1"})
        assert kv.get("a") == "1"
        kv.set("b", "2")
        kv.remove("a")
        kv.remove("missing")
        assert kv.get("a") is None
        assert "b" in kv

    def test_file_store_remove(self, tmp_path):
        kv = FileKeyValueStore(tmp_path / "kv.json")
        kv.set("a", "1")
        kv.remove("a")
        assert kv.get("a") is None

    def test_file_store_corrupt_file(self, tmp_path):
        path = tmp_path / "kv.json"
        path.write_text("{{{", encoding="utf-8")
        kv = FileKeyValueStore(path)

        assert kv.get("a") is None
        kv.set("a", "1")
        assert kv.get("a") == "1"

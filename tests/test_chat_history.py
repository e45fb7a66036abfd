"""Tests for transcript persistence."""

from __future__ import annotations

import re

import pytest

from hippo.chat.history import (
    ChatSession,
    JsonTranscriptStore,
    MemoryTranscriptStore,
    TranscriptStore,
    generate_chat_id,
    title_from_messages,
)
from hippo.chat.message_model import Message, TextPart, ToolPart


def _session(chat_id: str, *, updated_at: int, text: str = "hello") -> ChatSession:
    return ChatSession(
        id=chat_id,
        messages=[Message.user(text), Message.assistant(TextPart("hi"))],
        title=text,
        created_at=updated_at,
        updated_at=updated_at,
    )


def test_generate_chat_id_format() -> None:
    chat_id = generate_chat_id()
    assert re.fullmatch(r"chat_\d+_[a-z0-9]{7}", chat_id)
    assert generate_chat_id() != chat_id


class TestTitles:
    def test_first_user_message(self) -> None:
        messages = [Message.assistant(TextPart("greeting")), Message.user("Add a box")]
        assert title_from_messages(messages) == "Add a box"

    def test_truncates_long_text(self) -> None:
        title = title_from_messages([Message.user("x" * 80)])
        assert title == "x" * 60 + "…"

    def test_fallback(self) -> None:
        assert title_from_messages([]) == "New Chat"


@pytest.mark.parametrize("kind", ["memory", "json"])
class TestStores:
    @pytest.fixture
    def store(self, kind: str, tmp_path) -> TranscriptStore:
        if kind == "memory":
            return MemoryTranscriptStore()
        return JsonTranscriptStore(tmp_path / "chats")

    def test_save_and_load(self, store: TranscriptStore) -> None:
        part = ToolPart(tool_call_id="call_1", tool_name="get_scene")
        part.mark_input_available()
        part.resolve("[]")
        session = ChatSession(
            id="chat_1_abcdefg",
            messages=[Message.user("hi"), Message.assistant(TextPart("Looking."), part)],
            title="hi",
        )
        store.save(session)

        loaded = store.load("chat_1_abcdefg")

        assert loaded is not None
        assert loaded.title == "hi"
        assert [message.role for message in loaded.messages] == ["user", "assistant"]
        assert loaded.messages[1].tool_parts()[0].output == "[]"

    def test_load_missing_returns_none(self, store: TranscriptStore) -> None:
        assert store.load("chat_0_missing") is None

    def test_unusable_chat_id_is_missing(self, store: TranscriptStore) -> None:
        assert store.load("!!") is None
        store.delete("!!")

    def test_list_sessions_newest_first(self, store: TranscriptStore) -> None:
        store.save(_session("chat_1_aaaaaaa", updated_at=100))
        store.save(_session("chat_2_bbbbbbb", updated_at=300))
        store.save(_session("chat_3_ccccccc", updated_at=200))

        assert [session.id for session in store.list_sessions()] == [
            "chat_2_bbbbbbb",
            "chat_3_ccccccc",
            "chat_1_aaaaaaa",
        ]

    def test_delete(self, store: TranscriptStore) -> None:
        store.save(_session("chat_1_aaaaaaa", updated_at=1))
        store.delete("chat_1_aaaaaaa")
        store.delete("chat_1_aaaaaaa")
        assert store.load("chat_1_aaaaaaa") is None
        assert store.list_sessions() == []


def test_memory_store_snapshots_on_save() -> None:
    store = MemoryTranscriptStore()
    session = _session("chat_1_aaaaaaa", updated_at=1)
    store.save(session)
    session.messages.append(Message.user("later"))

    loaded = store.load("chat_1_aaaaaaa")
    assert loaded is not None
    assert len(loaded.messages) == 2


def test_json_store_skips_corrupt_files(tmp_path) -> None:
    store = JsonTranscriptStore(tmp_path)
    store.save(_session("chat_1_aaaaaaa", updated_at=1))
    (tmp_path / "chat_2_broken.json").write_text("{not json", encoding="utf-8")

    assert [session.id for session in store.list_sessions()] == ["chat_1_aaaaaaa"]
    assert store.load("chat_2_broken") is None

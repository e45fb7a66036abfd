"""Chat transcript persistence.

Sessions are stored one JSON document per chat. The orchestrator only needs
``load`` and ``save``; listing and deletion serve the host's history view.
"""

from __future__ import annotations

import json
import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from .message_model import Message

__all__ = [
    "ChatSession",
    "TranscriptStore",
    "JsonTranscriptStore",
    "MemoryTranscriptStore",
    "generate_chat_id",
    "title_from_messages",
]

LOGGER = logging.getLogger(__name__)

_TITLE_LIMIT = 60
_DEFAULT_TITLE = "New Chat"
_ID_ALPHABET = string.ascii_lowercase + string.digits


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_chat_id() -> str:
    """Return an id of the form ``chat_<epoch ms>_<7 base36 chars>``."""

    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"chat_{_now_ms()}_{suffix}"


def title_from_messages(messages: Sequence[Message]) -> str:
    """Derive a session title from the first user message."""

    first_user = next((message for message in messages if message.role == "user"), None)
    if first_user is None:
        return _DEFAULT_TITLE
    text = first_user.text
    if not text:
        return _DEFAULT_TITLE
    if len(text) > _TITLE_LIMIT:
        return text[:_TITLE_LIMIT] + "…"
    return text


@dataclass(slots=True)
class ChatSession:
    """A persisted chat transcript."""

    id: str
    messages: list[Message] = field(default_factory=list)
    title: str = _DEFAULT_TITLE
    created_at: int = field(default_factory=_now_ms)
    updated_at: int = field(default_factory=_now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "messages": [message.to_dict() for message in self.messages],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ChatSession:
        messages = [
            Message.from_dict(entry)
            for entry in payload.get("messages") or ()
            if isinstance(entry, Mapping)
        ]
        return cls(
            id=str(payload["id"]),
            messages=messages,
            title=str(payload.get("title") or _DEFAULT_TITLE),
            created_at=int(payload.get("created_at") or _now_ms()),
            updated_at=int(payload.get("updated_at") or _now_ms()),
        )


@runtime_checkable
class TranscriptStore(Protocol):
    """Persistence collaborator for chat transcripts."""

    def load(self, chat_id: str) -> ChatSession | None:
        ...

    def save(self, session: ChatSession) -> None:
        ...

    def list_sessions(self) -> list[ChatSession]:
        ...

    def delete(self, chat_id: str) -> None:
        ...


class MemoryTranscriptStore:
    """Process-local transcript store."""

    def __init__(self) -> None:
        self._sessions: dict[str, dict[str, Any]] = {}

    def load(self, chat_id: str) -> ChatSession | None:
        payload = self._sessions.get(chat_id)
        if payload is None:
            return None
        return ChatSession.from_dict(payload)

    def save(self, session: ChatSession) -> None:
        # Saved sessions are snapshots, detached from the live messages.
        self._sessions[session.id] = session.to_dict()

    def list_sessions(self) -> list[ChatSession]:
        sessions = [ChatSession.from_dict(payload) for payload in self._sessions.values()]
        sessions.sort(key=lambda session: session.updated_at, reverse=True)
        return sessions

    def delete(self, chat_id: str) -> None:
        self._sessions.pop(chat_id, None)


class JsonTranscriptStore:
    """Transcript store writing one JSON file per chat under ``directory``."""

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        return self._directory

    def load(self, chat_id: str) -> ChatSession | None:
        try:
            path = self._path_for(chat_id)
        except ValueError:
            LOGGER.debug("No transcript can exist for chat id %r", chat_id)
            return None
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return ChatSession.from_dict(payload)
        except (OSError, ValueError, KeyError) as exc:
            LOGGER.warning("Unable to read transcript %s: %s", path, exc)
            return None

    def save(self, session: ChatSession) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._path_for(session.id)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(
            json.dumps(session.to_dict(), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        tmp_path.replace(path)
        LOGGER.debug("Saved transcript %s (%d messages)", session.id, len(session.messages))

    def list_sessions(self) -> list[ChatSession]:
        if not self._directory.exists():
            return []
        sessions: list[ChatSession] = []
        for path in self._directory.glob("*.json"):
            session = self.load(path.stem)
            if session is not None:
                sessions.append(session)
        sessions.sort(key=lambda session: session.updated_at, reverse=True)
        return sessions

    def delete(self, chat_id: str) -> None:
        try:
            self._path_for(chat_id).unlink()
        except (FileNotFoundError, ValueError):
            return

    def _path_for(self, chat_id: str) -> Path:
        safe = "".join(ch for ch in chat_id if ch.isalnum() or ch in "-_")
        if not safe:
            raise ValueError(f"Invalid chat id: {chat_id!r}")
        return self._directory / f"{safe}.json"

"""Chat transcript models and persistence."""

from .history import (
    ChatSession,
    JsonTranscriptStore,
    MemoryTranscriptStore,
    TranscriptStore,
    generate_chat_id,
    title_from_messages,
)
from .message_model import (
    InvalidPhaseTransition,
    Message,
    MessagePart,
    TextPart,
    ToolPart,
    ToolPhase,
)

__all__ = [
    "ChatSession",
    "JsonTranscriptStore",
    "MemoryTranscriptStore",
    "TranscriptStore",
    "generate_chat_id",
    "title_from_messages",
    "InvalidPhaseTransition",
    "Message",
    "MessagePart",
    "TextPart",
    "ToolPart",
    "ToolPhase",
]

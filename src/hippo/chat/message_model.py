"""Chat message and tool part data models.

Assistant messages carry an ordered list of parts. Text parts hold narration;
tool parts track one tool invocation through its lifecycle::

    InputPending -> InputAvailable -> OutputAvailable
                                   -> OutputError

Terminal phases never transition again. Messages are mutated in place while a
turn is in flight and serialized once the turn is persisted.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Literal, Mapping, Union

__all__ = [
    "ChatRole",
    "ToolPhase",
    "InvalidPhaseTransition",
    "TextPart",
    "ToolPart",
    "MessagePart",
    "Message",
    "new_message_id",
]

ChatRole = Literal["user", "assistant"]


def new_message_id() -> str:
    """Return a fresh opaque message identifier."""

    return f"msg_{uuid.uuid4().hex[:16]}"


class ToolPhase(str, Enum):
    """Lifecycle phase of a single tool invocation."""

    INPUT_PENDING = "input-pending"
    INPUT_AVAILABLE = "input-available"
    OUTPUT_AVAILABLE = "output-available"
    OUTPUT_ERROR = "output-error"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_PHASES


_TERMINAL_PHASES = frozenset({ToolPhase.OUTPUT_AVAILABLE, ToolPhase.OUTPUT_ERROR})

_ALLOWED_TRANSITIONS: Mapping[ToolPhase, frozenset[ToolPhase]] = {
    ToolPhase.INPUT_PENDING: frozenset({ToolPhase.INPUT_AVAILABLE}),
    ToolPhase.INPUT_AVAILABLE: frozenset({ToolPhase.OUTPUT_AVAILABLE, ToolPhase.OUTPUT_ERROR}),
    ToolPhase.OUTPUT_AVAILABLE: frozenset(),
    ToolPhase.OUTPUT_ERROR: frozenset(),
}


class InvalidPhaseTransition(RuntimeError):
    """Raised when a tool part is pushed through an illegal phase change."""

    def __init__(self, tool_call_id: str, current: ToolPhase, target: ToolPhase) -> None:
        self.tool_call_id = tool_call_id
        self.current = current
        self.target = target
        super().__init__(
            f"Tool call {tool_call_id!r} cannot move from {current.value} to {target.value}"
        )


@dataclass(slots=True)
class TextPart:
    """Free-form natural-language content."""

    text: str = ""

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(slots=True)
class ToolPart:
    """One structured tool invocation embedded in an assistant message."""

    tool_call_id: str
    tool_name: str
    phase: ToolPhase = ToolPhase.INPUT_PENDING
    input: Dict[str, Any] = field(default_factory=dict)
    output: str | None = None
    error_text: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    @property
    def failed(self) -> bool:
        return self.phase is ToolPhase.OUTPUT_ERROR

    def mark_input_available(self, arguments: Mapping[str, Any] | None = None) -> None:
        """Record the final arguments once the model finished emitting them."""

        self._transition(ToolPhase.INPUT_AVAILABLE)
        if arguments is not None:
            self.input = dict(arguments)

    def resolve(self, output: str) -> None:
        self._transition(ToolPhase.OUTPUT_AVAILABLE)
        self.output = output

    def reject(self, error_text: str) -> None:
        self._transition(ToolPhase.OUTPUT_ERROR)
        self.error_text = error_text

    def _transition(self, target: ToolPhase) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.phase]:
            raise InvalidPhaseTransition(self.tool_call_id, self.phase, target)
        self.phase = target

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": "tool",
            "tool_call_id": self.tool_call_id,
            "tool_name": self.tool_name,
            "phase": self.phase.value,
            "input": dict(self.input),
        }
        if self.output is not None:
            payload["output"] = self.output
        if self.error_text is not None:
            payload["error_text"] = self.error_text
        return payload


MessagePart = Union[TextPart, ToolPart]


@dataclass(slots=True)
class Message:
    """A user or assistant message made of ordered parts."""

    role: ChatRole
    parts: list[MessagePart] = field(default_factory=list)
    id: str = field(default_factory=new_message_id)

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role="user", parts=[TextPart(text)])

    @classmethod
    def assistant(cls, *parts: MessagePart) -> Message:
        return cls(role="assistant", parts=list(parts))

    @property
    def text(self) -> str:
        """Concatenated text of every text part."""

        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    def tool_parts(self) -> list[ToolPart]:
        return [part for part in self.parts if isinstance(part, ToolPart)]

    def iter_text_parts(self) -> Iterator[TextPart]:
        for part in self.parts:
            if isinstance(part, TextPart):
                yield part

    def find_tool_part(self, tool_call_id: str) -> ToolPart | None:
        for part in self.parts:
            if isinstance(part, ToolPart) and part.tool_call_id == tool_call_id:
                return part
        return None

    def has_pending_tools(self) -> bool:
        return any(not part.is_terminal for part in self.tool_parts())

    def tools_settled(self) -> bool:
        """True when the message has tool parts and all of them are terminal."""

        parts = self.tool_parts()
        return bool(parts) and all(part.is_terminal for part in parts)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for persistence."""

        return {
            "id": self.id,
            "role": self.role,
            "parts": [part.to_dict() for part in self.parts],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Message:
        parts: list[MessagePart] = []
        for raw in payload.get("parts") or ():
            if not isinstance(raw, Mapping):
                continue
            if raw.get("type") == "tool":
                parts.append(
                    ToolPart(
                        tool_call_id=str(raw.get("tool_call_id") or ""),
                        tool_name=str(raw.get("tool_name") or ""),
                        phase=ToolPhase(raw.get("phase") or ToolPhase.INPUT_PENDING.value),
                        input=dict(raw.get("input") or {}),
                        output=raw.get("output"),
                        error_text=raw.get("error_text"),
                    )
                )
            else:
                parts.append(TextPart(str(raw.get("text") or "")))
        role = payload.get("role", "user")
        if role not in ("user", "assistant"):
            raise ValueError(f"Unsupported message role: {role!r}")
        return cls(role=role, parts=parts, id=str(payload.get("id") or new_message_id()))

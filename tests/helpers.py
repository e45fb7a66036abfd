"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Callable, Mapping, Sequence

from hippo.chat.message_model import Message, TextPart, ToolPart

_CALL_IDS = itertools.count(1)


def text(value: str) -> TextPart:
    return TextPart(value)


def call(tool_name: str, arguments: Mapping[str, Any] | None = None, *, call_id: str | None = None) -> ToolPart:
    """Template for a tool call the scripted client will stream."""

    return ToolPart(
        tool_call_id=call_id or f"call_{next(_CALL_IDS)}",
        tool_name=tool_name,
        input=dict(arguments or {}),
    )


class ScriptedClient:
    """Model client stub that streams pre-scripted assistant messages.

    Each script entry is a list of parts (see :func:`text` and :func:`call`)
    or an exception to raise. Tool parts are emitted ``input-pending`` first
    and then marked ``input-available``; ``on_update`` fires after every step
    so the orchestrator observes each call more than once. When the script
    runs out the client answers with plain text.

    Example:
        client = ScriptedClient([text("Adding a box."), call("add_mesh", {"type": "box"})])
    """

    def __init__(self, *script: Sequence[TextPart | ToolPart] | BaseException) -> None:
        self._script = list(script)
        self.requests: list[list[Message]] = []
        self.tools: list[list[Mapping[str, Any]]] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def respond(
        self,
        messages: Sequence[Message],
        *,
        tools: Sequence[Mapping[str, Any]],
        on_update: Callable[[Message], None] | None = None,
    ) -> Message:
        self.requests.append(list(messages))
        self.tools.append(list(tools))
        entry = self._script.pop(0) if self._script else [text("All done.")]
        if isinstance(entry, BaseException):
            raise entry

        message = Message.assistant()
        for template in entry:
            if isinstance(template, TextPart):
                message.parts.append(TextPart(template.text))
                self._emit(message, on_update)
                await asyncio.sleep(0)
                continue
            part = ToolPart(tool_call_id=template.tool_call_id, tool_name=template.tool_name)
            message.parts.append(part)
            self._emit(message, on_update)
            await asyncio.sleep(0)
            part.mark_input_available(template.input)
            self._emit(message, on_update)
            # A reactive host re-runs its observation pass more than once.
            self._emit(message, on_update)
            await asyncio.sleep(0)
        return message

    def _emit(self, message: Message, on_update: Callable[[Message], None] | None) -> None:
        if on_update is not None:
            on_update(message)


class BlockingClient:
    """Model client stub that streams one tool call and then waits forever."""

    def __init__(self, tool_name: str = "get_scene", arguments: Mapping[str, Any] | None = None) -> None:
        self._tool_name = tool_name
        self._arguments = dict(arguments or {})
        self.started = asyncio.Event()
        self.pending_part: ToolPart | None = None

    async def respond(
        self,
        messages: Sequence[Message],
        *,
        tools: Sequence[Mapping[str, Any]],
        on_update: Callable[[Message], None] | None = None,
    ) -> Message:
        message = Message.assistant(TextPart("Working on it."))
        ready = ToolPart(tool_call_id=f"call_{next(_CALL_IDS)}", tool_name=self._tool_name)
        message.parts.append(ready)
        ready.mark_input_available(self._arguments)
        self.pending_part = ToolPart(tool_call_id=f"call_{next(_CALL_IDS)}", tool_name=self._tool_name)
        message.parts.append(self.pending_part)
        if on_update is not None:
            on_update(message)
        self.started.set()
        await asyncio.Event().wait()
        return message


class RecordingListener:
    """Dispatch listener recording every callback."""

    def __init__(self) -> None:
        self.started: list[tuple[str, dict[str, Any]]] = []
        self.completed: list[Any] = []
        self.errors: list[tuple[str, Any]] = []

    def on_tool_start(self, tool_name: str, arguments: Mapping[str, Any]) -> None:
        self.started.append((tool_name, dict(arguments)))

    def on_tool_complete(self, result: Any) -> None:
        self.completed.append(result)

    def on_tool_error(self, tool_name: str, error: Any) -> None:
        self.errors.append((tool_name, error))

    def count(self, tool_name: str) -> int:
        return sum(1 for name, _ in self.started if name == tool_name)

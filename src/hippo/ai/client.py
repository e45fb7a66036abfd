"""Async model client built around OpenAI-compatible chat endpoints.

:class:`AIClient` converts the chat transcript into chat-completions
messages, streams the reply and assembles it into a single assistant
:class:`~hippo.chat.message_model.Message`. Streamed tool calls become
:class:`~hippo.chat.message_model.ToolPart` objects that start in
``input-pending`` and move to ``input-available`` once their arguments are
complete, so the orchestrator can dispatch them while the model is still
talking.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, Sequence

import httpx
from openai import APIConnectionError, AsyncOpenAI, InternalServerError, RateLimitError
from openai.lib.streaming.chat import ChatCompletionStreamEvent
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..chat.message_model import Message, TextPart, ToolPart, ToolPhase
from .prompts import build_system_prompt

__all__ = ["ClientSettings", "AIStreamEvent", "AIClient", "build_chat_messages"]

LOGGER = logging.getLogger(__name__)

_RETRYABLE_ERRORS = (APIConnectionError, RateLimitError, InternalServerError, httpx.TimeoutException)


@dataclass(slots=True)
class ClientSettings:
    """Connection and retry options for :class:`AIClient`."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    temperature: float | None = 0.2
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    metadata: Mapping[str, str] | None = None
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: Any) -> ClientSettings:
        """Build client options from a :class:`~hippo.services.settings.Settings`."""

        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            organization=settings.organization,
            temperature=settings.temperature,
            request_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_min_seconds=settings.retry_min_seconds,
            retry_max_seconds=settings.retry_max_seconds,
            default_headers=dict(settings.default_headers) or None,
            metadata={str(key): str(value) for key, value in settings.metadata.items()} or None,
            debug_logging=settings.debug_logging,
        )


@dataclass(slots=True)
class AIStreamEvent:
    """One normalized streaming event.

    ``type`` is the SDK event name, plus the synthetic ``tool_calls.begin``
    emitted when a chunk announces a new tool call id.
    """

    type: str
    content: str | None = None
    parsed: Any | None = None
    tool_name: str | None = None
    tool_index: int | None = None
    tool_arguments: str | None = None
    arguments_delta: str | None = None
    tool_call_id: str | None = None


# -----------------------------------------------------------------------------
# Transcript conversion
# -----------------------------------------------------------------------------


def build_chat_messages(
    messages: Sequence[Message],
    *,
    system_prompt: str | None = None,
) -> List[Dict[str, Any]]:
    """Convert a transcript into chat-completions request messages.

    Assistant tool parts become ``tool_calls`` followed by one ``tool`` role
    message per call. Failed calls are reported as ``Error: <text>`` so the
    model can correct itself. Parts that never settled are left out.
    """

    converted: List[Dict[str, Any]] = []
    if system_prompt:
        converted.append({"role": "system", "content": system_prompt})
    for message in messages:
        if message.role == "user":
            converted.append({"role": "user", "content": message.text})
            continue
        settled = [part for part in message.tool_parts() if part.is_terminal]
        content = message.text
        if not content and not settled:
            continue
        entry: Dict[str, Any] = {"role": "assistant", "content": content or None}
        if settled:
            entry["tool_calls"] = [
                {
                    "id": part.tool_call_id,
                    "type": "function",
                    "function": {
                        "name": part.tool_name,
                        "arguments": json.dumps(part.input, ensure_ascii=False),
                    },
                }
                for part in settled
            ]
        converted.append(entry)
        for part in settled:
            if part.phase is ToolPhase.OUTPUT_ERROR:
                result = f"Error: {part.error_text or 'Tool failed'}"
            else:
                result = part.output or ""
            converted.append({"role": "tool", "tool_call_id": part.tool_call_id, "content": result})
    return converted


def _parse_arguments(parsed: Any, raw: str | None) -> Dict[str, Any]:
    if isinstance(parsed, Mapping):
        return dict(parsed)
    if not raw or not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.warning("Tool call arguments are not valid JSON: %.200s", raw)
        return {}
    if not isinstance(value, dict):
        LOGGER.warning("Tool call arguments are not a JSON object: %.200s", raw)
        return {}
    return value


class _MessageAssembler:
    """Builds one assistant message from normalized stream events."""

    def __init__(self) -> None:
        self.message = Message.assistant()
        self.started = False
        self._tools: Dict[int, ToolPart] = {}

    def apply(self, event: AIStreamEvent) -> bool:
        """Apply ``event``; returns True when the message visibly changed."""

        self.started = True
        if event.type == "content.delta":
            if not event.content:
                return False
            parts = self.message.parts
            if parts and isinstance(parts[-1], TextPart):
                parts[-1].text += event.content
            else:
                parts.append(TextPart(event.content))
            return True
        if event.type in ("tool_calls.begin", "tool_calls.function.arguments.delta"):
            return self._tool_part(event)[1]
        if event.type == "tool_calls.function.arguments.done":
            part, _ = self._tool_part(event)
            if part.phase is ToolPhase.INPUT_PENDING:
                part.mark_input_available(_parse_arguments(event.parsed, event.tool_arguments))
            return True
        return False

    def _tool_part(self, event: AIStreamEvent) -> tuple[ToolPart, bool]:
        index = event.tool_index if event.tool_index is not None else len(self._tools)
        part = self._tools.get(index)
        if part is not None:
            if event.tool_name and not part.tool_name:
                part.tool_name = event.tool_name
            return part, False
        part = ToolPart(
            tool_call_id=event.tool_call_id or f"call_{uuid.uuid4().hex[:24]}",
            tool_name=event.tool_name or "",
        )
        self._tools[index] = part
        self.message.parts.append(part)
        return part, True


# -----------------------------------------------------------------------------
# Client
# -----------------------------------------------------------------------------


class AIClient:
    """Streams assistant messages from an OpenAI-compatible endpoint.

    Implements the orchestrator's model-client contract through
    :meth:`respond`. Connection failures are retried with exponential
    backoff, but only until the first event of a reply has been applied.
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        client: AsyncOpenAI | None = None,
        system_prompt: str | None = None,
    ) -> None:
        self._settings = settings
        self._client = client if client is not None else _open_client(settings)
        self._system_prompt = build_system_prompt() if system_prompt is None else system_prompt

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    async def respond(
        self,
        messages: Sequence[Message],
        *,
        tools: Sequence[Mapping[str, Any]],
        on_update: Callable[[Message], None] | None = None,
    ) -> Message:
        """Stream the next assistant message for ``messages``.

        ``on_update`` receives the same message object whenever text arrives,
        a tool call appears or a tool call's arguments are complete.
        """

        assembler = _MessageAssembler()
        request = build_chat_messages(messages, system_prompt=self._system_prompt)
        async for event in self.stream_chat(
            request,
            tools=tools,
            temperature=self._settings.temperature,
            can_retry=lambda: not assembler.started,
        ):
            if assembler.apply(event) and on_update is not None:
                on_update(assembler.message)

        # Calls whose arguments never finished stay pending for the orchestrator.
        pending = [
            part.tool_call_id
            for part in assembler.message.tool_parts()
            if part.phase is ToolPhase.INPUT_PENDING
        ]
        if pending:
            LOGGER.debug("Stream ended with incomplete tool call(s): %s", pending)
        return assembler.message

    async def stream_chat(
        self,
        messages: Iterable[Mapping[str, Any]],
        *,
        tools: Iterable[Mapping[str, Any]] | None = None,
        temperature: float | None = None,
        can_retry: Callable[[], bool] | None = None,
    ) -> AsyncIterator[AIStreamEvent]:
        """Yield normalized events for one streamed chat completion.

        ``can_retry`` is consulted before each retry; returning False lets the
        failure propagate.
        """

        request = self._request(messages, tools, temperature)
        LOGGER.debug(
            "Requesting %s with %d message(s) and %d tool(s)",
            request["model"],
            len(request["messages"]),
            len(request.get("tools", ())),
        )
        if self._settings.debug_logging:
            LOGGER.debug("Chat request body:\n%s", json.dumps(request, ensure_ascii=False, indent=2, default=str))

        async for attempt in self._attempts(can_retry):
            with attempt:
                async with self._client.chat.completions.stream(**request) as stream:
                    async for raw in stream:
                        for event in _normalize(raw):
                            yield event
                break

    def _request(
        self,
        messages: Iterable[Mapping[str, Any]],
        tools: Iterable[Mapping[str, Any]] | None,
        temperature: float | None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self._settings.model,
            "messages": [dict(message) for message in messages],
        }
        if not body["messages"]:
            raise ValueError("At least one message is required to start a chat")
        tool_list = [dict(tool) for tool in tools or ()]
        if tool_list:
            body["tools"] = tool_list
        if temperature is not None:
            body["temperature"] = temperature
        if self._settings.metadata:
            body["metadata"] = dict(self._settings.metadata)
        return body

    def _attempts(self, can_retry: Callable[[], bool] | None) -> AsyncRetrying:
        retry = retry_if_exception_type(_RETRYABLE_ERRORS)
        if can_retry is not None:
            retry = retry & retry_if_exception(lambda _exc: can_retry())
        settings = self._settings
        return AsyncRetrying(
            retry=retry,
            stop=stop_after_attempt(max(1, settings.max_retries)),
            wait=wait_exponential(multiplier=settings.retry_min_seconds, max=settings.retry_max_seconds),
            before_sleep=_log_retry,
            reraise=True,
        )

    async def aclose(self) -> None:
        """Release the HTTP connection pool."""

        await self._client.close()


def _open_client(settings: ClientSettings) -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key=settings.api_key,
        base_url=settings.base_url,
        organization=settings.organization,
        timeout=settings.request_timeout,
        max_retries=0,
        default_headers=dict(settings.default_headers) if settings.default_headers else None,
    )


def _log_retry(state: RetryCallState) -> None:
    error = state.outcome.exception() if state.outcome is not None else None
    LOGGER.warning("Chat request attempt %d failed (%s); retrying", state.attempt_number, error)


# -----------------------------------------------------------------------------
# Stream normalization
# -----------------------------------------------------------------------------


def _normalize(raw: ChatCompletionStreamEvent[Any] | Any) -> List[AIStreamEvent]:
    kind = getattr(raw, "type", None)
    if kind == "chunk":
        return _tool_call_starts(getattr(raw, "chunk", None))
    if kind == "content.delta":
        delta = getattr(raw, "delta", None)
        return [AIStreamEvent(type=kind, content=str(delta))] if delta else []
    if kind == "content.done":
        return [AIStreamEvent(type=kind, content=getattr(raw, "content", None))]
    if kind in ("tool_calls.function.arguments.delta", "tool_calls.function.arguments.done"):
        return [
            AIStreamEvent(
                type=kind,
                tool_name=getattr(raw, "name", None),
                tool_index=getattr(raw, "index", None),
                tool_arguments=getattr(raw, "arguments", None),
                arguments_delta=getattr(raw, "arguments_delta", None),
                parsed=getattr(raw, "parsed_arguments", None),
            )
        ]
    return []


def _tool_call_starts(chunk: Any) -> List[AIStreamEvent]:
    """Tool call ids only appear on raw chunks, in the first delta of each call."""

    starts: List[AIStreamEvent] = []
    for choice in getattr(chunk, "choices", None) or ():
        for call in getattr(getattr(choice, "delta", None), "tool_calls", None) or ():
            if not getattr(call, "id", None):
                continue
            starts.append(
                AIStreamEvent(
                    type="tool_calls.begin",
                    tool_call_id=call.id,
                    tool_index=getattr(call, "index", None),
                    tool_name=getattr(getattr(call, "function", None), "name", None),
                )
            )
    return starts

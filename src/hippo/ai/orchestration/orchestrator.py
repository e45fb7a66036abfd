"""Chat turn orchestration.

The orchestrator owns the live transcript of the active chat. A turn starts
with :meth:`ChatOrchestrator.submit` and proceeds in round trips:

* the model client streams a new assistant message; every time it grows the
  orchestrator re-scans the transcript (:meth:`on_tool_call_observed`) and
  dispatches each tool part that reached ``input-available``
* each dispatch is recorded in the handled map *before* the handler is
  scheduled, so a tool call runs at most once no matter how often it is
  observed; a different part reusing a recorded id is rejected
* handlers run as independent tasks; after every completion the message is
  re-checked and, once all of its tool parts are terminal and the stream has
  ended, the loop guard decides whether to resubmit

When the guard stops (or the user cancels) the turn ends, any tool part that
can no longer finish is failed, and the transcript is persisted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Mapping, Protocol, Sequence

from ...chat.history import (
    ChatSession,
    MemoryTranscriptStore,
    TranscriptStore,
    generate_chat_id,
    title_from_messages,
)
from ...chat.message_model import Message, ToolPart, ToolPhase
from ...utils.logging import chat_context
from ..tools.registry import ToolRegistry
from .loop_guard import LoopDecision, LoopGuard, LoopGuardConfig, StopReason
from .tool_dispatcher import DispatchListener, DispatchResult, ToolDispatcher

__all__ = [
    "ModelClient",
    "MessageCallback",
    "OrchestratorConfig",
    "OrchestratorBusyError",
    "TurnStatus",
    "TurnOutcome",
    "ChatOrchestrator",
]

LOGGER = logging.getLogger(__name__)

MessageCallback = Callable[[Message], None]
TurnStatus = Literal["completed", "awaiting_input", "cancelled", "failed"]

_CANCELLED_INPUT_ERROR = "Tool call was cancelled before its input was complete"
_INTERRUPTED_ERROR = "Tool call was interrupted before it produced a result"


class ModelClient(Protocol):
    """Produces the next assistant message for a transcript."""

    async def respond(
        self,
        messages: Sequence[Message],
        *,
        tools: Sequence[Mapping[str, Any]],
        on_update: MessageCallback | None = None,
    ) -> Message:
        """Stream one assistant message.

        ``on_update`` receives the same message object every time it grows;
        the finished message is returned.
        """
        ...


@dataclass(slots=True, frozen=True)
class OrchestratorConfig:
    """Configuration for :class:`ChatOrchestrator`.

    Attributes:
        loop_guard: Limits for automatic continuation.
        persist_transcripts: Save the transcript when a turn ends.
    """

    loop_guard: LoopGuardConfig = field(default_factory=LoopGuardConfig)
    persist_transcripts: bool = True

    @classmethod
    def from_settings(cls, settings: Any) -> OrchestratorConfig:
        return cls(loop_guard=LoopGuardConfig.from_settings(settings))


class OrchestratorBusyError(RuntimeError):
    """Raised when an operation needs an idle orchestrator but a turn is in flight."""


@dataclass(slots=True, frozen=True)
class TurnOutcome:
    """How a user turn ended.

    Attributes:
        chat_id: Chat the turn belongs to.
        status: ``completed`` when the model finished on its own,
            ``awaiting_input`` when a loop-safety rule stopped it,
            ``cancelled`` after :meth:`ChatOrchestrator.cancel`, and
            ``failed`` when the model request raised.
        round_trips: Automatic resubmissions performed.
        stop_reason: Loop guard rule that ended the turn, if any.
        error: Failure text for ``failed`` turns.
    """

    chat_id: str
    status: TurnStatus
    round_trips: int = 0
    stop_reason: StopReason | None = None
    error: str | None = None


class ChatOrchestrator:
    """Drives user turns, tool dispatch and automatic continuation."""

    def __init__(
        self,
        client: ModelClient,
        registry: ToolRegistry,
        *,
        store: TranscriptStore | None = None,
        config: OrchestratorConfig | None = None,
        listener: DispatchListener | None = None,
        chat_id: str | None = None,
    ) -> None:
        self._client = client
        self._registry = registry
        self._dispatcher = ToolDispatcher(registry, listener=listener)
        self._store: TranscriptStore = store or MemoryTranscriptStore()
        self._config = config or OrchestratorConfig()
        self._guard = LoopGuard(self._config.loop_guard)

        self._chat_id = chat_id or generate_chat_id()
        self._created_at: int | None = None
        self._messages: list[Message] = []

        # Tool call id -> the part dispatched under it. Lives as long as the orchestrator.
        self._handled: dict[str, ToolPart] = {}
        self._tool_tasks: dict[str, asyncio.Task[None]] = {}
        self._streaming: set[str] = set()
        self._evaluated: set[str] = set()
        self._settlements: dict[str, asyncio.Future[LoopDecision | None]] = {}

        self._turn_active = False
        self._cancelled = False
        self._model_task: asyncio.Task[Message] | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def chat_id(self) -> str:
        return self._chat_id

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def loop_guard(self) -> LoopGuard:
        return self._guard

    @property
    def dispatcher(self) -> ToolDispatcher:
        return self._dispatcher

    @property
    def is_working(self) -> bool:
        """True while a turn runs or the latest assistant message has unsettled tools."""
        if self._turn_active:
            return True
        for message in reversed(self._messages):
            if message.role == "assistant":
                return message.has_pending_tools()
        return False

    def has_handled(self, tool_call_id: str) -> bool:
        return tool_call_id in self._handled

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def submit(self, user_text: str) -> TurnOutcome:
        """Run one user turn to completion."""
        text = user_text.strip()
        if not text:
            raise ValueError("Cannot submit an empty message")
        if self.is_working:
            raise OrchestratorBusyError("A turn is already in progress")

        self._turn_active = True
        self._cancelled = False
        self._guard.reset()
        self._messages.append(Message.user(text))

        with chat_context(self._chat_id):
            LOGGER.info("Turn started in chat %s", self._chat_id)
            try:
                outcome = await self._run_turn()
            finally:
                self._model_task = None
                try:
                    await self._drain_tool_tasks()
                finally:
                    self._settle_stranded(self._messages)
                    self._settlements.clear()
                    self._turn_active = False
                if self._config.persist_transcripts:
                    self._persist()

            LOGGER.info(
                "Turn ended in chat %s: %s after %d round trip(s)%s",
                self._chat_id,
                outcome.status,
                outcome.round_trips,
                f" ({outcome.stop_reason.value})" if outcome.stop_reason else "",
            )
        return outcome

    async def _run_turn(self) -> TurnOutcome:
        tools = self._registry.get_openai_tools()
        while True:
            assistant_holder: list[Message] = []

            def on_update(message: Message) -> None:
                if not assistant_holder:
                    assistant_holder.append(message)
                    self._streaming.add(message.id)
                self._adopt(message)
                self.on_tool_call_observed(self._messages)

            self._model_task = asyncio.create_task(
                self._client.respond(list(self._messages), tools=tools, on_update=on_update)
            )
            try:
                assistant = await self._model_task
            except asyncio.CancelledError:
                for partial in assistant_holder:
                    self._abandon_stream(partial)
                if not (self._cancelled and self._model_task.cancelled()):
                    raise
                return self._outcome("cancelled")
            except Exception as exc:
                LOGGER.exception("Model request failed in chat %s", self._chat_id)
                for partial in assistant_holder:
                    self._abandon_stream(partial)
                return self._outcome("failed", error=str(exc) or exc.__class__.__name__)
            finally:
                self._model_task = None

            for partial in assistant_holder:
                if partial is not assistant:
                    self._abandon_stream(partial)
            self._adopt(assistant)
            self._finalize_stream(assistant)
            self.on_tool_call_observed(self._messages)
            self._on_part_settled(assistant)

            if not assistant.tool_parts():
                self._evaluated.add(assistant.id)
                decision = self._guard.evaluate(assistant)
            else:
                decision = await self._settlement(assistant.id)
                self._settlements.pop(assistant.id, None)

            if self._cancelled or decision is None:
                return self._outcome("cancelled")
            if not decision.should_continue:
                reason = decision.reason
                if reason is not None and reason.is_loop_safety_stop:
                    LOGGER.info("Loop guard stopped auto-continuation: %s", reason.value)
                    return self._outcome("awaiting_input", stop_reason=reason)
                return self._outcome("completed", stop_reason=reason)
            LOGGER.debug("Resubmitting chat %s (round trip %d)", self._chat_id, self._round_trips)

    def cancel(self) -> bool:
        """Stop the in-flight model request.

        Tool calls already dispatched keep running and still settle their
        parts, but no further automatic resubmission happens.
        """
        if not self._turn_active:
            LOGGER.debug("cancel() called but no turn is active")
            return False
        self._cancelled = True
        task = self._model_task
        if task is not None and not task.done():
            LOGGER.info("Cancelling model request in chat %s", self._chat_id)
            task.cancel()
        for future in self._settlements.values():
            if not future.done():
                future.set_result(None)
        return True

    @property
    def _round_trips(self) -> int:
        return self._guard.state.round_trip_count

    def _outcome(
        self,
        status: TurnStatus,
        *,
        stop_reason: StopReason | None = None,
        error: str | None = None,
    ) -> TurnOutcome:
        return TurnOutcome(
            chat_id=self._chat_id,
            status=status,
            round_trips=self._round_trips,
            stop_reason=stop_reason,
            error=error,
        )

    # ------------------------------------------------------------------
    # Tool dispatch
    # ------------------------------------------------------------------

    def on_tool_call_observed(self, messages: Sequence[Message]) -> int:
        """Dispatch every ready, not yet handled tool part in ``messages``.

        Safe to call any number of times; returns how many calls were newly
        dispatched.
        """
        dispatched = 0
        for message in messages:
            if message.role != "assistant":
                continue
            for part in message.tool_parts():
                if part.phase is not ToolPhase.INPUT_AVAILABLE:
                    continue
                tracked = self._handled.get(part.tool_call_id)
                if tracked is part:
                    continue
                if tracked is not None:
                    LOGGER.warning(
                        "Rejecting %s: tool call id %s was already dispatched",
                        part.tool_name,
                        part.tool_call_id,
                    )
                    part.reject(f'Duplicate tool call id "{part.tool_call_id}"')
                    self._on_part_settled(message)
                    continue
                self._handled[part.tool_call_id] = part
                task = asyncio.create_task(self._run_tool(message, part))
                self._tool_tasks[part.tool_call_id] = task
                task.add_done_callback(
                    lambda _task, call_id=part.tool_call_id: self._tool_tasks.pop(call_id, None)
                )
                dispatched += 1
                LOGGER.debug("Dispatched %s (%s)", part.tool_name, part.tool_call_id)
        return dispatched

    async def _run_tool(self, message: Message, part: ToolPart) -> None:
        result: DispatchResult = await self._dispatcher.dispatch(
            part.tool_name, part.input, call_id=part.tool_call_id
        )
        if part.is_terminal:
            LOGGER.debug("Dropping result for already settled %s (%s)", part.tool_name, part.tool_call_id)
            return
        if result.success:
            part.resolve(result.output or "")
            LOGGER.debug("Tool %s (%s) resolved", part.tool_name, part.tool_call_id)
        else:
            part.reject(result.error or "Tool failed")
            LOGGER.warning("Tool %s failed: %s", part.tool_name, result.error)
        self._on_part_settled(message)

    def _on_part_settled(self, message: Message) -> None:
        if message.id in self._streaming or message.id in self._evaluated:
            return
        if not message.tools_settled():
            return
        self._evaluated.add(message.id)
        decision = None if self._cancelled else self._guard.evaluate(message)
        future = self._settlement(message.id)
        if not future.done():
            future.set_result(decision)

    def _settlement(self, message_id: str) -> asyncio.Future[LoopDecision | None]:
        future = self._settlements.get(message_id)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._settlements[message_id] = future
            if self._cancelled:
                future.set_result(None)
        return future

    def _adopt(self, message: Message) -> None:
        for index in range(len(self._messages) - 1, -1, -1):
            if self._messages[index].id == message.id:
                self._messages[index] = message
                return
        self._messages.append(message)

    def _finalize_stream(self, message: Message) -> None:
        """Release a completed message; arguments never finalized still get dispatched."""
        for part in message.tool_parts():
            if part.phase is ToolPhase.INPUT_PENDING:
                part.mark_input_available()
        self._streaming.discard(message.id)

    def _abandon_stream(self, message: Message) -> None:
        """Settle parts of an interrupted stream that never received full input."""
        for part in message.tool_parts():
            if part.phase is ToolPhase.INPUT_PENDING:
                self._handled.setdefault(part.tool_call_id, part)
                part.mark_input_available()
                part.reject(_CANCELLED_INPUT_ERROR)
        self._streaming.discard(message.id)
        self._evaluated.add(message.id)

    def _settle_stranded(self, messages: Sequence[Message]) -> int:
        """Fail tool parts that can no longer reach a result.

        Applies after a turn was torn down and to transcripts loaded from
        storage. Returns how many parts were settled.
        """
        settled = 0
        for message in messages:
            if message.role != "assistant":
                continue
            for part in message.tool_parts():
                if part.is_terminal:
                    continue
                if part.phase is ToolPhase.INPUT_PENDING:
                    part.mark_input_available()
                    part.reject(_CANCELLED_INPUT_ERROR)
                else:
                    part.reject(_INTERRUPTED_ERROR)
                self._handled.setdefault(part.tool_call_id, part)
                settled += 1
            self._streaming.discard(message.id)
        if settled:
            LOGGER.warning("Settled %d unfinished tool call(s) in chat %s", settled, self._chat_id)
        return settled

    async def _drain_tool_tasks(self) -> None:
        while True:
            pending = [task for task in self._tool_tasks.values() if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    def new_chat(self) -> str:
        """Save the current chat (if any) and start an empty one."""
        self._require_idle()
        if self._messages:
            self._persist()
        self._start_fresh()
        return self._chat_id

    def switch_chat(self, chat_id: str) -> bool:
        """Load a saved chat; returns False when it does not exist."""
        self._require_idle()
        if chat_id == self._chat_id:
            return True
        session = self._store.load(chat_id)
        if session is None:
            LOGGER.warning("Chat %s not found", chat_id)
            return False
        if self._messages:
            self._persist()
        self._chat_id = session.id
        self._created_at = session.created_at
        self._messages = list(session.messages)
        self._settle_stranded(self._messages)
        self._guard.reset()
        return True

    def delete_chat(self, chat_id: str) -> None:
        """Delete a saved chat, moving off it first when it is active."""
        if chat_id == self._chat_id:
            self._require_idle()
        self._store.delete(chat_id)
        if chat_id != self._chat_id:
            return
        remaining = self._store.list_sessions()
        if remaining:
            session = remaining[0]
            self._chat_id = session.id
            self._created_at = session.created_at
            self._messages = list(session.messages)
            self._settle_stranded(self._messages)
            self._guard.reset()
        else:
            self._start_fresh()

    def list_chats(self) -> list[ChatSession]:
        return self._store.list_sessions()

    def _start_fresh(self) -> None:
        self._chat_id = generate_chat_id()
        self._created_at = None
        self._messages = []
        self._guard.reset()

    def _require_idle(self) -> None:
        if self.is_working:
            raise OrchestratorBusyError("Cannot change chats while a turn is in progress")

    def _persist(self) -> None:
        if not self._messages:
            return
        now = int(time.time() * 1000)
        if self._created_at is None:
            self._created_at = now
        session = ChatSession(
            id=self._chat_id,
            messages=list(self._messages),
            title=title_from_messages(self._messages),
            created_at=self._created_at,
            updated_at=now,
        )
        try:
            self._store.save(session)
        except Exception:
            LOGGER.warning("Failed to save chat %s", self._chat_id, exc_info=True)

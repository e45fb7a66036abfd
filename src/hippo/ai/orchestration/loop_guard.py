"""Auto-continuation guard.

After every settled assistant message the orchestrator asks the guard
whether to resubmit the conversation automatically. The rules run in a
fixed order and the first match wins:

1. no tool parts: stop
2. non-blank text after the last tool part: stop (the model already narrated)
3. compute the message's tool signature
4. any non-blank text and the signature was seen recently: stop
5. the signature equals the most recently pushed one: stop
6. the signature already occurs twice in the window: stop
7. per ``tool:path`` consecutive error streak reached the cap: stop
8. round-trip ceiling reached: stop
9. otherwise count the round trip, remember the signature and continue

State is turn-scoped and reset on user submission, new chat and chat switch.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from ...chat.message_model import Message, ToolPart, ToolPhase

__all__ = [
    "MAX_ROUND_TRIPS",
    "MAX_CONSECUTIVE_ERRORS",
    "SIGNATURE_WINDOW",
    "LoopGuardConfig",
    "LoopGuardState",
    "StopReason",
    "LoopDecision",
    "LoopGuard",
    "tool_key",
    "error_key",
]

LOGGER = logging.getLogger(__name__)

MAX_ROUND_TRIPS = 12
MAX_CONSECUTIVE_ERRORS = 3
SIGNATURE_WINDOW = 8


@dataclass(slots=True, frozen=True)
class LoopGuardConfig:
    """Limits applied by :class:`LoopGuard`.

    Attributes:
        max_round_trips: Automatic resubmissions allowed per user turn.
        max_consecutive_errors: Failures in a row on one ``tool:path`` key before stopping.
        signature_window: Number of recent tool signatures remembered.
        canonical_signatures: Serialize inputs with sorted keys so key order
            never changes a signature.
    """

    max_round_trips: int = MAX_ROUND_TRIPS
    max_consecutive_errors: int = MAX_CONSECUTIVE_ERRORS
    signature_window: int = SIGNATURE_WINDOW
    canonical_signatures: bool = True

    def __post_init__(self) -> None:
        if self.max_round_trips < 0:
            raise ValueError("max_round_trips must be >= 0")
        if self.max_consecutive_errors < 1:
            raise ValueError("max_consecutive_errors must be >= 1")
        if self.signature_window < 1:
            raise ValueError("signature_window must be >= 1")

    @classmethod
    def from_settings(cls, settings: Any) -> LoopGuardConfig:
        return cls(
            max_round_trips=int(getattr(settings, "max_round_trips", MAX_ROUND_TRIPS)),
            max_consecutive_errors=int(
                getattr(settings, "max_consecutive_errors", MAX_CONSECUTIVE_ERRORS)
            ),
            signature_window=int(getattr(settings, "signature_window", SIGNATURE_WINDOW)),
        )


@dataclass(slots=True)
class LoopGuardState:
    """Turn-scoped counters owned by the orchestrator."""

    window: int = SIGNATURE_WINDOW
    round_trip_count: int = 0
    recent_signatures: deque[str] = field(init=False)
    consecutive_error_counts: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.recent_signatures = deque(maxlen=self.window)

    def reset(self) -> None:
        self.round_trip_count = 0
        self.recent_signatures.clear()
        self.consecutive_error_counts.clear()


class StopReason(str, Enum):
    """Which rule ended automatic looping."""

    NO_TOOL_CALLS = "no_tool_calls"
    FINAL_NARRATION = "final_narration"
    NARRATED_REPEAT = "narrated_repeat"
    CONSECUTIVE_DUPLICATE = "consecutive_duplicate"
    REPEATED_PATTERN = "repeated_pattern"
    ERROR_STREAK = "error_streak"
    ROUND_TRIP_LIMIT = "round_trip_limit"

    @property
    def is_loop_safety_stop(self) -> bool:
        """True for stops that cut the model off rather than let it finish."""
        return self not in (StopReason.NO_TOOL_CALLS, StopReason.FINAL_NARRATION)


@dataclass(slots=True, frozen=True)
class LoopDecision:
    should_continue: bool
    reason: StopReason | None = None
    signature: str | None = None

    def __bool__(self) -> bool:
        return self.should_continue


def _serialize_input(payload: Mapping[str, Any], *, canonical: bool) -> str:
    return json.dumps(
        payload,
        sort_keys=canonical,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def tool_key(parts: Iterable[ToolPart], *, canonical: bool = True) -> str:
    """Order-independent signature of the terminal tool calls in ``parts``."""

    entries = sorted(
        f"{part.tool_name}:{_serialize_input(part.input, canonical=canonical)}"
        for part in parts
        if part.is_terminal
    )
    return "|".join(entries)


def error_key(part: ToolPart) -> str:
    path = part.input.get("path") if isinstance(part.input, Mapping) else None
    return f"{part.tool_name}:{path if isinstance(path, str) else ''}"


class LoopGuard:
    """Decides whether a settled assistant message is resubmitted automatically."""

    def __init__(self, config: LoopGuardConfig | None = None) -> None:
        self._config = config or LoopGuardConfig()
        self._state = LoopGuardState(window=self._config.signature_window)

    @property
    def config(self) -> LoopGuardConfig:
        return self._config

    @property
    def state(self) -> LoopGuardState:
        return self._state

    def reset(self) -> None:
        self._state.reset()

    def evaluate(self, message: Message) -> LoopDecision:
        decision = self._decide(message)
        if decision.should_continue:
            LOGGER.debug(
                "Loop guard: continuing (round trip %d/%d)",
                self._state.round_trip_count,
                self._config.max_round_trips,
            )
        else:
            LOGGER.debug("Loop guard: stopping (%s)", decision.reason.value if decision.reason else "")
        return decision

    def _decide(self, message: Message) -> LoopDecision:
        state = self._state
        tool_parts = message.tool_parts()

        # Rule 1
        if not tool_parts:
            return LoopDecision(False, StopReason.NO_TOOL_CALLS)

        # Rule 2
        last_tool_index = max(
            index for index, part in enumerate(message.parts) if isinstance(part, ToolPart)
        )
        trailing = message.parts[last_tool_index + 1 :]
        if any(not part.is_blank for part in trailing if not isinstance(part, ToolPart)):
            return LoopDecision(False, StopReason.FINAL_NARRATION)

        # Rule 3
        signature = tool_key(tool_parts, canonical=self._config.canonical_signatures)

        # Rule 4
        has_text = any(not part.is_blank for part in message.iter_text_parts())
        if has_text and signature in state.recent_signatures:
            return LoopDecision(False, StopReason.NARRATED_REPEAT, signature)

        # Rule 5
        if state.recent_signatures and state.recent_signatures[-1] == signature:
            return LoopDecision(False, StopReason.CONSECUTIVE_DUPLICATE, signature)

        # Rule 6
        if state.recent_signatures.count(signature) >= 2:
            return LoopDecision(False, StopReason.REPEATED_PATTERN, signature)

        # Rule 7: every counter is updated before the cap is checked.
        streak_hit = False
        for part in tool_parts:
            key = error_key(part)
            if part.phase is ToolPhase.OUTPUT_ERROR:
                count = state.consecutive_error_counts.get(key, 0) + 1
                state.consecutive_error_counts[key] = count
                if count >= self._config.max_consecutive_errors:
                    streak_hit = True
            elif part.phase is ToolPhase.OUTPUT_AVAILABLE:
                state.consecutive_error_counts[key] = 0
        if streak_hit:
            return LoopDecision(False, StopReason.ERROR_STREAK, signature)

        # Rule 8
        if state.round_trip_count >= self._config.max_round_trips:
            return LoopDecision(False, StopReason.ROUND_TRIP_LIMIT, signature)

        # Rule 9
        state.round_trip_count += 1
        state.recent_signatures.append(signature)
        return LoopDecision(True, None, signature)

"""Tests for the auto-continuation loop guard."""

from __future__ import annotations

from typing import Any, Mapping

import pytest

from hippo.ai.orchestration import (
    LoopGuard,
    LoopGuardConfig,
    StopReason,
    error_key,
    tool_key,
)
from hippo.chat.message_model import Message, TextPart, ToolPart

_IDS = iter(range(1, 1_000_000))


def settled(
    tool_name: str,
    arguments: Mapping[str, Any] | None = None,
    *,
    error: str | None = None,
) -> ToolPart:
    part = ToolPart(tool_call_id=f"call_{next(_IDS)}", tool_name=tool_name)
    part.mark_input_available(arguments or {})
    if error is None:
        part.resolve("ok")
    else:
        part.reject(error)
    return part


def message(*parts) -> Message:
    return Message.assistant(*parts)


class TestSignatures:
    def test_order_independent(self) -> None:
        first = [settled("add_mesh", {"type": "box"}), settled("get_scene")]
        second = [settled("get_scene"), settled("add_mesh", {"type": "box"})]
        assert tool_key(first) == tool_key(second)

    def test_canonical_key_order(self) -> None:
        a = [settled("update_node", {"name": "A", "position": [1, 2, 3]})]
        b = [settled("update_node", {"position": [1, 2, 3], "name": "A"})]
        assert tool_key(a) == tool_key(b)
        assert tool_key(a, canonical=False) != tool_key(b, canonical=False)

    def test_error_key_uses_path(self) -> None:
        assert error_key(settled("read_script", {"path": "a.ts"})) == "read_script:a.ts"
        assert error_key(settled("add_mesh", {"type": "box"})) == "add_mesh:"


class TestRules:
    def test_no_tool_parts_stops(self) -> None:
        decision = LoopGuard().evaluate(message(TextPart("Hello!")))
        assert not decision
        assert decision.reason is StopReason.NO_TOOL_CALLS
        assert not decision.reason.is_loop_safety_stop

    def test_trailing_narration_stops(self) -> None:
        guard = LoopGuard()
        decision = guard.evaluate(message(settled("get_scene"), TextPart("Here is your scene.")))
        assert decision.reason is StopReason.FINAL_NARRATION
        assert guard.state.round_trip_count == 0

    def test_blank_trailing_text_does_not_stop(self) -> None:
        decision = LoopGuard().evaluate(message(settled("get_scene"), TextPart("  \n")))
        assert decision.should_continue

    def test_leading_text_continues(self) -> None:
        guard = LoopGuard()
        decision = guard.evaluate(message(TextPart("Let me look."), settled("get_scene")))
        assert decision.should_continue
        assert guard.state.round_trip_count == 1
        assert list(guard.state.recent_signatures) == [decision.signature]

    def test_narrated_repeat_stops(self) -> None:
        guard = LoopGuard()
        assert guard.evaluate(message(settled("get_scene"))).should_continue
        assert guard.evaluate(message(settled("list_scripts"))).should_continue
        decision = guard.evaluate(message(TextPart("Checking again."), settled("get_scene")))
        assert decision.reason is StopReason.NARRATED_REPEAT

    def test_consecutive_duplicate_stops(self) -> None:
        guard = LoopGuard()
        assert guard.evaluate(message(settled("add_mesh", {"type": "box"}))).should_continue
        decision = guard.evaluate(message(settled("add_mesh", {"type": "box"})))
        assert decision.reason is StopReason.CONSECUTIVE_DUPLICATE
        assert decision.reason.is_loop_safety_stop

    def test_repeated_pattern_stops(self) -> None:
        guard = LoopGuard()
        for name in ("get_scene", "list_scripts", "get_scene", "list_scripts"):
            assert guard.evaluate(message(settled(name))).should_continue
        decision = guard.evaluate(message(settled("get_scene")))
        assert decision.reason is StopReason.REPEATED_PATTERN

    def test_error_streak_stops_on_third_error(self) -> None:
        guard = LoopGuard()
        for attempt in range(2):
            part = settled("read_script", {"path": "a.ts", "attempt": attempt}, error="not found")
            assert guard.evaluate(message(part)).should_continue
        part = settled("read_script", {"path": "a.ts", "attempt": 2}, error="not found")
        decision = guard.evaluate(message(part))
        assert decision.reason is StopReason.ERROR_STREAK
        assert guard.state.consecutive_error_counts["read_script:a.ts"] == 3

    def test_alternating_errors_never_streak(self) -> None:
        guard = LoopGuard(LoopGuardConfig(max_round_trips=50))
        for attempt in range(10):
            error = "boom" if attempt % 2 == 0 else None
            part = settled("edit_script", {"path": "a.ts", "n": attempt}, error=error)
            assert guard.evaluate(message(part)).should_continue
        assert guard.state.consecutive_error_counts["edit_script:a.ts"] == 0

    def test_all_error_counters_update_before_stopping(self) -> None:
        guard = LoopGuard(LoopGuardConfig(max_consecutive_errors=1))
        decision = guard.evaluate(
            message(
                settled("read_script", {"path": "a.ts"}, error="x"),
                settled("read_script", {"path": "b.ts"}, error="y"),
            )
        )
        assert decision.reason is StopReason.ERROR_STREAK
        assert guard.state.consecutive_error_counts == {"read_script:a.ts": 1, "read_script:b.ts": 1}

    def test_round_trip_ceiling(self) -> None:
        guard = LoopGuard(LoopGuardConfig(max_round_trips=3))
        for index in range(3):
            assert guard.evaluate(message(settled("add_mesh", {"name": f"m{index}"}))).should_continue
        decision = guard.evaluate(message(settled("add_mesh", {"name": "m3"})))
        assert decision.reason is StopReason.ROUND_TRIP_LIMIT
        assert guard.state.round_trip_count == 3


class TestTermination:
    @pytest.mark.parametrize("window", [1, 2, 8])
    def test_always_stops_within_round_trip_limit(self, window: int) -> None:
        config = LoopGuardConfig(max_round_trips=12, signature_window=window)
        guard = LoopGuard(config)
        continuations = 0
        for index in range(100):
            # Cycle through more distinct signatures than the window can hold.
            name = f"node_{index % (window + 2)}"
            if not guard.evaluate(message(settled("update_node", {"name": name}))):
                break
            continuations += 1
        assert continuations <= config.max_round_trips

    def test_reset_clears_turn_state(self) -> None:
        guard = LoopGuard()
        guard.evaluate(message(settled("read_script", {"path": "a.ts"}, error="x")))
        guard.reset()
        assert guard.state.round_trip_count == 0
        assert not guard.state.recent_signatures
        assert not guard.state.consecutive_error_counts
        assert guard.evaluate(message(settled("read_script", {"path": "a.ts"}, error="x")))


class TestConfig:
    def test_rejects_invalid_limits(self) -> None:
        with pytest.raises(ValueError):
            LoopGuardConfig(signature_window=0)
        with pytest.raises(ValueError):
            LoopGuardConfig(max_consecutive_errors=0)

    def test_from_settings(self) -> None:
        class _Settings:
            max_round_trips = 4
            max_consecutive_errors = 2
            signature_window = 5

        config = LoopGuardConfig.from_settings(_Settings())
        assert (config.max_round_trips, config.max_consecutive_errors, config.signature_window) == (4, 2, 5)
        assert LoopGuard(config).state.recent_signatures.maxlen == 5

"""Tests for chat messages and the tool part phase machine."""

from __future__ import annotations

import pytest

from hippo.chat.message_model import (
    InvalidPhaseTransition,
    Message,
    TextPart,
    ToolPart,
    ToolPhase,
)


def _part(call_id: str = "call_1", name: str = "get_scene") -> ToolPart:
    return ToolPart(tool_call_id=call_id, tool_name=name)


class TestToolPhases:
    def test_new_part_is_input_pending(self) -> None:
        part = _part()
        assert part.phase is ToolPhase.INPUT_PENDING
        assert not part.is_terminal

    def test_resolve_path(self) -> None:
        part = _part()
        part.mark_input_available({"path": "scripts/a.ts"})
        assert part.phase is ToolPhase.INPUT_AVAILABLE
        assert part.input == {"path": "scripts/a.ts"}

        part.resolve("ok")
        assert part.phase is ToolPhase.OUTPUT_AVAILABLE
        assert part.output == "ok"
        assert part.is_terminal

    def test_reject_path(self) -> None:
        part = _part()
        part.mark_input_available()
        part.reject('Node "Box_1" not found')
        assert part.failed
        assert part.error_text == 'Node "Box_1" not found'

    def test_mark_available_without_arguments_keeps_input(self) -> None:
        part = ToolPart(tool_call_id="c", tool_name="add_mesh", input={"type": "box"})
        part.mark_input_available()
        assert part.input == {"type": "box"}

    def test_cannot_skip_input_available(self) -> None:
        part = _part()
        with pytest.raises(InvalidPhaseTransition):
            part.resolve("too early")

    @pytest.mark.parametrize("settle", ["resolve", "reject"])
    def test_terminal_phases_never_transition_again(self, settle: str) -> None:
        part = _part()
        part.mark_input_available()
        getattr(part, settle)("done")
        with pytest.raises(InvalidPhaseTransition):
            part.resolve("again")
        with pytest.raises(InvalidPhaseTransition):
            part.reject("again")
        with pytest.raises(InvalidPhaseTransition):
            part.mark_input_available()


class TestMessage:
    def test_text_concatenates_text_parts_only(self) -> None:
        message = Message.assistant(TextPart("Adding "), _part(), TextPart("a box."))
        assert message.text == "Adding a box."
        assert len(message.tool_parts()) == 1

    def test_blank_text(self) -> None:
        assert TextPart("  \n\t").is_blank
        assert not TextPart(" ok ").is_blank

    def test_tools_settled_requires_tool_parts(self) -> None:
        assert not Message.assistant(TextPart("hi")).tools_settled()

        first, second = _part("a"), _part("b")
        message = Message.assistant(first, second)
        first.mark_input_available()
        first.resolve("ok")
        assert not message.tools_settled()
        assert message.has_pending_tools()

        second.mark_input_available()
        second.reject("nope")
        assert message.tools_settled()
        assert not message.has_pending_tools()

    def test_find_tool_part(self) -> None:
        part = _part("call_9")
        message = Message.assistant(TextPart("x"), part)
        assert message.find_tool_part("call_9") is part
        assert message.find_tool_part("missing") is None

    def test_dict_round_trip_preserves_parts(self) -> None:
        part = ToolPart(tool_call_id="call_1", tool_name="read_script", input={"path": "a.ts"})
        part.mark_input_available()
        part.reject('Script "a.ts" not found')
        message = Message.assistant(TextPart("Reading."), part)

        restored = Message.from_dict(message.to_dict())

        assert restored.id == message.id
        assert restored.role == "assistant"
        assert restored.text == "Reading."
        (restored_part,) = restored.tool_parts()
        assert restored_part.phase is ToolPhase.OUTPUT_ERROR
        assert restored_part.input == {"path": "a.ts"}
        assert restored_part.error_text == 'Script "a.ts" not found'

    def test_from_dict_rejects_unknown_role(self) -> None:
        with pytest.raises(ValueError):
            Message.from_dict({"role": "system", "parts": []})

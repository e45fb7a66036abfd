"""Tests for the bulk scene batch executor."""

from __future__ import annotations

import pytest

from hippo.ai.tools import (
    AddMesh,
    BulkBatchExecutor,
    BulkOperationError,
    BulkResult,
    InvalidToolInputError,
    SceneTools,
    SetParent,
    ToolRegistry,
    parse_operation,
    summarize_results,
)
from hippo.scene import SceneOperations


@pytest.fixture
def executor(operations: SceneOperations) -> BulkBatchExecutor:
    return BulkBatchExecutor(SceneTools(operations))


class TestParseOperation:
    def test_builds_typed_variant(self) -> None:
        operation = parse_operation({"action": "add_mesh", "type": "box", "extra": 1})
        assert operation == AddMesh(type="box")

    def test_set_parent_accepts_null_parent(self) -> None:
        operation = parse_operation({"action": "set_parent", "node": "A", "parent": None})
        assert operation == SetParent(node="A", parent=None)

    @pytest.mark.parametrize(
        ("raw", "message"),
        [
            ("add_mesh", "must be an object"),
            ({"action": "explode"}, 'Unknown action "explode"'),
            ({"type": "box"}, 'Unknown action "None"'),
            ({"action": "update_node"}, "missing required field(s): name"),
            ({"action": "set_parent", "node": "A"}, "missing required field(s): parent"),
            ({"action": "delete_node", "name": 3}, "delete_node.name must be a string"),
        ],
    )
    def test_rejects_malformed_entries(self, raw, message: str) -> None:
        with pytest.raises(BulkOperationError) as info:
            parse_operation(raw)
        assert message in str(info.value)


class TestExecutor:
    def test_results_match_input_order_and_length(self, executor: BulkBatchExecutor) -> None:
        operations = [
            {"action": "create_group", "name": "Rig"},
            {"action": "add_mesh", "type": "box", "name": "Body"},
            {"action": "set_parent", "node": "Wheel", "parent": "Body"},
            {"action": "add_mesh", "type": "cylinder", "name": "Wheel"},
            {"action": "set_parent", "node": "Body", "parent": "Rig"},
        ]

        results = executor.execute(operations)

        assert len(results) == 5
        assert [result.index for result in results] == [0, 1, 2, 3, 4]
        assert [result.success for result in results] == [True, True, False, True, True]
        assert results[2].message == 'Node "Wheel" not found'
        assert results[4].message == 'Parented "Body" under "Rig"'

    def test_later_operations_see_earlier_ones(
        self, executor: BulkBatchExecutor, operations: SceneOperations
    ) -> None:
        results = executor.execute(
            [
                {"action": "add_mesh", "type": "box"},
                {"action": "update_node", "name": "Box_1", "rename": "Crate"},
                {"action": "delete_node", "name": "Crate"},
            ]
        )
        assert all(result.success for result in results)
        assert "Crate" not in operations.scene

    def test_malformed_entries_fail_individually(self, executor: BulkBatchExecutor) -> None:
        results = executor.execute(
            [
                {"action": "add_light", "type": "point"},
                42,
                {"action": "teleport"},
                {"action": "add_mesh", "type": "torus"},
            ]
        )
        assert [(result.action, result.success) for result in results] == [
            ("add_light", True),
            ("unknown", False),
            ("teleport", False),
            ("add_mesh", True),
        ]

    def test_empty_batch(self, executor: BulkBatchExecutor) -> None:
        assert executor.execute([]) == []
        assert executor.handle({"operations": []}) == (
            "Bulk operation complete: 0 succeeded, 0 failed."
        )

    def test_handle_requires_a_list(self, executor: BulkBatchExecutor) -> None:
        with pytest.raises(InvalidToolInputError):
            executor.handle({"operations": {"action": "add_mesh"}})


def test_summary_format() -> None:
    summary = summarize_results(
        [
            BulkResult(0, "add_mesh", True, 'Created box "Box_1" at [0, 1, 0]'),
            BulkResult(1, "delete_node", False, 'Node "X" not found'),
        ]
    )
    assert summary.splitlines() == [
        "Bulk operation complete: 1 succeeded, 1 failed.",
        'OK: Created box "Box_1" at [0, 1, 0]',
        'FAIL: Node "X" not found',
    ]


@pytest.mark.asyncio
async def test_bulk_scene_tool_never_rejects_item_failures(registry: ToolRegistry) -> None:
    result = await registry.invoke(
        "bulk_scene",
        {
            "operations": [
                {"action": "add_mesh", "type": "box"},
                {"action": "delete_node", "name": "camera"},
                "garbage",
            ]
        },
    )
    lines = result.splitlines()
    assert lines[0] == "Bulk operation complete: 1 succeeded, 2 failed."
    assert lines[2] == "FAIL: Cannot delete the active camera"
    assert lines[3].startswith("FAIL: Operation must be an object")


@pytest.mark.asyncio
async def test_bulk_entries_follow_the_standalone_tool_contract(
    registry: ToolRegistry, operations: SceneOperations
) -> None:
    meshes_before = len(operations.scene.nodes("mesh"))

    result = await registry.invoke(
        "bulk_scene",
        {
            "operations": [
                {"action": "add_mesh", "type": "box", "size": -1},
                {"action": "add_mesh", "type": "box", "size": 2},
                {"action": "add_light", "type": "point", "position": [0, 1]},
                {"action": "set_parent", "node": "Box_1"},
            ]
        },
    )

    lines = result.splitlines()
    assert lines[0] == "Bulk operation complete: 1 succeeded, 3 failed."
    assert lines[1].startswith("FAIL: Invalid input for add_mesh: size:")
    assert lines[2].startswith("OK: ")
    assert lines[3].startswith("FAIL: Invalid input for add_light: position:")
    assert lines[4] == "FAIL: set_parent is missing required field(s): parent"
    assert len(operations.scene.nodes("mesh")) == meshes_before + 1

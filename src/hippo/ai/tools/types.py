"""Tool system types.

Tool names form a closed enum; every member is paired with a JSON Schema
input contract in its :class:`ToolSpec`. Handlers take the validated input
mapping and return (or resolve to) a single human-readable string.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Union

__all__ = [
    "ToolName",
    "ToolSpec",
    "ToolHandler",
    "SimpleTool",
]


# -----------------------------------------------------------------------------
# Tool Names
# -----------------------------------------------------------------------------


class ToolName(str, Enum):
    """Every tool the assistant may call."""

    GET_SCENE = "get_scene"
    ADD_MESH = "add_mesh"
    ADD_LIGHT = "add_light"
    UPDATE_NODE = "update_node"
    DELETE_NODE = "delete_node"
    CREATE_GROUP = "create_group"
    SET_PARENT = "set_parent"
    BULK_SCENE = "bulk_scene"
    CREATE_SCRIPT = "create_script"
    READ_SCRIPT = "read_script"
    EDIT_SCRIPT = "edit_script"
    DELETE_SCRIPT = "delete_script"
    ATTACH_SCRIPT = "attach_script"
    DETACH_SCRIPT = "detach_script"
    LIST_SCRIPTS = "list_scripts"
    LIST_ASSETS = "list_assets"
    IMPORT_ASSET = "import_asset"

    @classmethod
    def parse(cls, value: str) -> ToolName | None:
        try:
            return cls(value)
        except ValueError:
            return None


# -----------------------------------------------------------------------------
# Tool Specification
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Specification for a tool's interface.

    Attributes:
        name: Tool identifier.
        description: Human-readable description shown to the model.
        parameters: JSON Schema for the tool's input.
    """

    name: ToolName
    description: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def input_schema(self) -> dict[str, Any]:
        if self.parameters:
            return dict(self.parameters)
        return {"type": "object", "properties": {}}

    def to_openai_tool(self) -> dict[str, Any]:
        """Convert to OpenAI tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": self.input_schema(),
            },
        }


# -----------------------------------------------------------------------------
# Tool Handler Types
# -----------------------------------------------------------------------------

ToolHandler = Callable[[Mapping[str, Any]], Union[str, Awaitable[str]]]


@dataclass
class SimpleTool:
    """Tool implementation wrapping a sync or async callable."""

    spec: ToolSpec
    handler: ToolHandler

    @property
    def name(self) -> ToolName:
        return self.spec.name

    async def execute(self, arguments: Mapping[str, Any]) -> str:
        result = self.handler(arguments)
        if inspect.isawaitable(result):
            result = await result
        return result if isinstance(result, str) else str(result)

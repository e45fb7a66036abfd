"""Registration of the default assistant tools.

Builds the static registry the orchestrator dispatches through: every
:class:`ToolName` member gets its JSON Schema input contract and the handler
bound to the host's scene, content store and diagnostics collaborators.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ...assets.store import AssetStore
from ...scene.operations import LIGHT_TYPES, MESH_TYPES, SceneOperations
from ...scripting.diagnostics import DiagnosticService
from .bulk import ACTIONS, BulkBatchExecutor
from .registry import ToolRegistry
from .scene_tools import SceneTools
from .script_tools import ScriptTools
from .types import ToolName, ToolSpec

__all__ = ["ToolContext", "build_default_registry", "TOOL_SPECS"]

LOGGER = logging.getLogger(__name__)


def _vector(description: str) -> dict[str, Any]:
    return {
        "type": "array",
        "items": {"type": "number"},
        "minItems": 3,
        "maxItems": 3,
        "description": description,
    }


def _string(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


def _object(properties: dict[str, Any], required: tuple[str, ...] = ()) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = list(required)
    return schema


_MESH_PROPERTIES: dict[str, Any] = {
    "type": {
        "type": "string",
        "enum": list(MESH_TYPES),
        "description": "The type of mesh to create.",
    },
    "name": _string("Optional name for the mesh. Auto-generated if omitted."),
    "position": _vector("Position as [x, y, z]. Defaults to [0, 1, 0] for most meshes."),
    "rotation": _vector("Rotation in degrees as [x, y, z]."),
    "scale": _vector("Scale as [x, y, z]. Defaults to [1, 1, 1]."),
    "color": _vector("Diffuse color as [r, g, b], each 0-1. Defaults to gray."),
    "size": {"type": "number", "exclusiveMinimum": 0, "description": "Base size of the shape."},
}

_LIGHT_PROPERTIES: dict[str, Any] = {
    "type": {
        "type": "string",
        "enum": list(LIGHT_TYPES),
        "description": "The type of light to create.",
    },
    "name": _string("Optional name for the light."),
    "position": _vector("Position as [x, y, z]. Defaults to [0, 5, 0]."),
    "direction": _vector("Direction as [x, y, z]. Used by directional, spot and hemispheric lights."),
    "intensity": {"type": "number", "description": "Light intensity. Default is 1."},
    "color": _vector("Diffuse color as [r, g, b], each 0-1."),
}

_UPDATE_PROPERTIES: dict[str, Any] = {
    "name": _string("The name of the node to update. Must match exactly."),
    "position": _vector("New position as [x, y, z]."),
    "rotation": _vector("New rotation in degrees as [x, y, z]."),
    "scale": _vector("New scale as [x, y, z]."),
    "color": _vector("New color as [r, g, b], 0-1."),
    "intensity": {"type": "number", "description": "New intensity (lights only)."},
    "rename": _string("Rename the node to this value."),
}

TOOL_SPECS: dict[ToolName, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            name=ToolName.GET_SCENE,
            description=(
                "Get a JSON snapshot of all nodes in the current 3D scene, including types, "
                "positions, rotations, scales, colors, scripts and hierarchy. Call this first "
                "to understand the scene before making changes."
            ),
            parameters=_object({}),
        ),
        ToolSpec(
            name=ToolName.ADD_MESH,
            description="Create a new mesh (3D shape) in the scene.",
            parameters=_object(_MESH_PROPERTIES, ("type",)),
        ),
        ToolSpec(
            name=ToolName.ADD_LIGHT,
            description="Create a new light source in the scene.",
            parameters=_object(_LIGHT_PROPERTIES, ("type",)),
        ),
        ToolSpec(
            name=ToolName.UPDATE_NODE,
            description=(
                "Update properties of an existing node in the scene. Use get_scene first to "
                "find node names."
            ),
            parameters=_object(_UPDATE_PROPERTIES, ("name",)),
        ),
        ToolSpec(
            name=ToolName.DELETE_NODE,
            description=(
                "Remove a node (and its children) from the scene by name. Cannot delete the "
                "active camera."
            ),
            parameters=_object({"name": _string("The name of the node to delete.")}, ("name",)),
        ),
        ToolSpec(
            name=ToolName.CREATE_GROUP,
            description="Create an empty transform node used to group other nodes.",
            parameters=_object(
                {
                    "name": _string("Name of the new group."),
                    "position": _vector("Position as [x, y, z]. Defaults to the origin."),
                },
                ("name",),
            ),
        ),
        ToolSpec(
            name=ToolName.SET_PARENT,
            description=(
                "Reparent a mesh or group under another mesh or group, or pass parent null to "
                "move it back to the scene root."
            ),
            parameters=_object(
                {
                    "node": _string("Name of the node to move."),
                    "parent": {
                        "type": ["string", "null"],
                        "description": "Name of the new parent, or null for the scene root.",
                    },
                },
                ("node", "parent"),
            ),
        ),
        ToolSpec(
            name=ToolName.BULK_SCENE,
            description=(
                "Run many scene operations in one call, strictly in order. Each operation is "
                "an object with an `action` field ("
                + ", ".join(ACTIONS)
                + ") plus that action's parameters, e.g. "
                '{"action": "add_mesh", "type": "box", "name": "Crate"}. '
                "Later operations may refer to nodes created earlier in the batch. A failing "
                "operation does not stop the rest; the result reports OK/FAIL per operation."
            ),
            parameters=_object(
                {
                    "operations": {
                        "type": "array",
                        "description": "Ordered list of scene operations.",
                        "items": {"description": "One scene operation with an `action` field."},
                    }
                },
                ("operations",),
            ),
        ),
        ToolSpec(
            name=ToolName.CREATE_SCRIPT,
            description=(
                "Create or update a TypeScript script file in the project asset store. The "
                "script should export a default class extending Script. Use forward-slash "
                'paths like "scripts/rotate.ts".'
            ),
            parameters=_object(
                {
                    "path": _string('File path for the script (e.g. "scripts/rotate.ts").'),
                    "content": _string("Full TypeScript source code for the script."),
                },
                ("path", "content"),
            ),
        ),
        ToolSpec(
            name=ToolName.READ_SCRIPT,
            description=(
                "Read the contents of a script file. Use this before editing a script to see "
                "its current code."
            ),
            parameters=_object({"path": _string("The script file path.")}, ("path",)),
        ),
        ToolSpec(
            name=ToolName.EDIT_SCRIPT,
            description=(
                "Edit a script by replacing the first occurrence of old_string with new_string. "
                "Use read_script first and copy the exact text, including indentation."
            ),
            parameters=_object(
                {
                    "path": _string("The script file path to edit."),
                    "old_string": _string("The exact text to find in the script."),
                    "new_string": _string("The replacement text."),
                },
                ("path", "old_string", "new_string"),
            ),
        ),
        ToolSpec(
            name=ToolName.DELETE_SCRIPT,
            description=(
                "Delete a script file from the asset store. Also detaches it from any nodes "
                "that reference it."
            ),
            parameters=_object({"path": _string("The script file path to delete.")}, ("path",)),
        ),
        ToolSpec(
            name=ToolName.ATTACH_SCRIPT,
            description=(
                "Attach an existing script to a node in the scene. Use create_script first and "
                "get_scene to find node names."
            ),
            parameters=_object(
                {
                    "node": _string("The name of the node. Must match exactly."),
                    "script": _string('The script file path (e.g. "scripts/rotate.ts").'),
                },
                ("node", "script"),
            ),
        ),
        ToolSpec(
            name=ToolName.DETACH_SCRIPT,
            description="Detach a script from a node without deleting the script file.",
            parameters=_object(
                {
                    "node": _string("The name of the node to detach the script from."),
                    "script": _string("The script file path to detach."),
                },
                ("node", "script"),
            ),
        ),
        ToolSpec(
            name=ToolName.LIST_SCRIPTS,
            description="List all script files in the asset store as a JSON array of paths.",
            parameters=_object({}),
        ),
        ToolSpec(
            name=ToolName.LIST_ASSETS,
            description="List every file in the asset store as a JSON array of paths.",
            parameters=_object({}),
        ),
        ToolSpec(
            name=ToolName.IMPORT_ASSET,
            description=(
                "Import a model file (.glb, .gltf, .obj, .babylon) from the asset store into "
                "the scene under a new group node."
            ),
            parameters=_object(
                {
                    "path": _string("Asset path of the model file."),
                    "position": _vector("Position of the imported root as [x, y, z]."),
                    "scale": _vector("Scale of the imported root as [x, y, z]."),
                },
                ("path",),
            ),
        ),
    )
}


@dataclass(slots=True)
class ToolContext:
    """Collaborators the default tools are bound to."""

    operations: SceneOperations
    assets: AssetStore
    diagnostics: DiagnosticService | None = None


def build_default_registry(context: ToolContext) -> ToolRegistry:
    """Register every assistant tool and return the frozen registry."""

    scene_tools = SceneTools(context.operations, context.assets)
    script_tools = ScriptTools(context.assets, context.operations, context.diagnostics)
    bulk = BulkBatchExecutor(
        scene_tools,
        schemas={action: TOOL_SPECS[ToolName(action)].input_schema() for action in ACTIONS},
    )

    handlers = {
        ToolName.GET_SCENE: scene_tools.get_scene,
        ToolName.ADD_MESH: scene_tools.add_mesh,
        ToolName.ADD_LIGHT: scene_tools.add_light,
        ToolName.UPDATE_NODE: scene_tools.update_node,
        ToolName.DELETE_NODE: scene_tools.delete_node,
        ToolName.CREATE_GROUP: scene_tools.create_group,
        ToolName.SET_PARENT: scene_tools.set_parent,
        ToolName.BULK_SCENE: bulk.handle,
        ToolName.CREATE_SCRIPT: script_tools.create_script,
        ToolName.READ_SCRIPT: script_tools.read_script,
        ToolName.EDIT_SCRIPT: script_tools.edit_script,
        ToolName.DELETE_SCRIPT: script_tools.delete_script,
        ToolName.ATTACH_SCRIPT: script_tools.attach_script,
        ToolName.DETACH_SCRIPT: script_tools.detach_script,
        ToolName.LIST_SCRIPTS: script_tools.list_scripts,
        ToolName.LIST_ASSETS: script_tools.list_assets,
        ToolName.IMPORT_ASSET: scene_tools.import_asset,
    }
    missing = [name.value for name in ToolName if name not in handlers]
    if missing:
        raise RuntimeError(f"No handler wired for tool(s): {', '.join(missing)}")

    registry = ToolRegistry()
    for name, spec in TOOL_SPECS.items():
        registry.register_function(spec, handlers[name])
    LOGGER.debug("Registered %d assistant tools", len(registry))
    return registry.freeze()

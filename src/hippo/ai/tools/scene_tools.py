"""Scene tool handlers.

Each handler takes the validated tool input and returns a short
confirmation string. The synchronous mutation handlers are shared with the
bulk executor, which runs them back to back without yielding to the event
loop.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Sequence

from ...assets.store import AssetStore
from ...scene.operations import SceneOperations
from .errors import AssetNotFoundError

__all__ = ["SceneTools", "format_vector"]

LOGGER = logging.getLogger(__name__)

_UPDATE_FIELDS = ("position", "rotation", "scale", "color", "intensity")


def format_vector(values: Sequence[float]) -> str:
    return "[" + ", ".join(f"{float(value):g}" for value in values) + "]"


class SceneTools:
    """Handlers for the scene-graph tools, bound to one operations service."""

    def __init__(self, operations: SceneOperations, assets: AssetStore | None = None) -> None:
        self._operations = operations
        self._assets = assets

    @property
    def operations(self) -> SceneOperations:
        return self._operations

    def get_scene(self, args: Mapping[str, Any]) -> str:
        snapshot = self._operations.get_snapshot()
        if not snapshot:
            return "The scene is empty."
        return json.dumps(snapshot, indent=2)

    def add_mesh(self, args: Mapping[str, Any]) -> str:
        node = self._operations.add_mesh(
            args["type"],
            name=args.get("name"),
            position=args.get("position"),
            rotation=args.get("rotation"),
            scale=args.get("scale"),
            color=args.get("color"),
            size=args.get("size"),
        )
        return f'Created {node.shape} "{node.name}" at {format_vector(node.position)}'

    def add_light(self, args: Mapping[str, Any]) -> str:
        node = self._operations.add_light(
            args["type"],
            name=args.get("name"),
            position=args.get("position"),
            direction=args.get("direction"),
            intensity=args.get("intensity"),
            color=args.get("color"),
        )
        return f'Created {node.light_type} light "{node.name}"'

    def update_node(self, args: Mapping[str, Any]) -> str:
        original = args["name"]
        node = self._operations.update_node(
            original,
            position=args.get("position"),
            rotation=args.get("rotation"),
            scale=args.get("scale"),
            color=args.get("color"),
            intensity=args.get("intensity"),
            rename=args.get("rename"),
        )
        changed = [name for name in _UPDATE_FIELDS if args.get(name) is not None]
        summary = ", ".join(changed) if changed else "no properties"
        if node.name != original:
            return f'Updated "{node.name}" (renamed from "{original}"): {summary}'
        return f'Updated "{node.name}": {summary}'

    def delete_node(self, args: Mapping[str, Any]) -> str:
        removed = self._operations.delete_node(args["name"])
        if len(removed) > 1:
            return f'Deleted "{args["name"]}" and {len(removed) - 1} child node(s)'
        return f'Deleted "{args["name"]}"'

    def create_group(self, args: Mapping[str, Any]) -> str:
        node = self._operations.create_group(args["name"], position=args.get("position"))
        return f'Created group "{node.name}"'

    def set_parent(self, args: Mapping[str, Any]) -> str:
        parent = args.get("parent")
        node = self._operations.set_parent(args["node"], parent)
        if parent is None:
            return f'Moved "{node.name}" to the scene root'
        return f'Parented "{node.name}" under "{parent}"'

    async def import_asset(self, args: Mapping[str, Any]) -> str:
        path = args["path"]
        if self._assets is None:
            raise AssetNotFoundError.for_path(path)
        entry = self._assets.find_node(path)
        if entry is None or entry.is_folder:
            raise AssetNotFoundError.for_path(path)
        data = await self._assets.get_blob(path)
        if data is None:
            raise AssetNotFoundError.for_path(path)
        root = self._operations.import_model(
            data,
            entry.name,
            position=args.get("position"),
            scale=args.get("scale"),
        )
        meshes = ", ".join(child.name for child in root.children)
        LOGGER.debug("Imported asset %s into %s", path, root.name)
        return f'Imported "{path}" as "{root.name}" with {len(root.children)} mesh(es): {meshes}'

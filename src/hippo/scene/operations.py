"""Scene mutation primitives.

``SceneOperations`` is the scene-mutation service the assistant's tools call
into. Every primitive is synchronous, addresses nodes by exact name and
raises a :class:`~hippo.scene.errors.SceneError` subclass with a descriptive
message on failure. Rotations cross this API in degrees and are stored in
radians on the node.
"""

from __future__ import annotations

import json
import logging
import math
import re
import struct
from pathlib import PurePosixPath
from typing import Any, Sequence

from .errors import (
    NodeNotFoundError,
    SceneError,
    SceneNotReadyError,
    SceneRuleError,
    UnsupportedModelFormatError,
)
from .graph import Scene, SceneNode, Vec3

__all__ = [
    "MESH_TYPES",
    "LIGHT_TYPES",
    "MODEL_EXTENSIONS",
    "SceneOperations",
]

LOGGER = logging.getLogger(__name__)

MESH_TYPES: tuple[str, ...] = ("box", "sphere", "cylinder", "cone", "torus", "plane", "ground")
LIGHT_TYPES: tuple[str, ...] = ("point", "directional", "spot", "hemispheric")
MODEL_EXTENSIONS: tuple[str, ...] = (".glb", ".gltf", ".obj", ".babylon")

_FLAT_MESHES = frozenset({"plane", "ground"})
_DEFAULT_MESH_COLOR: Vec3 = (0.6, 0.6, 0.6)
_DEFAULT_MESH_SIZE = {"ground": 10.0}
_DEFAULT_LIGHT_POSITION: Vec3 = (0.0, 5.0, 0.0)
_DEFAULT_LIGHT_DIRECTION: Vec3 = (0.0, -1.0, 0.0)
_OBJ_OBJECT_PATTERN = re.compile(r"^[og]\s+(.+?)\s*$", re.MULTILINE)
_GLB_MAGIC = b"glTF"
_GLB_JSON_CHUNK = 0x4E4F534A


def _vec3(value: Sequence[float], *, label: str) -> Vec3:
    items = list(value)
    if len(items) != 3:
        raise SceneRuleError(f"{label} must have exactly 3 components, got {len(items)}")
    return (float(items[0]), float(items[1]), float(items[2]))


def _radians(value: Sequence[float]) -> Vec3:
    x, y, z = _vec3(value, label="rotation")
    return (math.radians(x), math.radians(y), math.radians(z))


class SceneOperations:
    """Mutation service bound to one (possibly not yet loaded) scene."""

    def __init__(self, scene: Scene | None = None) -> None:
        self._scene = scene
        self._counter = 0

    # ------------------------------------------------------------------
    # Scene binding
    # ------------------------------------------------------------------

    @property
    def scene(self) -> Scene | None:
        return self._scene

    @property
    def is_ready(self) -> bool:
        return self._scene is not None

    def attach(self, scene: Scene) -> None:
        self._scene = scene

    def detach(self) -> None:
        self._scene = None

    def _require_scene(self) -> Scene:
        if self._scene is None:
            raise SceneNotReadyError()
        return self._scene

    def next_name(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter}"

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_snapshot(self) -> list[dict[str, Any]]:
        return self._require_scene().snapshot()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def add_mesh(
        self,
        mesh_type: str,
        *,
        name: str | None = None,
        position: Sequence[float] | None = None,
        rotation: Sequence[float] | None = None,
        scale: Sequence[float] | None = None,
        color: Sequence[float] | None = None,
        size: float | None = None,
    ) -> SceneNode:
        scene = self._require_scene()
        if mesh_type not in MESH_TYPES:
            raise SceneRuleError(f'Unknown mesh type: "{mesh_type}"')
        node = SceneNode(
            name=name or self.next_name(mesh_type.capitalize()),
            kind="mesh",
            shape=mesh_type,
            size=float(size) if size is not None else _DEFAULT_MESH_SIZE.get(mesh_type, 1.0),
            color=_vec3(color, label="color") if color is not None else _DEFAULT_MESH_COLOR,
        )
        if position is not None:
            node.position = _vec3(position, label="position")
        elif mesh_type not in _FLAT_MESHES:
            node.position = (0.0, 1.0, 0.0)
        if rotation is not None:
            node.rotation = _radians(rotation)
        if scale is not None:
            node.scaling = _vec3(scale, label="scale")
        scene.add(node)
        LOGGER.debug("Added %s mesh %r", mesh_type, node.name)
        return node

    def add_light(
        self,
        light_type: str,
        *,
        name: str | None = None,
        position: Sequence[float] | None = None,
        direction: Sequence[float] | None = None,
        intensity: float | None = None,
        color: Sequence[float] | None = None,
    ) -> SceneNode:
        scene = self._require_scene()
        if light_type not in LIGHT_TYPES:
            raise SceneRuleError(f'Unknown light type: "{light_type}"')
        node = SceneNode(
            name=name or self.next_name(f"{light_type.capitalize()}Light"),
            kind="light",
            light_type=light_type,
            position=_vec3(position, label="position") if position is not None else _DEFAULT_LIGHT_POSITION,
            direction=_vec3(direction, label="direction") if direction is not None else _DEFAULT_LIGHT_DIRECTION,
            intensity=float(intensity) if intensity is not None else 1.0,
            color=_vec3(color, label="color") if color is not None else (1.0, 1.0, 1.0),
        )
        scene.add(node)
        LOGGER.debug("Added %s light %r", light_type, node.name)
        return node

    def create_group(self, name: str, *, position: Sequence[float] | None = None) -> SceneNode:
        scene = self._require_scene()
        node = SceneNode(name=name, kind="group")
        if position is not None:
            node.position = _vec3(position, label="position")
        scene.add(node)
        return node

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update_node(
        self,
        name: str,
        *,
        position: Sequence[float] | None = None,
        rotation: Sequence[float] | None = None,
        scale: Sequence[float] | None = None,
        color: Sequence[float] | None = None,
        intensity: float | None = None,
        rename: str | None = None,
    ) -> SceneNode:
        node = self._require_scene().require(name)
        # All fields are validated before any is applied.
        new_position = _vec3(position, label="position") if position is not None else None
        new_rotation = _radians(rotation) if rotation is not None else None
        new_scale = _vec3(scale, label="scale") if scale is not None else None
        new_color = _vec3(color, label="color") if color is not None else None

        if new_position is not None and (node.transformable or node.kind in ("light", "camera")):
            node.position = new_position
        if new_rotation is not None and node.transformable:
            node.rotation = new_rotation
        if new_scale is not None and node.transformable:
            node.scaling = new_scale
        if new_color is not None and node.kind in ("mesh", "light"):
            node.color = new_color
        if intensity is not None and node.kind == "light":
            node.intensity = float(intensity)
        if rename:
            node.name = rename
        return node

    def delete_node(self, name: str) -> list[SceneNode]:
        scene = self._require_scene()
        node = scene.require(name)
        if node is scene.active_camera:
            raise SceneRuleError("Cannot delete the active camera")
        removed = scene.remove(node)
        LOGGER.debug("Deleted %r (%d node(s))", name, len(removed))
        return removed

    def set_parent(self, node_name: str, parent_name: str | None) -> SceneNode:
        scene = self._require_scene()
        node = scene.require(node_name)
        parent = scene.require(parent_name, role="Parent") if parent_name is not None else None
        if not node.transformable:
            raise SceneRuleError(f'"{node.name}" ({node.type_label}) cannot be reparented')
        if parent is not None and not parent.transformable:
            raise SceneRuleError(f'"{parent.name}" ({parent.type_label}) cannot have children')
        scene.reparent(node, parent)
        return node

    # ------------------------------------------------------------------
    # Script metadata
    # ------------------------------------------------------------------

    def attach_script(self, node_name: str, script_path: str) -> bool:
        """Attach ``script_path`` to a node; returns False if already attached."""

        node = self._require_scene().require(node_name)
        if script_path in node.scripts:
            return False
        node.scripts.append(script_path)
        return True

    def detach_script(self, node_name: str, script_path: str) -> None:
        node = self._require_scene().require(node_name)
        if script_path not in node.scripts:
            raise SceneRuleError(f'Script "{script_path}" is not attached to "{node_name}"')
        node.scripts.remove(script_path)

    def detach_script_everywhere(self, script_path: str) -> list[str]:
        """Remove ``script_path`` from every node; returns the affected node names."""

        if self._scene is None:
            return []
        affected: list[str] = []
        for node in self._scene:
            if script_path in node.scripts:
                node.scripts = [path for path in node.scripts if path != script_path]
                affected.append(node.name)
        return affected

    # ------------------------------------------------------------------
    # Model import
    # ------------------------------------------------------------------

    def import_model(
        self,
        data: bytes,
        filename: str,
        *,
        position: Sequence[float] | None = None,
        scale: Sequence[float] | None = None,
    ) -> SceneNode:
        """Import a model file as a group root holding one mesh per object."""

        scene = self._require_scene()
        suffix = PurePosixPath(filename).suffix.lower()
        if suffix not in MODEL_EXTENSIONS:
            raise UnsupportedModelFormatError(filename)
        base_name = PurePosixPath(filename).stem or "model"
        mesh_names = _model_mesh_names(data, suffix, base_name)

        root = SceneNode(name=self.next_name(base_name), kind="group")
        if position is not None:
            root.position = _vec3(position, label="position")
        if scale is not None:
            root.scaling = _vec3(scale, label="scale")
        scene.add(root)
        for mesh_name in mesh_names:
            scene.add(SceneNode(name=mesh_name, kind="mesh", shape="imported"), parent=root)
        LOGGER.debug("Imported %s as %r with %d mesh(es)", filename, root.name, len(mesh_names))
        return root

    def find(self, name: str) -> SceneNode:
        node = self._require_scene().find(name)
        if node is None:
            raise NodeNotFoundError(name)
        return node


def _model_mesh_names(data: bytes, suffix: str, base_name: str) -> list[str]:
    try:
        if suffix == ".obj":
            names = _unique(_OBJ_OBJECT_PATTERN.findall(data.decode("utf-8", errors="replace")))
        elif suffix == ".glb":
            names = _gltf_mesh_names(_glb_json(data))
        else:
            names = _gltf_mesh_names(json.loads(data.decode("utf-8")))
    except (ValueError, struct.error) as exc:
        raise SceneError(f"Could not parse model data: {exc}") from exc
    return names or [f"{base_name}_mesh"]


def _glb_json(data: bytes) -> Any:
    if len(data) < 20 or data[:4] != _GLB_MAGIC:
        raise ValueError("not a binary glTF container")
    chunk_length, chunk_type = struct.unpack_from("<II", data, 12)
    if chunk_type != _GLB_JSON_CHUNK:
        raise ValueError("first GLB chunk is not JSON")
    return json.loads(data[20 : 20 + chunk_length].decode("utf-8"))


def _gltf_mesh_names(document: Any) -> list[str]:
    if not isinstance(document, dict):
        raise ValueError("model document must be a JSON object")
    meshes = document.get("meshes") or []
    names: list[str] = []
    for index, mesh in enumerate(meshes):
        label = mesh.get("name") if isinstance(mesh, dict) else None
        names.append(str(label) if label else f"mesh_{index}")
    return _unique(names)


def _unique(names: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for name in names:
        if name not in seen:
            seen.add(name)
            ordered.append(name)
    return ordered

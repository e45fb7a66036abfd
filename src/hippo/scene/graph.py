"""In-memory scene graph.

A small node tree standing in for the live 3D scene: meshes, lights, groups
(transform nodes) and cameras. Node lookup is by exact, case-sensitive name;
duplicate names are allowed and resolve to the earliest-created node.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterator, Literal

from .errors import NodeNotFoundError, SceneRuleError

__all__ = ["Vec3", "NodeKind", "SceneNode", "Scene"]

Vec3 = tuple[float, float, float]
NodeKind = Literal["mesh", "light", "group", "camera"]

_LIGHT_TYPE_LABELS = {
    "point": "PointLight",
    "directional": "DirectionalLight",
    "spot": "SpotLight",
    "hemispheric": "HemisphericLight",
}
_POSITIONED_LIGHTS = frozenset({"point", "spot"})
_DIRECTED_LIGHTS = frozenset({"directional", "spot", "hemispheric"})


def _round3(value: float) -> float:
    return round(value * 1000) / 1000


def _round_vec(vector: Vec3) -> list[float]:
    return [_round3(component) for component in vector]


@dataclass(slots=True, eq=False)
class SceneNode:
    """A node in the scene graph. Rotation is stored in radians."""

    name: str
    kind: NodeKind
    position: Vec3 = (0.0, 0.0, 0.0)
    rotation: Vec3 = (0.0, 0.0, 0.0)
    scaling: Vec3 = (1.0, 1.0, 1.0)
    shape: str | None = None
    size: float | None = None
    color: Vec3 | None = None
    light_type: str | None = None
    intensity: float | None = None
    direction: Vec3 | None = None
    scripts: list[str] = field(default_factory=list)
    parent: SceneNode | None = field(default=None, repr=False)
    children: list[SceneNode] = field(default_factory=list, repr=False)

    @property
    def transformable(self) -> bool:
        return self.kind in ("mesh", "group")

    @property
    def type_label(self) -> str:
        if self.kind == "mesh":
            return "Mesh"
        if self.kind == "light":
            return _LIGHT_TYPE_LABELS.get(self.light_type or "", "Light")
        if self.kind == "camera":
            return "Camera"
        return "TransformNode"

    def iter_subtree(self) -> Iterator[SceneNode]:
        yield self
        for child in self.children:
            yield from child.iter_subtree()

    def is_ancestor_of(self, other: SceneNode) -> bool:
        cursor = other.parent
        while cursor is not None:
            if cursor is self:
                return True
            cursor = cursor.parent
        return False

    def snapshot(self) -> dict[str, Any]:
        snap: dict[str, Any] = {"name": self.name, "type": self.type_label}
        if self.transformable or self.kind == "camera":
            snap["position"] = _round_vec(self.position)
        if self.transformable:
            snap["rotation"] = _round_vec(tuple(math.degrees(r) for r in self.rotation))  # type: ignore[arg-type]
            snap["scale"] = _round_vec(self.scaling)
        if self.kind == "mesh":
            if self.shape:
                snap["shape"] = self.shape
            if self.color is not None:
                snap["color"] = _round_vec(self.color)
        if self.kind == "light":
            if self.light_type in _POSITIONED_LIGHTS:
                snap["position"] = _round_vec(self.position)
            snap["intensity"] = _round3(self.intensity if self.intensity is not None else 1.0)
            if self.color is not None:
                snap["color"] = _round_vec(self.color)
            if self.light_type in _DIRECTED_LIGHTS and self.direction is not None:
                snap["direction"] = _round_vec(self.direction)
        if self.scripts:
            snap["scripts"] = list(self.scripts)
        if self.children:
            snap["children"] = [child.snapshot() for child in self.children]
        return snap


class Scene:
    """Ordered collection of scene nodes with parent/child links."""

    def __init__(self) -> None:
        self._nodes: list[SceneNode] = []
        self.active_camera: SceneNode | None = None

    @classmethod
    def create_default(cls) -> Scene:
        """Return a scene with a camera, an ambient light and a ground plane."""

        scene = cls()
        camera = scene.add(SceneNode(name="camera", kind="camera", position=(0.0, 5.0, -20.0)))
        scene.active_camera = camera
        scene.add(
            SceneNode(
                name="default light",
                kind="light",
                light_type="hemispheric",
                intensity=1.0,
                color=(1.0, 1.0, 1.0),
                direction=(0.0, 1.0, 0.0),
            )
        )
        scene.add(
            SceneNode(
                name="ground1",
                kind="mesh",
                shape="ground",
                size=100.0,
                position=(0.0, -1.0, 0.0),
                color=(0.5, 0.5, 0.5),
            )
        )
        return scene

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, name: object) -> bool:
        return any(node.name == name for node in self._nodes)

    def __iter__(self) -> Iterator[SceneNode]:
        return iter(list(self._nodes))

    def nodes(self, kind: NodeKind | None = None) -> list[SceneNode]:
        if kind is None:
            return list(self._nodes)
        return [node for node in self._nodes if node.kind == kind]

    def root_nodes(self) -> list[SceneNode]:
        return [node for node in self._nodes if node.parent is None]

    def find(self, name: str) -> SceneNode | None:
        for node in self._nodes:
            if node.name == name:
                return node
        return None

    def require(self, name: str, *, role: str = "Node") -> SceneNode:
        node = self.find(name)
        if node is None:
            raise NodeNotFoundError(name, role=role)
        return node

    def add(self, node: SceneNode, *, parent: SceneNode | None = None) -> SceneNode:
        self._nodes.append(node)
        if parent is not None:
            self.reparent(node, parent)
        return node

    def remove(self, node: SceneNode) -> list[SceneNode]:
        """Dispose ``node`` and its descendants; returns the removed nodes."""

        removed = list(node.iter_subtree())
        if node.parent is not None:
            node.parent.children.remove(node)
            node.parent = None
        doomed = {id(item) for item in removed}
        self._nodes = [item for item in self._nodes if id(item) not in doomed]
        if self.active_camera is not None and id(self.active_camera) in doomed:
            self.active_camera = None
        return removed

    def reparent(self, node: SceneNode, parent: SceneNode | None) -> None:
        if parent is node:
            raise SceneRuleError(f'Cannot parent "{node.name}" to itself')
        if parent is not None and node.is_ancestor_of(parent):
            raise SceneRuleError(
                f'Cannot parent "{node.name}" under its own descendant "{parent.name}"'
            )
        if node.parent is not None:
            node.parent.children.remove(node)
        node.parent = parent
        if parent is not None:
            parent.children.append(node)

    def snapshot(self) -> list[dict[str, Any]]:
        return [node.snapshot() for node in self.root_nodes()]

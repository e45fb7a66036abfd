"""Scene graph and the mutation service the assistant drives."""

from .errors import (
    NodeNotFoundError,
    SceneError,
    SceneNotReadyError,
    SceneRuleError,
    UnsupportedModelFormatError,
)
from .graph import Scene, SceneNode
from .operations import LIGHT_TYPES, MESH_TYPES, MODEL_EXTENSIONS, SceneOperations

__all__ = [
    "NodeNotFoundError",
    "SceneError",
    "SceneNotReadyError",
    "SceneRuleError",
    "UnsupportedModelFormatError",
    "Scene",
    "SceneNode",
    "LIGHT_TYPES",
    "MESH_TYPES",
    "MODEL_EXTENSIONS",
    "SceneOperations",
]

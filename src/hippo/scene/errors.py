"""Failures raised by scene mutation primitives."""

from __future__ import annotations

__all__ = [
    "SceneError",
    "SceneNotReadyError",
    "NodeNotFoundError",
    "SceneRuleError",
    "UnsupportedModelFormatError",
]


class SceneError(Exception):
    """Base class for recoverable scene mutation failures."""


class SceneNotReadyError(SceneError):
    """Raised when an operation runs before a scene is attached."""

    def __init__(self, message: str = "Scene is not initialized yet") -> None:
        super().__init__(message)


class NodeNotFoundError(SceneError):
    """Raised when a node name does not resolve (names are case-sensitive)."""

    def __init__(self, name: str, *, role: str = "Node") -> None:
        self.name = name
        super().__init__(f'{role} "{name}" not found')


class SceneRuleError(SceneError):
    """Raised when a mutation would violate a structural scene rule."""


class UnsupportedModelFormatError(SceneError):
    """Raised when an imported model has an extension no loader understands."""

    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f'Unsupported model format: "{filename}"')

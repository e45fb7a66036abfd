"""Bulk scene batch executor.

``bulk_scene`` runs an ordered list of scene sub-operations strictly in
sequence with continue-on-error semantics: every operation yields exactly
one :class:`BulkResult` in input order, and a failure at one index never
prevents the next from running. The whole batch executes synchronously so no
sibling tool call can interleave with it. Later operations may reference
nodes created by earlier ones in the same batch.
"""

from __future__ import annotations

import logging
from dataclasses import MISSING, asdict, dataclass, fields
from typing import Any, ClassVar, Mapping, Sequence, Union

from jsonschema import Draft202012Validator

from .errors import InvalidToolInputError, describe_error
from .registry import schema_violations
from .scene_tools import SceneTools

__all__ = [
    "AddMesh",
    "AddLight",
    "UpdateNode",
    "DeleteNode",
    "CreateGroup",
    "SetParent",
    "BulkOperation",
    "BulkOperationError",
    "BulkResult",
    "BulkBatchExecutor",
    "parse_operation",
    "summarize_results",
]

LOGGER = logging.getLogger(__name__)

Vector = Sequence[float]


class BulkOperationError(ValueError):
    """Raised when a single batch entry is malformed."""


# -----------------------------------------------------------------------------
# Operation Variants
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class AddMesh:
    action: ClassVar[str] = "add_mesh"

    type: str
    name: str | None = None
    position: Vector | None = None
    rotation: Vector | None = None
    scale: Vector | None = None
    color: Vector | None = None
    size: float | None = None


@dataclass(slots=True, frozen=True)
class AddLight:
    action: ClassVar[str] = "add_light"

    type: str
    name: str | None = None
    position: Vector | None = None
    direction: Vector | None = None
    intensity: float | None = None
    color: Vector | None = None


@dataclass(slots=True, frozen=True)
class UpdateNode:
    action: ClassVar[str] = "update_node"

    name: str
    position: Vector | None = None
    rotation: Vector | None = None
    scale: Vector | None = None
    color: Vector | None = None
    intensity: float | None = None
    rename: str | None = None


@dataclass(slots=True, frozen=True)
class DeleteNode:
    action: ClassVar[str] = "delete_node"

    name: str


@dataclass(slots=True, frozen=True)
class CreateGroup:
    action: ClassVar[str] = "create_group"

    name: str
    position: Vector | None = None


@dataclass(slots=True, frozen=True)
class SetParent:
    action: ClassVar[str] = "set_parent"

    node: str
    parent: str | None


BulkOperation = Union[AddMesh, AddLight, UpdateNode, DeleteNode, CreateGroup, SetParent]

_VARIANTS: dict[str, type] = {
    variant.action: variant
    for variant in (AddMesh, AddLight, UpdateNode, DeleteNode, CreateGroup, SetParent)
}
ACTIONS: tuple[str, ...] = tuple(_VARIANTS)


def parse_operation(raw: Any) -> BulkOperation:
    """Build the typed variant for one raw batch entry."""

    if not isinstance(raw, Mapping):
        raise BulkOperationError(f"Operation must be an object, got {type(raw).__name__}")
    action = raw.get("action")
    variant = _VARIANTS.get(action) if isinstance(action, str) else None
    if variant is None:
        raise BulkOperationError(
            f'Unknown action "{action}" (expected one of: {", ".join(ACTIONS)})'
        )
    accepted = {item.name: item for item in fields(variant)}
    kwargs = {key: value for key, value in raw.items() if key in accepted}
    required = [
        name
        for name, item in accepted.items()
        if item.default is MISSING and item.default_factory is MISSING
    ]
    missing = [name for name in required if name not in kwargs]
    if missing:
        raise BulkOperationError(f"{action} is missing required field(s): {', '.join(missing)}")
    for name in required:
        if accepted[name].type == "str" and not isinstance(kwargs[name], str):
            raise BulkOperationError(f"{action}.{name} must be a string")
    return variant(**kwargs)


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class BulkResult:
    index: int
    action: str
    success: bool
    message: str

    def report_line(self) -> str:
        return f"{'OK' if self.success else 'FAIL'}: {self.message}"


def summarize_results(results: Sequence[BulkResult]) -> str:
    succeeded = sum(1 for result in results if result.success)
    failed = len(results) - succeeded
    lines = [f"Bulk operation complete: {succeeded} succeeded, {failed} failed."]
    lines.extend(result.report_line() for result in results)
    return "\n".join(lines)


# -----------------------------------------------------------------------------
# Executor
# -----------------------------------------------------------------------------


class BulkBatchExecutor:
    """Runs batches of scene operations through the shared scene handlers.

    ``schemas`` maps an action to the input schema of the matching
    standalone tool; each entry is checked against it before it runs.
    """

    def __init__(
        self,
        scene_tools: SceneTools,
        *,
        schemas: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> None:
        self._scene_tools = scene_tools
        self._validators = {
            action: Draft202012Validator(dict(schema)) for action, schema in (schemas or {}).items()
        }
        self._handlers = {
            AddMesh.action: scene_tools.add_mesh,
            AddLight.action: scene_tools.add_light,
            UpdateNode.action: scene_tools.update_node,
            DeleteNode.action: scene_tools.delete_node,
            CreateGroup.action: scene_tools.create_group,
            SetParent.action: scene_tools.set_parent,
        }

    def execute(self, operations: Sequence[Any]) -> list[BulkResult]:
        results: list[BulkResult] = []
        for index, raw in enumerate(operations):
            action = raw.get("action") if isinstance(raw, Mapping) else None
            label = action if isinstance(action, str) else "unknown"
            try:
                operation = parse_operation(raw)
                self._validate(operation.action, raw)
                arguments = {
                    key: value for key, value in asdict(operation).items() if value is not None
                }
                if isinstance(operation, SetParent):
                    arguments.setdefault("parent", None)
                message = self._handlers[operation.action](arguments)
            except Exception as exc:
                LOGGER.debug("Bulk operation %d (%s) failed: %s", index, label, exc)
                results.append(BulkResult(index, label, False, describe_error(exc)))
            else:
                results.append(BulkResult(index, operation.action, True, message))
        return results

    def _validate(self, action: str, raw: Mapping[str, Any]) -> None:
        validator = self._validators.get(action)
        if validator is None:
            return
        arguments = {key: value for key, value in raw.items() if key != "action"}
        violations = schema_violations(validator, arguments)
        if violations:
            raise InvalidToolInputError(
                message=f"Invalid input for {action}: " + "; ".join(violations),
                violations=violations,
            )

    def handle(self, args: Mapping[str, Any]) -> str:
        """``bulk_scene`` tool handler."""

        operations = args.get("operations")
        if not isinstance(operations, list):
            raise InvalidToolInputError(message="operations must be a list of scene operations")
        results = self.execute(operations)
        LOGGER.debug(
            "Bulk batch finished: %d operation(s), %d failed",
            len(results),
            sum(1 for result in results if not result.success),
        )
        return summarize_results(results)

"""Tool registry.

Maps each :class:`ToolName` to its spec and handler. Lookups by raw string
fail with :class:`UnknownToolError`; inputs are checked against the spec's
JSON Schema before the handler runs and violations raise
:class:`InvalidToolInputError`. Once frozen the registry rejects further
registrations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from .errors import InvalidToolInputError, UnknownToolError
from .types import SimpleTool, ToolHandler, ToolName, ToolSpec

__all__ = [
    "ToolRegistry",
    "ToolRegistration",
    "DuplicateToolError",
    "RegistryFrozenError",
    "schema_violations",
]

LOGGER = logging.getLogger(__name__)

MAX_SCHEMA_ERRORS = 5


def schema_violations(validator: Draft202012Validator, arguments: Mapping[str, Any]) -> list[str]:
    """Readable messages for the first few schema violations in ``arguments``."""
    violations: list[str] = []
    for issue in validator.iter_errors(dict(arguments)):
        path = ".".join(str(item) for item in issue.absolute_path)
        violations.append(f"{path}: {issue.message}" if path else issue.message)
        if len(violations) >= MAX_SCHEMA_ERRORS:
            break
    return violations


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class DuplicateToolError(Exception):
    """Raised when attempting to register a tool with a name that already exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class RegistryFrozenError(RuntimeError):
    """Raised when registering into a registry that has been frozen."""


# -----------------------------------------------------------------------------
# Tool Registration
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ToolRegistration:
    """Record of a registered tool."""

    tool: SimpleTool
    validator: Draft202012Validator

    @property
    def name(self) -> ToolName:
        return self.tool.name

    @property
    def spec(self) -> ToolSpec:
        return self.tool.spec

    def validate(self, arguments: Mapping[str, Any]) -> None:
        violations = schema_violations(self.validator, arguments)
        if violations:
            raise InvalidToolInputError(
                message=f"Invalid input for {self.name.value}: " + "; ".join(violations),
                violations=violations,
            )


# -----------------------------------------------------------------------------
# Tool Registry
# -----------------------------------------------------------------------------


class ToolRegistry:
    """Registry for managing tool registrations.

    Example:
        registry = ToolRegistry()
        registry.register_function(
            ToolSpec(name=ToolName.GET_SCENE, description="Snapshot the scene"),
            lambda args: "[]",
        )
        output = await registry.invoke("get_scene", {})
    """

    def __init__(self) -> None:
        self._tools: dict[ToolName, ToolRegistration] = {}
        self._frozen = False

    def register(self, tool: SimpleTool) -> ToolRegistration:
        """Register a tool implementation.

        Raises:
            DuplicateToolError: If the tool name is already registered.
            RegistryFrozenError: If the registry has been frozen.
            SchemaError: If the tool's parameter schema is itself invalid.
        """
        if self._frozen:
            raise RegistryFrozenError(f"Cannot register '{tool.name.value}': registry is frozen")
        if tool.name in self._tools:
            raise DuplicateToolError(tool.name.value)
        schema = tool.spec.input_schema()
        try:
            Draft202012Validator.check_schema(schema)
        except SchemaError:
            LOGGER.error("Invalid input schema for tool %s", tool.name.value)
            raise
        registration = ToolRegistration(
            tool=tool,
            validator=Draft202012Validator(schema),
        )
        self._tools[tool.name] = registration
        LOGGER.debug("Registered tool: %s", tool.name.value)
        return registration

    def register_function(self, spec: ToolSpec, handler: ToolHandler) -> ToolRegistration:
        """Register a function as a tool."""
        return self.register(SimpleTool(spec=spec, handler=handler))

    def freeze(self) -> ToolRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def resolve(self, name: str | ToolName) -> ToolRegistration:
        """Return the registration for ``name`` or raise :class:`UnknownToolError`."""
        tool_name = name if isinstance(name, ToolName) else ToolName.parse(str(name))
        registration = self._tools.get(tool_name) if tool_name is not None else None
        if registration is None:
            raise UnknownToolError.for_name(str(getattr(name, "value", name)))
        return registration

    def get(self, name: str | ToolName) -> SimpleTool | None:
        try:
            return self.resolve(name).tool
        except UnknownToolError:
            return None

    def get_registration(self, name: str | ToolName) -> ToolRegistration | None:
        try:
            return self.resolve(name)
        except UnknownToolError:
            return None

    def list_tools(self) -> list[ToolSpec]:
        return [registration.spec for registration in self._tools.values()]

    def list_names(self) -> list[str]:
        return [name.value for name in self._tools]

    def get_openai_tools(
        self,
        *,
        filter_names: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Get tool definitions in OpenAI format."""
        tools: list[dict[str, Any]] = []
        for registration in self._tools.values():
            if filter_names is not None and registration.name.value not in filter_names:
                continue
            tools.append(registration.spec.to_openai_tool())
        return tools

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def invoke(self, name: str | ToolName, arguments: Mapping[str, Any] | None) -> str:
        """Validate ``arguments`` and run the tool, returning its result string.

        Raises:
            UnknownToolError: If ``name`` is not registered.
            InvalidToolInputError: If ``arguments`` violate the input contract.
        """
        registration = self.resolve(name)
        payload = dict(arguments or {})
        registration.validate(payload)
        return await registration.tool.execute(payload)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        if isinstance(name, ToolName):
            return name in self._tools
        parsed = ToolName.parse(str(name))
        return parsed is not None and parsed in self._tools

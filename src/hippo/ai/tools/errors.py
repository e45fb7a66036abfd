"""Standardized error types for assistant tools.

Handlers raise these (or scene errors) to reject a tool call. The
orchestrator records the human-readable ``message`` as the tool part's
``error_text``; ``to_dict`` is kept for structured logging.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for error codes used in tool responses."""

    # Contract errors
    UNKNOWN_TOOL = "unknown_tool"
    INVALID_PARAMETER = "invalid_parameter"

    # Scene errors
    SCENE_NOT_READY = "scene_not_ready"
    NODE_NOT_FOUND = "node_not_found"
    SCENE_RULE_VIOLATION = "scene_rule_violation"
    UNSUPPORTED_FORMAT = "unsupported_format"

    # Content store errors
    SCRIPT_NOT_FOUND = "script_not_found"
    ASSET_NOT_FOUND = "asset_not_found"
    EDIT_TARGET_MISSING = "edit_target_missing"

    # General errors
    INTERNAL_ERROR = "internal_error"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class ToolError(Exception):
    """Base exception class for all tool errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for structured logs."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# -----------------------------------------------------------------------------
# Contract Errors
# -----------------------------------------------------------------------------

@dataclass
class UnknownToolError(ToolError):
    """Raised when a tool call names a tool that is not registered."""

    error_code: str = field(default=ErrorCode.UNKNOWN_TOOL)
    message: str = field(default="Unknown tool")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Call one of the tools listed in the tool reference")

    tool_name: str | None = field(default=None)

    @classmethod
    def for_name(cls, tool_name: str) -> "UnknownToolError":
        return cls(message=f'Unknown tool "{tool_name}"', tool_name=tool_name)


@dataclass
class InvalidToolInputError(ToolError):
    """Raised when tool arguments violate the tool's input contract."""

    error_code: str = field(default=ErrorCode.INVALID_PARAMETER)
    message: str = field(default="Invalid tool input")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Check the tool's parameter schema and retry")

    violations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.violations:
            result["violations"] = list(self.violations)
        return result


# -----------------------------------------------------------------------------
# Content Store Errors
# -----------------------------------------------------------------------------

@dataclass
class ScriptNotFoundError(ToolError):
    """Raised when a script path does not resolve to stored content."""

    error_code: str = field(default=ErrorCode.SCRIPT_NOT_FOUND)
    message: str = field(default="Script not found")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Use list_scripts to see available scripts")

    path: str | None = field(default=None)

    @classmethod
    def for_path(cls, path: str) -> "ScriptNotFoundError":
        return cls(message=f'Script "{path}" not found', path=path)


@dataclass
class AssetNotFoundError(ToolError):
    """Raised when an asset path is missing from the content store."""

    error_code: str = field(default=ErrorCode.ASSET_NOT_FOUND)
    message: str = field(default="Asset not found")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Use list_assets to see available files")

    path: str | None = field(default=None)

    @classmethod
    def for_path(cls, path: str) -> "AssetNotFoundError":
        return cls(message=f'Asset "{path}" not found', path=path)


@dataclass
class EditTargetNotFoundError(ToolError):
    """Raised when ``old_string`` does not occur in the current script."""

    error_code: str = field(default=ErrorCode.EDIT_TARGET_MISSING)
    message: str = field(default="old_string not found in script")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Re-read the script with read_script and copy the exact text")

    path: str | None = field(default=None)


def describe_error(exc: BaseException) -> str:
    """Return the text recorded as a failed tool call's ``error_text``."""
    if isinstance(exc, ToolError):
        return exc.message
    text = str(exc)
    return text or exc.__class__.__name__

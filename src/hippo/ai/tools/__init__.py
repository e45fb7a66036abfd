"""Assistant tools: names, contracts, handlers and the registry."""

from .bulk import (
    AddLight,
    AddMesh,
    BulkBatchExecutor,
    BulkOperation,
    BulkOperationError,
    BulkResult,
    CreateGroup,
    DeleteNode,
    SetParent,
    UpdateNode,
    parse_operation,
    summarize_results,
)
from .errors import (
    AssetNotFoundError,
    EditTargetNotFoundError,
    ErrorCode,
    InvalidToolInputError,
    ScriptNotFoundError,
    ToolError,
    UnknownToolError,
    describe_error,
)
from .registry import DuplicateToolError, RegistryFrozenError, ToolRegistration, ToolRegistry
from .scene_tools import SceneTools
from .script_tools import ScriptTools
from .tool_wiring import TOOL_SPECS, ToolContext, build_default_registry
from .types import SimpleTool, ToolHandler, ToolName, ToolSpec

__all__ = [
    "AddLight",
    "AddMesh",
    "BulkBatchExecutor",
    "BulkOperation",
    "BulkOperationError",
    "BulkResult",
    "CreateGroup",
    "DeleteNode",
    "SetParent",
    "UpdateNode",
    "parse_operation",
    "summarize_results",
    "AssetNotFoundError",
    "EditTargetNotFoundError",
    "ErrorCode",
    "InvalidToolInputError",
    "ScriptNotFoundError",
    "ToolError",
    "UnknownToolError",
    "describe_error",
    "DuplicateToolError",
    "RegistryFrozenError",
    "ToolRegistration",
    "ToolRegistry",
    "SceneTools",
    "ScriptTools",
    "TOOL_SPECS",
    "ToolContext",
    "build_default_registry",
    "SimpleTool",
    "ToolHandler",
    "ToolName",
    "ToolSpec",
]

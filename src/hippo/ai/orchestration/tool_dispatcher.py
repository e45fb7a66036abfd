"""Tool Dispatcher.

Routes one tool invocation through the registry and converts every outcome
into a :class:`DispatchResult`. Dispatch never raises: unknown tools,
contract violations, collaborator failures and unexpected handler errors all
come back as unsuccessful results carrying the text recorded on the tool
part.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from ...assets.store import AssetStoreError
from ...scene.errors import (
    NodeNotFoundError,
    SceneError,
    SceneNotReadyError,
    UnsupportedModelFormatError,
)
from ..tools.errors import ErrorCode, ToolError, describe_error
from ..tools.registry import ToolRegistry

__all__ = ["DispatchResult", "DispatchListener", "ToolDispatcher"]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Dispatch Result
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class DispatchResult:
    """Result of a tool dispatch operation.

    Attributes:
        success: Whether the tool executed successfully.
        output: The handler's result string when successful.
        error: Human-readable failure text when unsuccessful.
        error_code: Machine-readable code for the failure.
        tool_name: Name of the tool executed.
        call_id: Identifier of the tool invocation.
        execution_time_ms: Execution time in milliseconds.
    """

    success: bool
    output: str | None = None
    error: str | None = None
    error_code: str | None = None
    tool_name: str = ""
    call_id: str = ""
    execution_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "success": self.success,
            "tool_name": self.tool_name,
            "call_id": self.call_id,
            "execution_time_ms": self.execution_time_ms,
        }
        if self.success:
            data["output"] = self.output
        else:
            data["error"] = {"code": self.error_code, "message": self.error}
        return data


# -----------------------------------------------------------------------------
# Dispatch Listener
# -----------------------------------------------------------------------------


class DispatchListener(Protocol):
    """Callback protocol for dispatch events."""

    def on_tool_start(self, tool_name: str, arguments: Mapping[str, Any]) -> None:
        """Called when a tool starts execution."""
        ...

    def on_tool_complete(self, result: DispatchResult) -> None:
        """Called when a tool completes, successfully or not."""
        ...

    def on_tool_error(self, tool_name: str, error: ToolError) -> None:
        """Called when a tool fails."""
        ...


def _as_tool_error(exc: Exception) -> ToolError:
    if isinstance(exc, ToolError):
        return exc
    if isinstance(exc, SceneNotReadyError):
        code = ErrorCode.SCENE_NOT_READY
    elif isinstance(exc, NodeNotFoundError):
        code = ErrorCode.NODE_NOT_FOUND
    elif isinstance(exc, UnsupportedModelFormatError):
        code = ErrorCode.UNSUPPORTED_FORMAT
    elif isinstance(exc, SceneError):
        code = ErrorCode.SCENE_RULE_VIOLATION
    elif isinstance(exc, AssetStoreError):
        code = ErrorCode.INVALID_PARAMETER
    else:
        code = ErrorCode.INTERNAL_ERROR
    return ToolError(error_code=code, message=describe_error(exc))


# -----------------------------------------------------------------------------
# Tool Dispatcher
# -----------------------------------------------------------------------------


class ToolDispatcher:
    """Dispatches tool calls to registered implementations.

    Example:
        dispatcher = ToolDispatcher(registry)
        result = await dispatcher.dispatch("get_scene", {}, call_id="call_1")
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        listener: DispatchListener | None = None,
    ) -> None:
        self._registry = registry
        self._listener = listener

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def set_listener(self, listener: DispatchListener | None) -> None:
        """Set or replace the dispatch event listener."""
        self._listener = listener

    async def dispatch(
        self,
        tool_name: str,
        arguments: Mapping[str, Any] | None,
        *,
        call_id: str = "",
    ) -> DispatchResult:
        """Run one tool call and report its outcome."""
        start = time.perf_counter()
        payload = dict(arguments or {})
        self._notify("on_tool_start", tool_name, payload)

        try:
            output = await self._registry.invoke(tool_name, payload)
        except Exception as exc:
            if not isinstance(exc, (ToolError, SceneError, AssetStoreError)):
                LOGGER.exception("Tool %s failed unexpectedly", tool_name)
            error = _as_tool_error(exc)
            result = DispatchResult(
                success=False,
                error=error.message,
                error_code=error.error_code,
                tool_name=tool_name,
                call_id=call_id,
                execution_time_ms=_elapsed_ms(start),
            )
            self._notify("on_tool_error", tool_name, error)
        else:
            result = DispatchResult(
                success=True,
                output=output,
                tool_name=tool_name,
                call_id=call_id,
                execution_time_ms=_elapsed_ms(start),
            )

        self._notify("on_tool_complete", result)
        return result

    def _notify(self, event: str, *args: Any) -> None:
        if self._listener is None:
            return
        callback = getattr(self._listener, event, None)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            LOGGER.debug("Listener %s failed", event, exc_info=True)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 3)

"""Turn orchestration: dispatch, loop guard and the chat orchestrator."""

from .loop_guard import (
    MAX_CONSECUTIVE_ERRORS,
    MAX_ROUND_TRIPS,
    SIGNATURE_WINDOW,
    LoopDecision,
    LoopGuard,
    LoopGuardConfig,
    LoopGuardState,
    StopReason,
    error_key,
    tool_key,
)
from .orchestrator import (
    ChatOrchestrator,
    MessageCallback,
    ModelClient,
    OrchestratorBusyError,
    OrchestratorConfig,
    TurnOutcome,
    TurnStatus,
)
from .tool_dispatcher import DispatchListener, DispatchResult, ToolDispatcher

__all__ = [
    "MAX_CONSECUTIVE_ERRORS",
    "MAX_ROUND_TRIPS",
    "SIGNATURE_WINDOW",
    "LoopDecision",
    "LoopGuard",
    "LoopGuardConfig",
    "LoopGuardState",
    "StopReason",
    "error_key",
    "tool_key",
    "ChatOrchestrator",
    "MessageCallback",
    "ModelClient",
    "OrchestratorBusyError",
    "OrchestratorConfig",
    "TurnOutcome",
    "TurnStatus",
    "DispatchListener",
    "DispatchResult",
    "ToolDispatcher",
]

"""Script language services."""

from .diagnostics import (
    DelimiterDiagnostics,
    DiagnosticService,
    NullDiagnostics,
    format_diagnostics,
    run_diagnostics,
)

__all__ = [
    "DelimiterDiagnostics",
    "DiagnosticService",
    "NullDiagnostics",
    "format_diagnostics",
    "run_diagnostics",
]

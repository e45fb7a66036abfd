"""Script diagnostics.

``create_script`` and ``edit_script`` run the new source through a
:class:`DiagnosticService` and append any findings to their result text. A
real host plugs in a TypeScript language service; the built-in
:class:`DelimiterDiagnostics` is a lightweight line scanner that catches the
mistakes a model most often makes when emitting code.
"""

from __future__ import annotations

import inspect
import re
from typing import Awaitable, Protocol, Sequence, Union, runtime_checkable

__all__ = [
    "DiagnosticService",
    "NullDiagnostics",
    "DelimiterDiagnostics",
    "run_diagnostics",
    "format_diagnostics",
]

_PAIRS = {")": "(", "]": "[", "}": "{"}
_OPENERS = frozenset(_PAIRS.values())
_DEFAULT_EXPORT_PATTERN = re.compile(
    r"export\s+default\s+class\s+\w+\s+extends\s+Script\b"
)
_MAX_FINDINGS = 20

DiagnosticsResult = Union[Sequence[str], Awaitable[Sequence[str]]]


@runtime_checkable
class DiagnosticService(Protocol):
    """Checks script source and returns human-readable error strings."""

    def check(self, path: str, source: str) -> DiagnosticsResult:
        ...


class NullDiagnostics:
    """Diagnostic service that never reports anything."""

    def check(self, path: str, source: str) -> list[str]:
        return []


class DelimiterDiagnostics:
    """Minimal checker for unbalanced delimiters and unterminated strings."""

    def __init__(self, *, require_default_export: bool = True) -> None:
        self._require_default_export = require_default_export

    def check(self, path: str, source: str) -> list[str]:
        findings = self._scan(source)
        if self._require_default_export and not _DEFAULT_EXPORT_PATTERN.search(source):
            findings.append(
                f"{path}: missing `export default class ... extends Script`"
            )
        return findings[:_MAX_FINDINGS]

    def _scan(self, source: str) -> list[str]:
        findings: list[str] = []
        stack: list[tuple[str, int]] = []
        in_block_comment = False
        in_template = False
        template_line = 0

        for line_number, line in enumerate(source.splitlines(), start=1):
            index = 0
            quote: str | None = None
            while index < len(line):
                char = line[index]
                pair = line[index : index + 2]
                if in_block_comment:
                    if pair == "*/":
                        in_block_comment = False
                        index += 1
                elif in_template:
                    if char == "\\":
                        index += 1
                    elif char == "`":
                        in_template = False
                elif quote is not None:
                    if char == "\\":
                        index += 1
                    elif char == quote:
                        quote = None
                elif pair == "//":
                    break
                elif pair == "/*":
                    in_block_comment = True
                    index += 1
                elif char in ("'", '"'):
                    quote = char
                elif char == "`":
                    in_template = True
                    template_line = line_number
                elif char in _OPENERS:
                    stack.append((char, line_number))
                elif char in _PAIRS:
                    if stack and stack[-1][0] == _PAIRS[char]:
                        stack.pop()
                    else:
                        findings.append(f"line {line_number}: unexpected '{char}'")
                index += 1
            if quote is not None:
                findings.append(f"line {line_number}: unterminated string literal")

        if in_template:
            findings.append(f"line {template_line}: unterminated template literal")
        if in_block_comment:
            findings.append("unterminated block comment")
        for opener, line_number in stack:
            findings.append(f"line {line_number}: unclosed '{opener}'")
        return findings


async def run_diagnostics(service: DiagnosticService, path: str, source: str) -> list[str]:
    """Invoke ``service`` and await its result when it is asynchronous."""

    result = service.check(path, source)
    if inspect.isawaitable(result):
        result = await result
    return [str(item) for item in result]


def format_diagnostics(findings: Sequence[str]) -> str:
    if not findings:
        return ""
    lines = "\n".join(f"- {finding}" for finding in findings)
    return f"\n\nDiagnostics ({len(findings)}):\n{lines}"

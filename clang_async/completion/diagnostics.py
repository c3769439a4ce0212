"""Syntax-check frame parsing (`file:line:col: severity: message`)."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

from clang_async.worker.errors import MalformedFrame

_DIAGNOSTIC_RE = re.compile(
    r"^(?P<file>.+?):(?P<line>\d+):(?P<column>\d+):"
    r"(?:\{[^}]*\}:)*\s*"
    r"(?P<severity>fatal error|error|warning|note|remark):\s*"
    r"(?P<message>.*)$"
)

_SEVERITY_NAMES = {
    "fatal error": "error",
    "error": "error",
    "warning": "warning",
    "note": "info",
    "remark": "hint",
}


@dataclass(frozen=True)
class Diagnostic:
    file_path: str
    line: int
    column: int
    severity: str
    message: str
    source: str = "clang"


class DiagnosticsSink:
    """Parses syntax-check frames and keeps the latest diagnostics list."""

    def __init__(self) -> None:
        self.diagnostics: list[Diagnostic] = []

    def consume(
        self, text: str, *, file_path: str = "", line_offset: int = 0, strict: bool = False
    ) -> list[Diagnostic]:
        self.diagnostics = self.parse(text, file_path=file_path, line_offset=line_offset, strict=strict)
        return list(self.diagnostics)

    def clear(self) -> None:
        self.diagnostics = []

    @staticmethod
    def parse(
        text: str, *, file_path: str = "", line_offset: int = 0, strict: bool = False
    ) -> list[Diagnostic]:
        """`line_offset` lines of implicit-include text precede the visible buffer."""
        out: list[Diagnostic] = []
        seen: set[tuple[str, int, int, str]] = set()
        for raw_line in str(text or "").splitlines():
            m = _DIAGNOSTIC_RE.match(raw_line.strip())
            if m is None:
                continue
            path = m.group("file")
            if file_path and not _same_file(path, file_path):
                continue
            line = int(m.group("line")) - max(0, int(line_offset))
            if line < 1:
                continue
            column = max(1, int(m.group("column")))
            message = m.group("message").strip()
            key = (path, line, column, message)
            if key in seen:
                continue
            seen.add(key)
            out.append(
                Diagnostic(
                    file_path=path,
                    line=line,
                    column=column,
                    severity=_SEVERITY_NAMES[m.group("severity")],
                    message=message,
                )
            )
        if strict and not out and str(text or "").strip() and not _has_any_diagnostic(text):
            raise MalformedFrame("Syntax-check frame has no diagnostic lines.")
        return out


def _has_any_diagnostic(text: str) -> bool:
    return any(_DIAGNOSTIC_RE.match(line.strip()) for line in str(text or "").splitlines())


def _same_file(reported: str, file_path: str) -> bool:
    if reported == file_path:
        return True
    if not os.path.isabs(reported):
        return os.path.basename(reported) == os.path.basename(file_path)
    return os.path.abspath(reported) == os.path.abspath(file_path)

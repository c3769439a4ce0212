"""Small dataclasses/enums shared by the worker transport and its consumers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RequestMode(Enum):
    """Which response parser currently owns the worker's output stream."""

    NONE = "none"
    COMPLETION = "completion"
    SYNTAX_CHECK = "syntax_check"


class EngineState(Enum):
    IDLE = "idle"
    WAITING = "waiting"
    ACKNOWLEDGED = "acknowledged"
    PREEMPTED = "preempted"


@dataclass(frozen=True)
class Incomplete:
    buffered: int = 0


@dataclass(frozen=True)
class FrameComplete:
    mode: RequestMode
    text: str


@dataclass(frozen=True)
class WorkerCrashed:
    mode: RequestMode
    discarded_bytes: int
    reason: str


FrameEvent = Incomplete | FrameComplete | WorkerCrashed


def utf8_column(line_text: str, codepoint_index: int) -> int:
    """1-based byte column of `codepoint_index` inside `line_text`."""
    if not line_text:
        return 1
    idx = max(0, min(len(line_text), int(codepoint_index)))
    return len(line_text[:idx].encode("utf-8")) + 1


def line_at(source_text: str, line: int) -> str:
    lines = str(source_text or "").splitlines()
    idx = max(0, int(line) - 1)
    if idx >= len(lines):
        return ""
    return str(lines[idx] or "")

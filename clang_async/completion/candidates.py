"""Parse `COMPLETION: name : detail` frames into merged candidates."""

from __future__ import annotations

import re
from dataclasses import dataclass

from clang_async.worker.errors import MalformedFrame

_COMPLETION_LINE_RE = re.compile(r"^COMPLETION: (?P<name>[^\s:]+)(?: : (?P<detail>.*))?$")
_MARKERS_RE = re.compile(r"<#|#>|\[#|\{#|#\}")

# Worker-internal marker for code patterns; never a real completion.
_PATTERN_NAME = "Pattern"


@dataclass(frozen=True)
class Candidate:
    name: str
    help_text: str = ""

    @property
    def help_lines(self) -> list[str]:
        return [line for line in self.help_text.split("\n") if line]

    @property
    def documentation(self) -> str:
        return clean_document(self.help_text)


def clean_document(text: str) -> str:
    """Help text with placeholder markers removed for display."""
    if not text:
        return ""
    cleaned = str(text).replace("#]", " ")
    return _MARKERS_RE.sub("", cleaned)


class CompletionParser:
    def parse(self, text: str, *, prefix: str = "", strict: bool = False) -> list[Candidate]:
        names: list[str] = []
        details: dict[str, list[str]] = {}
        matched_any = False
        pfx = str(prefix or "")

        for raw_line in str(text or "").splitlines():
            m = _COMPLETION_LINE_RE.match(raw_line.rstrip("\r"))
            if m is None:
                continue
            matched_any = True
            name = m.group("name")
            if name == _PATTERN_NAME:
                continue
            if pfx and not name.startswith(pfx):
                continue
            detail = m.group("detail")
            # Overloads of one name merge into its first occurrence.
            if name not in details:
                names.append(name)
                details[name] = []
            if detail:
                details[name].append(detail)

        if strict and not matched_any and str(text or "").strip():
            raise MalformedFrame("Completion frame has no COMPLETION lines.")
        return [Candidate(name=name, help_text="\n".join(details[name])) for name in names]

"""Completion provider contracts (pure Python).

Editors talk to completion backends through these queries only; results are
plain data and requesting them has no UI side effects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class CompletionProviderCapabilities:
    completion: bool = True
    templates: bool = True
    diagnostics: bool = True


@runtime_checkable
class CompletionProvider(Protocol):
    capabilities: CompletionProviderCapabilities

    def update_settings(self, completion_cfg: dict) -> None:
        ...

    def supports_file(self, file_path: str) -> bool:
        ...

    def on_editor_attached(self, *, editor_id: str, file_path: str, source_text: str, language_id: str = "") -> None:
        ...

    def on_editor_detached(self, editor_id: str) -> None:
        ...

    def request_completion(
        self,
        *,
        file_path: str,
        source_text: str,
        line: int,
        column: int,
        prefix: str,
        token: int,
        reason: str = "auto",
    ) -> None:
        ...

    def request_syntax_check(self, *, file_path: str, source_text: str) -> None:
        ...

    def candidates(self, file_path: str) -> list:
        ...

    def templates_for(self, file_path: str, name: str) -> list:
        ...

    def expand(self, file_path: str, variant: object) -> object:
        ...

    def diagnostics(self, file_path: str) -> list:
        ...

    def shutdown(self) -> None:
        ...

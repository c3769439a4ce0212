"""Completion provider for C/C++ documents backed by clang-complete workers."""

from __future__ import annotations

import os
import re
import textwrap
from collections import Counter
from typing import Any, Callable

from PySide6.QtCore import QObject, Signal

from clang_async.completion.candidates import Candidate
from clang_async.completion.diagnostics import Diagnostic
from clang_async.completion.templates import TemplateExpansion, TemplateVariant
from clang_async.services.completion_provider import CompletionProviderCapabilities
from clang_async.settings_models import DEFAULT_COMPLETION_SETTINGS
from clang_async.worker.types import line_at

from .clang_document import ClangDocumentEngine, CompletionResult

CPP_FILE_EXTENSIONS = (".c", ".h", ".cpp", ".hpp", ".cc", ".cxx", ".hh", ".hxx", ".m", ".mm")
# Editor language ids and the `-x` dialect each one selects.
CPP_LANGUAGE_IDS = {
    "c": "c",
    "cpp": "c++",
    "objective-c": "objective-c",
    "objective-cpp": "objective-c++",
}

_SUFFIX_DIALECTS = {".c": "c", ".m": "objective-c", ".mm": "objective-c++"}
_IDENTIFIER_TAIL_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*$")


class ClangLanguagePack(QObject):
    """One `ClangDocumentEngine` per open document, shared by editors on the same file."""

    completionReady = Signal(object)
    completionDiscarded = Signal(str)  # file_path
    diagnosticsUpdated = Signal(str, object)
    statusMessage = Signal(str)

    capabilities = CompletionProviderCapabilities(
        completion=True,
        templates=True,
        diagnostics=True,
    )

    def __init__(
        self,
        project_root: str,
        canonicalize: Callable[[str], str] | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._canonicalize = canonicalize or _default_canonicalize
        self._project_root = self._canonicalize(project_root)
        self._completion_cfg: dict[str, Any] = dict(DEFAULT_COMPLETION_SETTINGS)
        self._cpp_cfg: dict[str, Any] = {}

        self._engines: dict[str, ClangDocumentEngine] = {}
        self._editor_files: dict[str, str] = {}
        self._open_counts: Counter[str] = Counter()
        self._tokens: dict[str, int] = {}
        self._dialects: dict[str, str] = {}

    def update_settings(self, completion_cfg: dict) -> None:
        if isinstance(completion_cfg, dict):
            self._completion_cfg = {**DEFAULT_COMPLETION_SETTINGS, **completion_cfg}

    def update_project_settings(self, cpp_cfg: dict) -> None:
        self._cpp_cfg = dict(cpp_cfg) if isinstance(cpp_cfg, dict) else {}
        for path, engine in self._engines.items():
            engine.update_settings(self._settings_for(path))

    def supports_file(self, file_path: str) -> bool:
        suffix = os.path.splitext(str(file_path or ""))[1].lower()
        return suffix in CPP_FILE_EXTENSIONS

    def engine_for(self, file_path: str) -> ClangDocumentEngine | None:
        return self._engines.get(self._canonicalize(file_path))

    def on_editor_attached(self, *, editor_id: str, file_path: str, source_text: str, language_id: str = "") -> None:
        """Track one editor on `file_path`; the first editor on a file starts its worker."""
        if not editor_id:
            return
        cpath = self._canonicalize(file_path)
        current = self._editor_files.get(editor_id)
        if current == cpath:
            self.on_document_changed(file_path=cpath, source_text=source_text)
            return
        if current is not None:
            self.on_editor_detached(editor_id)
        if not self.supports_file(cpath):
            return

        self._editor_files[editor_id] = cpath
        self._open_counts[cpath] += 1
        dialect = CPP_LANGUAGE_IDS.get(str(language_id or "").strip().lower())
        if dialect and self._dialects.get(cpath) != dialect:
            self._dialects[cpath] = dialect
            known = self._engines.get(cpath)
            if known is not None:
                known.update_settings(self._settings_for(cpath))
        engine = self._ensure_engine(cpath)
        if engine.is_available():
            engine.document_changed(source_text or "")
        else:
            engine.start(source_text or "")

    def on_editor_detached(self, editor_id: str) -> None:
        cpath = self._editor_files.pop(editor_id, None)
        if cpath is None:
            return
        self._open_counts[cpath] -= 1
        if self._open_counts[cpath] <= 0:
            del self._open_counts[cpath]
            self._close_engine(cpath)

    def on_document_changed(self, *, file_path: str, source_text: str) -> None:
        engine = self.engine_for(file_path)
        if engine is not None:
            engine.document_changed(source_text)

    def on_document_saved(self, *, file_path: str, source_text: str | None = None) -> None:
        engine = self.engine_for(file_path)
        if engine is not None:
            engine.document_saved(source_text)

    def request_completion(
        self,
        *,
        file_path: str,
        source_text: str,
        line: int,
        column: int,
        prefix: str | None = None,
        token: int = 1,
        reason: str = "auto",
    ) -> None:
        cpath = self._canonicalize(file_path)
        tok = max(1, int(token))
        if prefix is None:
            prefix = completion_prefix_at(source_text, int(line), int(column))
        if not self.supports_file(cpath) or not bool(self._cpp_cfg.get("enable", True)):
            self._emit_items(cpath, tok, str(prefix or ""), [], reason=reason)
            return

        self._tokens[cpath] = tok
        engine = self._ensure_engine(cpath)
        engine.request_completion(
            source_text=source_text,
            line=int(line),
            column=int(column),
            prefix=str(prefix or ""),
        )

    def request_syntax_check(self, *, file_path: str, source_text: str) -> None:
        cpath = self._canonicalize(file_path)
        if not self.supports_file(cpath):
            self.diagnosticsUpdated.emit(cpath, [])
            return
        self._ensure_engine(cpath).request_syntax_check(source_text)

    def candidates(self, file_path: str) -> list[Candidate]:
        engine = self.engine_for(file_path)
        return engine.candidates() if engine is not None else []

    def templates_for(self, file_path: str, name: str) -> list[TemplateVariant]:
        engine = self.engine_for(file_path)
        return engine.templates_for(str(name or "")) if engine is not None else []

    def expand(self, file_path: str, variant: TemplateVariant) -> TemplateExpansion | None:
        engine = self.engine_for(file_path)
        return engine.expand(variant) if engine is not None else None

    def diagnostics(self, file_path: str) -> list[Diagnostic]:
        engine = self.engine_for(file_path)
        return engine.diagnostics() if engine is not None else []

    def clear_file_diagnostics(self, file_path: str) -> None:
        self.diagnosticsUpdated.emit(self._canonicalize(file_path), [])

    def shutdown(self) -> None:
        for cpath in list(self._engines):
            self._close_engine(cpath)
        self._editor_files.clear()
        self._open_counts.clear()
        self._tokens.clear()
        self._dialects.clear()

    def _settings_for(self, cpath: str) -> dict[str, Any]:
        """Configured `language` wins, then the editor language id, then the file suffix."""
        settings = dict(self._cpp_cfg)
        if "language" not in settings:
            suffix = os.path.splitext(cpath)[1].lower()
            dialect = self._dialects.get(cpath) or _SUFFIX_DIALECTS.get(suffix)
            if dialect:
                settings["language"] = dialect
        return settings

    def _ensure_engine(self, cpath: str) -> ClangDocumentEngine:
        engine = self._engines.get(cpath)
        if engine is not None:
            return engine
        engine = ClangDocumentEngine(
            cpath,
            settings=self._settings_for(cpath),
            project_root=self._project_root,
            parent=self,
        )
        engine.completionReady.connect(lambda result, p=cpath: self._on_completion_ready(p, result))
        engine.completionDiscarded.connect(lambda p=cpath: self.completionDiscarded.emit(p))
        engine.diagnosticsUpdated.connect(self.diagnosticsUpdated.emit)
        engine.requestFailed.connect(lambda kind, reason, p=cpath: self._on_request_failed(p, kind, reason))
        engine.statusMessage.connect(self.statusMessage.emit)
        engine.trafficLogged.connect(self._on_worker_traffic)
        self._engines[cpath] = engine
        return engine

    def _close_engine(self, cpath: str) -> None:
        engine = self._engines.pop(cpath, None)
        self._tokens.pop(cpath, None)
        self._dialects.pop(cpath, None)
        if engine is None:
            return
        engine.shutdown()
        engine.deleteLater()
        self.diagnosticsUpdated.emit(cpath, [])

    def _on_completion_ready(self, cpath: str, result: CompletionResult) -> None:
        self._emit_items(cpath, self._tokens.get(cpath, 1), result.prefix, result.candidates)

    def _on_request_failed(self, cpath: str, kind: str, reason: str) -> None:
        self.statusMessage.emit(f"C/C++ {kind} failed: {reason}")
        if kind == "completion":
            self._emit_items(cpath, self._tokens.get(cpath, 1), "", [])

    def _emit_items(
        self,
        cpath: str,
        token: int,
        prefix: str,
        candidates: list[Candidate],
        *,
        reason: str = "auto",
    ) -> None:
        max_items = max(5, int(self._completion_cfg.get("max_items", 500)))
        self.completionReady.emit(
            {
                "result_type": "completion",
                "file_path": cpath,
                "token": max(1, int(token)),
                "prefix": prefix,
                "items": list(candidates[:max_items]),
                "backend": "clang-complete",
                "reason": str(reason or "auto"),
            }
        )

    def _on_worker_traffic(self, direction: str, payload: str) -> None:
        compact = textwrap.shorten(str(payload or ""), width=240, placeholder="...")
        self.statusMessage.emit(f"[clang-complete:{direction}] {compact}")


def completion_prefix_at(source_text: str, line: int, column: int) -> str:
    """Identifier fragment left of a 0-based `column` on 1-based `line`."""
    line_text = line_at(source_text, int(line))
    col = max(0, min(int(column), len(line_text)))
    m = _IDENTIFIER_TAIL_RE.search(line_text[:col])
    return m.group(0) if m else ""


def _default_canonicalize(path: str) -> str:
    text = str(path or "").strip()
    if not text:
        return ""
    return os.path.abspath(os.path.expanduser(text))

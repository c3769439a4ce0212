"""Per-document clang-complete engine.

One engine owns one worker process, its response demuxer and the request
state machine for a single open document. Only one request is ever
outstanding on the worker stream; reparse, command-line and syntax-check
frames requested while busy are deferred and flushed once the engine is idle.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

from PySide6.QtCore import QObject, QTimer, Signal

from clang_async.completion.candidates import Candidate, CompletionParser
from clang_async.completion.diagnostics import Diagnostic, DiagnosticsSink
from clang_async.completion.templates import (
    SignatureTemplater,
    TemplateExpansion,
    TemplateVariant,
    expand_template,
)
from clang_async.worker.errors import MalformedFrame, SpawnError
from clang_async.worker.process_supervisor import ProcessSupervisor
from clang_async.worker.state_machine import FrameAction, RequestStateMachine, TriggerAction
from clang_async.worker.types import (
    EngineState,
    FrameComplete,
    RequestMode,
    WorkerCrashed,
    line_at,
    utf8_column,
)
from clang_async.worker.wire import RequestEncoder

from .clang_settings import build_complete_args, normalize_clang_settings, read_implicit_prefix

_DEFERRED_REPARSE = "reparse"
_DEFERRED_CMDLINE = "cmdline"
_DEFERRED_SYNTAX_CHECK = "syntax_check"


@dataclass(frozen=True)
class CompletionResult:
    file_path: str
    prefix: str
    candidates: list[Candidate] = field(default_factory=list)


class ClangDocumentEngine(QObject):
    completionReady = Signal(object)  # CompletionResult
    completionDiscarded = Signal()
    diagnosticsUpdated = Signal(str, object)  # file_path, list[Diagnostic]
    requestFailed = Signal(str, str)  # request kind, reason
    statusMessage = Signal(str)
    trafficLogged = Signal(str, str)

    def __init__(
        self,
        file_path: str,
        *,
        settings: dict[str, Any] | None = None,
        project_root: str = "",
        supervisor: ProcessSupervisor | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.file_path = os.path.abspath(str(file_path or ""))
        self.project_root = str(project_root or os.path.dirname(self.file_path))
        self._settings = normalize_clang_settings(settings)

        self._supervisor = supervisor if supervisor is not None else ProcessSupervisor(parent=self)
        self._supervisor.frameEvent.connect(self._on_frame_event)
        self._supervisor.spawnFailed.connect(self._on_spawn_failed)
        self._supervisor.statusMessage.connect(self.statusMessage.emit)
        self._supervisor.trafficLogged.connect(self.trafficLogged.emit)
        self._supervisor.set_log_traffic(bool(self._settings["log_traffic"]))
        self._supervisor.set_shutdown_grace_ms(int(self._settings["shutdown_grace_ms"]))

        self._machine = RequestStateMachine()
        self._encoder = RequestEncoder()
        self._parser = CompletionParser()
        self._templater = SignatureTemplater()
        self._sink = DiagnosticsSink()

        self._watchdog = QTimer(self)
        self._watchdog.setSingleShot(True)
        self._watchdog.timeout.connect(self._on_watchdog_timeout)

        self._text = ""
        self._args: list[str] = []
        self._args_override: list[str] | None = None
        self._candidates: list[Candidate] = []
        self._last_prefix = ""
        self._deferred: list[str] = []
        self._launched = False
        self._restarts = 0
        self._spawn_error = ""

    @property
    def state(self) -> EngineState:
        return self._machine.state

    @property
    def mode(self) -> RequestMode:
        return self._machine.mode

    @property
    def spawn_error(self) -> str:
        return self._spawn_error

    def source_text(self) -> str:
        return self._text

    def worker_args(self) -> list[str]:
        return list(self._args)

    def is_enabled(self) -> bool:
        return bool(self._settings.get("enable", True))

    def is_available(self) -> bool:
        return self._launched and self._supervisor.is_running()

    def update_settings(self, settings: dict[str, Any] | None) -> None:
        old_args = list(self._args)
        old_prefix = self._encoder.extra_prefix
        old_executable = str(self._settings.get("executable") or "")
        self._settings = normalize_clang_settings(settings)
        self._supervisor.set_log_traffic(bool(self._settings["log_traffic"]))
        self._supervisor.set_shutdown_grace_ms(int(self._settings["shutdown_grace_ms"]))
        if not self.is_enabled():
            self.shutdown()
            return
        if not self._launched:
            return
        if str(self._settings["executable"]) != old_executable:
            self.start()
            return
        self._refresh_launch_config()
        if self._args != old_args:
            self.update_cmdline_args()
        if self._args != old_args or self._encoder.extra_prefix != old_prefix:
            self.reparse()

    def start(self, source_text: str | None = None) -> bool:
        if source_text is not None:
            self._text = str(source_text)
        if not self.is_enabled():
            return False
        self._refresh_launch_config()
        self._machine.abort()
        self._deferred.clear()
        self._restarts = 0
        if not self._launch(relaunch=False):
            return False
        self.statusMessage.emit(f"clang-complete start: {os.path.basename(self.file_path)}")
        return True

    def shutdown(self) -> None:
        self._watchdog.stop()
        self._launched = False
        self._deferred.clear()
        self._machine.abort()
        self._supervisor.terminate()

    def document_changed(self, source_text: str) -> None:
        # The full text is re-uploaded with the next request.
        self._text = str(source_text or "")

    def document_saved(self, source_text: str | None = None) -> None:
        if source_text is not None:
            self._text = str(source_text)
        self.reparse()
        if self._settings.get("syntax_check_on_save", True):
            self.request_syntax_check()

    def reparse(self, source_text: str | None = None) -> bool:
        if source_text is not None:
            self._text = str(source_text)
        return self._submit_oneway(_DEFERRED_REPARSE)

    def update_cmdline_args(self, args: list[str] | None = None) -> bool:
        if args is not None:
            self._args_override = [str(item) for item in args]
            self._args = list(self._args_override)
        return self._submit_oneway(_DEFERRED_CMDLINE)

    def request_completion(
        self,
        *,
        source_text: str,
        line: int,
        column: int,
        prefix: str = "",
    ) -> TriggerAction | None:
        """`line` is 1-based, `column` a 0-based codepoint index at the cursor."""
        self._text = str(source_text or "")
        if not self._ensure_worker():
            self.requestFailed.emit(RequestMode.COMPLETION.value, self._spawn_error or "worker unavailable")
            return None

        action = self._machine.trigger()
        if action is TriggerAction.SEND:
            clean_prefix = str(prefix or "")
            start = max(0, int(column) - len(clean_prefix))
            worker_column = utf8_column(line_at(self._text, int(line)), start)
            self._last_prefix = clean_prefix
            self._candidates = []
            try:
                frame = self._encoder.completion(clean_prefix, int(line), worker_column, self._text)
            except ValueError as exc:
                self._machine.abort()
                self.requestFailed.emit(RequestMode.COMPLETION.value, str(exc))
                return None
            self._send(RequestMode.COMPLETION, frame)
        elif action is TriggerAction.DELIVER_STORED:
            self.completionReady.emit(self._result())
            self._flush_deferred()
        return action

    def request_syntax_check(self, source_text: str | None = None) -> bool:
        if source_text is not None:
            self._text = str(source_text)
        if not self._ensure_worker():
            return False
        if not self._machine.is_idle():
            self._defer(_DEFERRED_SYNTAX_CHECK)
            return False
        self._machine.begin(RequestMode.SYNTAX_CHECK)
        return self._send(RequestMode.SYNTAX_CHECK, self._encoder.syntax_check(self._text))

    def candidates(self) -> list[Candidate]:
        """Latest completion candidates; polling acknowledges a delivered result."""
        if self._machine.acknowledge():
            self._flush_deferred()
        return list(self._candidates)

    def candidate(self, name: str) -> Candidate | None:
        for item in self._candidates:
            if item.name == name:
                return item
        return None

    def templates_for(self, candidate: Candidate | str) -> list[TemplateVariant]:
        if isinstance(candidate, str):
            found = self.candidate(candidate)
            if found is None:
                return []
            candidate = found
        return self._templater.variants_for(candidate)

    def expand(self, variant: TemplateVariant) -> TemplateExpansion:
        return expand_template(variant)

    def diagnostics(self) -> list[Diagnostic]:
        return list(self._sink.diagnostics)

    def _result(self) -> CompletionResult:
        return CompletionResult(
            file_path=self.file_path,
            prefix=self._last_prefix,
            candidates=list(self._candidates),
        )

    def _ensure_worker(self) -> bool:
        if self._launched and self._supervisor.is_running():
            return True
        if self._launched or self._spawn_error or not self.is_enabled():
            return False
        return self.start()

    def _refresh_launch_config(self) -> None:
        if self._args_override is not None:
            self._args = list(self._args_override)
        else:
            self._args = build_complete_args(self._settings, project_root=self.project_root)
        prefix, failed = read_implicit_prefix(
            list(self._settings.get("implicit_includes") or []),
            project_root=self.project_root,
        )
        for path in failed:
            self.statusMessage.emit(f"clang-complete: cannot read implicit include {path}")
        self._encoder.extra_prefix = prefix
        self._watchdog.setInterval(int(self._settings["request_timeout_ms"]))

    def _launch(self, *, relaunch: bool) -> bool:
        try:
            bootstrap = [self._encoder.cmdline_args(self._args), self._encoder.reparse(self._text)]
            launcher = self._supervisor.relaunch if relaunch else self._supervisor.launch
            launcher(
                str(self._settings["executable"]),
                self._args,
                self.file_path,
                bootstrap=bootstrap,
            )
        except (SpawnError, ValueError) as exc:
            self._report_spawn_failure(str(exc))
            return False
        self._launched = True
        self._spawn_error = ""
        return True

    def _send(self, mode: RequestMode, frame: bytes) -> bool:
        self._supervisor.demuxer.begin(mode)
        if not self._supervisor.write(frame):
            self._machine.abort()
            self._supervisor.demuxer.reset()
            self.requestFailed.emit(mode.value, "worker is not running")
            return False
        self._watchdog.start()
        return True

    def _submit_oneway(self, kind: str) -> bool:
        if not self._launched:
            return False
        if not self._machine.is_idle():
            self._defer(kind)
            return True
        if kind == _DEFERRED_REPARSE:
            return self._supervisor.write(self._encoder.reparse(self._text))
        try:
            frame = self._encoder.cmdline_args(self._args)
        except ValueError as exc:
            self.statusMessage.emit(f"clang-complete: {exc}")
            self.requestFailed.emit(_DEFERRED_CMDLINE, str(exc))
            return False
        return self._supervisor.write(frame)

    def _defer(self, kind: str) -> None:
        if kind in self._deferred:
            self._deferred.remove(kind)
        self._deferred.append(kind)

    def _flush_deferred(self) -> None:
        while self._deferred and self._machine.is_idle():
            kind = self._deferred.pop(0)
            if kind == _DEFERRED_SYNTAX_CHECK:
                self.request_syntax_check()
            else:
                self._submit_oneway(kind)

    def _on_frame_event(self, event: object) -> None:
        if isinstance(event, WorkerCrashed):
            self._handle_crash(event)
            return
        if not isinstance(event, FrameComplete):
            return

        self._watchdog.stop()
        self._restarts = 0
        if event.mode is RequestMode.NONE:
            self.statusMessage.emit("clang-complete: ignoring unsolicited frame")
            return

        action = self._machine.frame_complete()
        if action is FrameAction.UNSOLICITED:
            self.statusMessage.emit("clang-complete: ignoring frame with no pending request")
            return
        if action is FrameAction.DISCARD:
            if event.mode is RequestMode.SYNTAX_CHECK:
                # The machine is already IDLE; diagnostics of the checked text still apply.
                self._deliver_diagnostics(event.text)
                return
            self.completionDiscarded.emit()
            self._flush_deferred()
            return

        if event.mode is RequestMode.COMPLETION:
            self._deliver_completion(event.text)
        else:
            self._deliver_diagnostics(event.text)

    def _deliver_completion(self, text: str) -> None:
        try:
            self._candidates = self._parser.parse(text, prefix=self._last_prefix, strict=True)
        except MalformedFrame as exc:
            self.statusMessage.emit(f"clang-complete: {exc}")
            self._candidates = []
        self.completionReady.emit(self._result())

    def _deliver_diagnostics(self, text: str) -> None:
        try:
            diagnostics = self._sink.consume(
                text,
                file_path=self.file_path,
                line_offset=self._encoder.payload("").prefix_line_count,
                strict=True,
            )
        except MalformedFrame as exc:
            self.statusMessage.emit(f"clang-complete: {exc}")
            self._sink.clear()
            diagnostics = []
        self._machine.acknowledge()
        self.diagnosticsUpdated.emit(self.file_path, diagnostics)
        self._flush_deferred()

    def _handle_crash(self, event: WorkerCrashed) -> None:
        self._watchdog.stop()
        lost = self._machine.abort()
        self._supervisor.demuxer.reset()
        # A relaunch resends arguments and a full reparse.
        self._deferred = [kind for kind in self._deferred if kind == _DEFERRED_SYNTAX_CHECK]
        if lost is not RequestMode.NONE:
            self.requestFailed.emit(lost.value, event.reason)
        if not self._launched:
            return

        self._restarts += 1
        limit = int(self._settings["max_restarts"])
        if self._restarts > limit:
            self._launched = False
            self._supervisor.terminate()
            self._spawn_error = f"clang-complete stopped after {limit} restarts: {event.reason}"
            self.statusMessage.emit(self._spawn_error)
            return
        self.statusMessage.emit(f"clang-complete relaunch: {event.reason}")
        if self._launch(relaunch=True):
            self._flush_deferred()

    def _on_watchdog_timeout(self) -> None:
        timeout_ms = int(self._settings["request_timeout_ms"])
        self.statusMessage.emit(f"clang-complete did not answer within {timeout_ms} ms")
        event = self._supervisor.demuxer.abort(f"request timed out after {timeout_ms} ms")
        self._handle_crash(event)

    def _on_spawn_failed(self, message: str) -> None:
        self._watchdog.stop()
        lost = self._machine.abort()
        if lost is not RequestMode.NONE:
            self.requestFailed.emit(lost.value, message)
        self._report_spawn_failure(message)

    def _report_spawn_failure(self, message: str) -> None:
        self._launched = False
        self._deferred.clear()
        self._spawn_error = str(message or "worker failed to start")
        diagnostic = Diagnostic(
            file_path=self.file_path,
            line=1,
            column=1,
            severity="error",
            message=self._spawn_error,
            source="clang-complete",
        )
        self._sink.diagnostics = [diagnostic]
        self.statusMessage.emit(self._spawn_error)
        self.diagnosticsUpdated.emit(self.file_path, [diagnostic])

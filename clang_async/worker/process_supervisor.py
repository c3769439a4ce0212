"""Owns the clang-complete worker process for one document using QProcess."""

from __future__ import annotations

import os
import shutil
from typing import Iterable

from PySide6.QtCore import QObject, QProcess, QTimer, Signal

from .errors import SpawnError
from .types import FrameEvent
from .wire import ResponseDemuxer, shutdown_request


class ProcessSupervisor(QObject):
    """Launch/relaunch/shutdown of one worker, with stdout routed to a demuxer."""

    started = Signal()
    stopped = Signal()
    spawnFailed = Signal(str)
    frameEvent = Signal(object)
    statusMessage = Signal(str)
    trafficLogged = Signal(str, str)  # direction, payload

    def __init__(
        self,
        demuxer: ResponseDemuxer | None = None,
        *,
        shutdown_grace_ms: int = 1200,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.demuxer = demuxer if demuxer is not None else ResponseDemuxer()
        self._proc: QProcess | None = None
        self._queued_frames: list[bytes] = []
        self._running = False
        self._log_traffic = False
        self._shutdown_grace_ms = max(0, int(shutdown_grace_ms))
        self._command: tuple[str, tuple[str, ...], str] | None = None

    def set_log_traffic(self, enabled: bool) -> None:
        self._log_traffic = bool(enabled)

    def set_shutdown_grace_ms(self, value: int) -> None:
        self._shutdown_grace_ms = max(0, int(value))

    def is_running(self) -> bool:
        return self._proc is not None and self._proc.state() != QProcess.NotRunning

    def command(self) -> tuple[str, tuple[str, ...], str] | None:
        return self._command

    def launch(
        self,
        executable: str,
        initial_args: Iterable[str],
        document_path: str,
        *,
        bootstrap: Iterable[bytes] = (),
    ) -> None:
        program = resolve_executable(executable)
        args = [str(item) for item in initial_args]
        doc_path = str(document_path or "").strip()
        if not doc_path:
            raise SpawnError("Worker needs a document path.")

        self.terminate()
        self._command = (program, tuple(args), doc_path)
        self.demuxer.reset()
        self._queued_frames = [bytes(frame) for frame in bootstrap]

        proc = QProcess(self)
        proc.setProgram(program)
        proc.setArguments([*args, doc_path])
        cwd = os.path.dirname(os.path.abspath(doc_path))
        if os.path.isdir(cwd):
            proc.setWorkingDirectory(cwd)
        proc.readyReadStandardOutput.connect(self._on_stdout_ready)
        proc.readyReadStandardError.connect(self._on_stderr_ready)
        proc.started.connect(self._on_process_started)
        proc.finished.connect(self._on_process_finished)
        proc.errorOccurred.connect(self._on_process_error)
        self._proc = proc
        proc.start()

    def relaunch(
        self,
        executable: str,
        initial_args: Iterable[str],
        document_path: str,
        *,
        bootstrap: Iterable[bytes] = (),
    ) -> None:
        self.terminate()
        self.launch(executable, initial_args, document_path, bootstrap=bootstrap)

    def terminate(self) -> None:
        proc = self._proc
        self._proc = None
        self._queued_frames.clear()
        self.demuxer.reset()
        if proc is None:
            return
        was_running = self._running
        self._running = False
        self._retire(proc)
        if was_running:
            self.stopped.emit()

    def write(self, frame: bytes) -> bool:
        proc = self._proc
        if proc is None or proc.state() == QProcess.NotRunning:
            return False
        if proc.state() == QProcess.Starting:
            self._queued_frames.append(bytes(frame))
            return True
        return self._write_now(proc, bytes(frame))

    def _write_now(self, proc: QProcess, frame: bytes) -> bool:
        written = int(proc.write(frame))
        if written < 0:
            self.statusMessage.emit(f"Worker write failed: {proc.errorString()}")
            return False
        self._log_frame("out", frame)
        return True

    def _retire(self, proc: QProcess) -> None:
        for signal, slot in (
            (proc.readyReadStandardOutput, self._on_stdout_ready),
            (proc.readyReadStandardError, self._on_stderr_ready),
            (proc.started, self._on_process_started),
            (proc.finished, self._on_process_finished),
            (proc.errorOccurred, self._on_process_error),
        ):
            try:
                signal.disconnect(slot)
            except (RuntimeError, TypeError):
                pass
        proc.finished.connect(proc.deleteLater)
        if proc.state() == QProcess.NotRunning:
            proc.deleteLater()
            return
        if proc.state() == QProcess.Running:
            proc.write(shutdown_request())
            self._log_frame("out", shutdown_request())
            proc.closeWriteChannel()
            QTimer.singleShot(self._shutdown_grace_ms, lambda p=proc: _force_terminate(p))
            return
        # Still starting: pipes may not be writable yet.
        _force_terminate(proc)

    def _on_process_started(self) -> None:
        proc = self._proc
        if proc is None:
            return
        self._running = True
        queued = list(self._queued_frames)
        self._queued_frames.clear()
        for frame in queued:
            self._write_now(proc, frame)
        self.started.emit()

    def _on_process_finished(self, exit_code: int, exit_status: QProcess.ExitStatus) -> None:
        proc = self._proc
        was_running = self._running
        self._running = False
        self._proc = None
        if proc is not None:
            proc.deleteLater()
        self._queued_frames.clear()
        if exit_status == QProcess.ExitStatus.CrashExit:
            reason = "worker crashed"
        else:
            reason = f"worker exited with code {int(exit_code)}"
        event = self.demuxer.abort(reason)
        self.frameEvent.emit(event)
        if was_running:
            self.stopped.emit()

    def _on_process_error(self, error: QProcess.ProcessError) -> None:
        proc = self._proc
        message = proc.errorString() if proc is not None else str(error)
        if error == QProcess.ProcessError.FailedToStart:
            self._proc = None
            if proc is not None:
                proc.deleteLater()
            self._running = False
            self._queued_frames.clear()
            self.demuxer.reset()
            self.spawnFailed.emit(f"Worker failed to start: {message}")
            return
        self.statusMessage.emit(f"Worker process error: {message}")

    def _on_stdout_ready(self) -> None:
        proc = self._proc
        if proc is None:
            return
        raw = bytes(proc.readAllStandardOutput())
        if not raw:
            return
        self._log_frame("in", raw)
        event: FrameEvent = self.demuxer.feed(raw)
        self.frameEvent.emit(event)

    def _on_stderr_ready(self) -> None:
        proc = self._proc
        if proc is None:
            return
        raw = bytes(proc.readAllStandardError())
        text = raw.decode("utf-8", errors="replace").strip()
        if text:
            self.statusMessage.emit(text)

    def _log_frame(self, direction: str, frame: bytes) -> None:
        if not self._log_traffic:
            return
        self.trafficLogged.emit(str(direction), frame.decode("utf-8", errors="replace"))


def resolve_executable(executable: str) -> str:
    """Absolute path of the worker executable or `SpawnError`."""
    name = str(executable or "").strip()
    if not name:
        raise SpawnError("No worker executable configured.")
    expanded = os.path.expanduser(name)
    if os.sep in expanded or (os.altsep and os.altsep in expanded):
        path = os.path.abspath(expanded)
        if not os.path.isfile(path):
            raise SpawnError(f"Worker executable not found: {path}")
        if not os.access(path, os.X_OK):
            raise SpawnError(f"Worker executable is not executable: {path}")
        return path
    found = shutil.which(expanded)
    if not found:
        raise SpawnError(f"Worker executable not found on PATH: {expanded}")
    return found


def _force_terminate(proc: QProcess) -> None:
    try:
        if proc.state() == QProcess.NotRunning:
            return
        proc.terminate()
        if not proc.waitForFinished(200):
            proc.kill()
    except RuntimeError:
        # Underlying C++ object already deleted.
        return

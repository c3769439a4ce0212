from __future__ import annotations

from PySide6.QtCore import QObject, Signal

from clang_async.worker.errors import SpawnError
from clang_async.worker.wire import ResponseDemuxer


class FakeSupervisor(QObject):
    """In-process stand-in for `ProcessSupervisor` that records written frames."""

    started = Signal()
    stopped = Signal()
    spawnFailed = Signal(str)
    frameEvent = Signal(object)
    statusMessage = Signal(str)
    trafficLogged = Signal(str, str)

    def __init__(self, *, fail_spawn: str = "") -> None:
        super().__init__()
        self.demuxer = ResponseDemuxer()
        self.fail_spawn = fail_spawn
        self.running = False
        self.writes: list[bytes] = []
        self.launches: list[tuple[str, list[str], str, list[bytes]]] = []
        self.terminated = 0
        self.log_traffic = False
        self.grace_ms = 0

    def set_log_traffic(self, enabled: bool) -> None:
        self.log_traffic = bool(enabled)

    def set_shutdown_grace_ms(self, value: int) -> None:
        self.grace_ms = int(value)

    def is_running(self) -> bool:
        return self.running

    def launch(self, executable, initial_args, document_path, *, bootstrap=()) -> None:
        if self.fail_spawn:
            raise SpawnError(self.fail_spawn)
        frames = [bytes(frame) for frame in bootstrap]
        self.launches.append((executable, list(initial_args), document_path, frames))
        self.demuxer.reset()
        self.writes.extend(frames)
        self.running = True

    def relaunch(self, executable, initial_args, document_path, *, bootstrap=()) -> None:
        self.terminate()
        self.launch(executable, initial_args, document_path, bootstrap=bootstrap)

    def terminate(self) -> None:
        self.terminated += 1
        self.running = False
        self.demuxer.reset()

    def write(self, frame: bytes) -> bool:
        if not self.running:
            return False
        self.writes.append(bytes(frame))
        return True

    def reply(self, data: bytes) -> None:
        self.frameEvent.emit(self.demuxer.feed(data))

    def crash(self, reason: str = "worker crashed") -> None:
        self.running = False
        self.frameEvent.emit(self.demuxer.abort(reason))

    def headers(self) -> list[str]:
        return [frame.split(b"\n", 1)[0].decode("ascii") for frame in self.writes]

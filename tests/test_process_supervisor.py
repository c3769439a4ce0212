from __future__ import annotations

import os
import stat
import sys
from pathlib import Path

import pytest
from PySide6.QtCore import QCoreApplication, QEvent, QProcess

from clang_async.lang_cpp.clang_document import ClangDocumentEngine
from clang_async.worker.errors import SpawnError
from clang_async.worker.process_supervisor import ProcessSupervisor, resolve_executable
from clang_async.worker.types import FrameComplete, RequestMode, WorkerCrashed
from clang_async.worker.wire import RequestEncoder

FAKE_WORKER = Path(__file__).with_name("fake_clang_complete.py")

pytestmark = pytest.mark.skipif(sys.platform.startswith("win"), reason="needs a shebang executable")


@pytest.fixture
def worker_executable(tmp_path: Path) -> str:
    script = tmp_path / "clang-complete"
    script.write_text(f"#!{sys.executable}\n" + FAKE_WORKER.read_text(encoding="utf-8"), encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(script)


@pytest.fixture
def document(tmp_path: Path) -> Path:
    path = tmp_path / "main.cpp"
    path.write_text("void bar();\nint main() { ba }\n", encoding="utf-8")
    return path


def _live_processes(supervisor: ProcessSupervisor) -> list[QProcess]:
    QCoreApplication.sendPostedEvents(None, QEvent.Type.DeferredDelete)
    return supervisor.findChildren(QProcess)


def test_resolve_executable_errors(tmp_path: Path) -> None:
    with pytest.raises(SpawnError):
        resolve_executable("")
    with pytest.raises(SpawnError):
        resolve_executable("definitely-not-a-clang-complete-binary")
    with pytest.raises(SpawnError):
        resolve_executable(str(tmp_path / "missing"))
    plain = tmp_path / "plain"
    plain.write_text("", encoding="utf-8")
    plain.chmod(0o644)
    if os.access(str(plain), os.X_OK):
        pytest.skip("running with permissions that ignore the execute bit")
    with pytest.raises(SpawnError):
        resolve_executable(str(plain))


def test_launch_raises_for_missing_executable(qapp, document: Path) -> None:
    supervisor = ProcessSupervisor()
    with pytest.raises(SpawnError):
        supervisor.launch("definitely-not-a-clang-complete-binary", [], str(document))
    assert not supervisor.is_running()
    assert supervisor.write(b"SHUTDOWN\n") is False


def test_round_trip_with_real_process(qapp, pump, worker_executable: str, document: Path) -> None:
    supervisor = ProcessSupervisor(shutdown_grace_ms=200)
    events: list[object] = []
    started: list[bool] = []
    traffic: list[tuple[str, str]] = []
    supervisor.frameEvent.connect(events.append)
    supervisor.started.connect(lambda: started.append(True))
    supervisor.trafficLogged.connect(lambda direction, payload: traffic.append((direction, payload)))
    supervisor.set_log_traffic(True)

    encoder = RequestEncoder()
    text = document.read_text(encoding="utf-8")
    supervisor.launch(
        worker_executable,
        ["-cc1", "-fsyntax-only", "-x", "c++"],
        str(document),
        bootstrap=[encoder.cmdline_args(["-cc1"]), encoder.reparse(text)],
    )
    assert supervisor.command() == (
        worker_executable,
        ("-cc1", "-fsyntax-only", "-x", "c++"),
        str(document),
    )
    assert pump(lambda: bool(started))
    assert supervisor.is_running()

    supervisor.demuxer.begin(RequestMode.COMPLETION)
    assert supervisor.write(encoder.completion("ba", 2, 14, text)) is True
    assert pump(lambda: any(isinstance(e, FrameComplete) for e in events))
    frame = next(e for e in events if isinstance(e, FrameComplete))
    assert frame.mode is RequestMode.COMPLETION
    assert frame.text.startswith("COMPLETION: bar : [#void#]bar()\n")
    assert any(direction == "out" for direction, _ in traffic)
    assert any(direction == "in" for direction, _ in traffic)

    supervisor.terminate()
    assert not supervisor.is_running()
    assert not any(isinstance(e, WorkerCrashed) for e in events)


def test_unexpected_exit_is_reported(qapp, pump, worker_executable: str, document: Path) -> None:
    supervisor = ProcessSupervisor()
    events: list[object] = []
    supervisor.frameEvent.connect(events.append)
    supervisor.launch(worker_executable, [], str(document))
    assert pump(supervisor.is_running)

    supervisor.demuxer.begin(RequestMode.COMPLETION)
    supervisor.write(RequestEncoder().completion("crash", 1, 1, ""))
    assert pump(lambda: any(isinstance(e, WorkerCrashed) for e in events))
    crash = next(e for e in events if isinstance(e, WorkerCrashed))
    assert crash.mode is RequestMode.COMPLETION
    assert "code 3" in crash.reason
    assert not supervisor.is_running()
    assert pump(lambda: not _live_processes(supervisor))


def test_engine_against_real_process(qapp, pump, worker_executable: str, document: Path) -> None:
    engine = ClangDocumentEngine(
        str(document),
        settings={"executable": worker_executable, "shutdown_grace_ms": 200},
    )
    results: list[object] = []
    diagnostics: list[tuple[str, list]] = []
    engine.completionReady.connect(results.append)
    engine.diagnosticsUpdated.connect(lambda path, items: diagnostics.append((path, list(items))))

    text = document.read_text(encoding="utf-8")
    engine.request_completion(source_text=text, line=2, column=15, prefix="ba")
    assert pump(lambda: bool(results))
    assert [c.name for c in engine.candidates()] == ["bar", "baz"]
    variants = engine.templates_for("baz")
    assert [v.display_args for v in variants] == ["(int n)"]
    assert engine.expand(variants[0]).snippet == "(${1:int n})"

    engine.request_syntax_check("oops x;\n")
    assert pump(lambda: bool(diagnostics))
    path, items = diagnostics[-1]
    assert path == engine.file_path
    assert [(d.line, d.severity) for d in items] == [(1, "error")]

    engine.shutdown()
    assert not engine.is_available()


def test_failed_start_releases_the_process(qapp, pump, tmp_path: Path, document: Path) -> None:
    script = tmp_path / "clang-complete"
    script.write_text("#!/nonexistent/interpreter\n", encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    supervisor = ProcessSupervisor()
    failures: list[str] = []
    supervisor.spawnFailed.connect(failures.append)

    supervisor.launch(str(script), [], str(document))
    assert pump(lambda: bool(failures))
    assert failures[0].startswith("Worker failed to start:")
    assert not supervisor.is_running()
    assert supervisor.write(b"SHUTDOWN\n") is False
    assert pump(lambda: not _live_processes(supervisor))

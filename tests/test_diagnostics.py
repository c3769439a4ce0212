from __future__ import annotations

import pytest

from clang_async.completion.diagnostics import Diagnostic, DiagnosticsSink
from clang_async.worker.errors import MalformedFrame


def test_parse_severities() -> None:
    text = (
        "/src/a.cpp:3:5: error: use of undeclared identifier 'x'\n"
        "/src/a.cpp:4:1: warning: unused variable 'y'\n"
        "/src/a.cpp:5:2: note: declared here\n"
        "/src/a.cpp:6:7: fatal error: 'missing.h' file not found\n"
    )
    parsed = DiagnosticsSink.parse(text)
    assert [(d.line, d.column, d.severity) for d in parsed] == [
        (3, 5, "error"),
        (4, 1, "warning"),
        (5, 2, "info"),
        (6, 7, "error"),
    ]
    assert parsed[0].message == "use of undeclared identifier 'x'"
    assert parsed[0].source == "clang"


def test_parse_skips_range_blocks_and_noise() -> None:
    text = "1 error generated.\n/src/a.cpp:2:3:{2:3-2:9}: error: bad\n"
    assert DiagnosticsSink.parse(text) == [
        Diagnostic(file_path="/src/a.cpp", line=2, column=3, severity="error", message="bad")
    ]


def test_parse_filters_other_files() -> None:
    text = "/src/other.h:1:1: error: x\n/src/a.cpp:2:1: error: y\n"
    parsed = DiagnosticsSink.parse(text, file_path="/src/a.cpp")
    assert [d.message for d in parsed] == ["y"]


def test_relative_paths_match_by_basename() -> None:
    parsed = DiagnosticsSink.parse("a.cpp:2:1: warning: z\n", file_path="/src/a.cpp")
    assert len(parsed) == 1


def test_line_offset_hides_implicit_include_lines() -> None:
    text = "/src/a.cpp:1:1: error: in prefix\n/src/a.cpp:4:2: error: in buffer\n"
    parsed = DiagnosticsSink.parse(text, line_offset=2)
    assert [(d.line, d.message) for d in parsed] == [(2, "in buffer")]


def test_duplicates_are_dropped() -> None:
    text = "/src/a.cpp:2:1: error: y\n/src/a.cpp:2:1: error: y\n"
    assert len(DiagnosticsSink.parse(text)) == 1


def test_consume_keeps_latest_list() -> None:
    sink = DiagnosticsSink()
    sink.consume("/src/a.cpp:2:1: error: y\n")
    assert len(sink.diagnostics) == 1
    sink.consume("")
    assert sink.diagnostics == []
    sink.consume("/src/a.cpp:2:1: error: y\n")
    sink.clear()
    assert sink.diagnostics == []


def test_strict_parse_rejects_garbage() -> None:
    with pytest.raises(MalformedFrame):
        DiagnosticsSink.parse("COMPLETION: foo\n", strict=True)


def test_strict_parse_accepts_diagnostics_for_other_files() -> None:
    assert DiagnosticsSink.parse("/x/b.h:1:1: error: q\n", file_path="/src/a.cpp", strict=True) == []

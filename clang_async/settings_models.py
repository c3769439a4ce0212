from __future__ import annotations

from copy import deepcopy
from typing import Any, TypedDict


class ClangCompleteSettings(TypedDict, total=False):
    enable: bool
    executable: str
    language: str
    std: str
    include_paths: list[str]
    defines: list[str]
    extra_flags: list[str] | str
    prefix_header: str
    implicit_includes: list[str]
    request_timeout_ms: int
    shutdown_grace_ms: int
    max_restarts: int
    syntax_check_on_save: bool
    log_traffic: bool


class CompletionSettings(TypedDict, total=False):
    max_items: int


class EngineSettings(TypedDict, total=False):
    c_cpp: ClangCompleteSettings
    completion: CompletionSettings


# No `language` default: the editor language id or the file suffix picks the dialect.
DEFAULT_CLANG_SETTINGS: ClangCompleteSettings = {
    "enable": True,
    "executable": "clang-complete",
    "std": "",
    "include_paths": [],
    "defines": [],
    "extra_flags": [],
    "prefix_header": "",
    "implicit_includes": [],
    "request_timeout_ms": 8000,
    "shutdown_grace_ms": 1200,
    "max_restarts": 3,
    "syntax_check_on_save": True,
    "log_traffic": False,
}

DEFAULT_COMPLETION_SETTINGS: CompletionSettings = {
    "max_items": 500,
}


def default_engine_settings() -> dict[str, Any]:
    return {
        "c_cpp": deepcopy(dict(DEFAULT_CLANG_SETTINGS)),
        "completion": deepcopy(dict(DEFAULT_COMPLETION_SETTINGS)),
    }

"""Normalization of the `c_cpp` settings section and worker argument building."""

from __future__ import annotations

import os
import shlex
from typing import Any

from clang_async.settings_models import DEFAULT_CLANG_SETTINGS

_LANGUAGES = {"c", "c++", "objective-c", "objective-c++", "c-header", "c++-header"}


def normalize_clang_settings(raw: dict[str, Any] | None) -> dict[str, Any]:
    data: dict[str, Any] = dict(DEFAULT_CLANG_SETTINGS)
    if isinstance(raw, dict):
        data.update(raw)
    data["enable"] = bool(data.get("enable", True))
    data["executable"] = str(data.get("executable") or "clang-complete").strip() or "clang-complete"
    language = str(data.get("language") or "c++").strip().lower()
    data["language"] = language if language in _LANGUAGES else "c++"
    data["std"] = str(data.get("std") or "").strip()
    data["include_paths"] = _to_str_list(data.get("include_paths"))
    data["defines"] = _to_str_list(data.get("defines"))
    data["extra_flags"] = _normalize_extra_flags(data.get("extra_flags"))
    data["prefix_header"] = str(data.get("prefix_header") or "").strip()
    data["implicit_includes"] = _to_str_list(data.get("implicit_includes"))
    data["request_timeout_ms"] = max(1000, min(60000, _to_int(data.get("request_timeout_ms"), 8000)))
    data["shutdown_grace_ms"] = max(0, min(10000, _to_int(data.get("shutdown_grace_ms"), 1200)))
    data["max_restarts"] = max(0, min(20, _to_int(data.get("max_restarts"), 3)))
    data["syntax_check_on_save"] = bool(data.get("syntax_check_on_save", True))
    data["log_traffic"] = bool(data.get("log_traffic", False))
    return data


def build_complete_args(settings: dict[str, Any], *, project_root: str = "") -> list[str]:
    """Worker command line: `-cc1 -fsyntax-only -x <lang>` then user flags."""
    args = ["-cc1", "-fsyntax-only", "-x", str(settings.get("language") or "c++")]
    std = str(settings.get("std") or "").strip()
    if std:
        args.append(f"-std={std}")

    for raw in _to_str_list(settings.get("include_paths")):
        include_path = os.path.expanduser(raw)
        if project_root and not os.path.isabs(include_path):
            include_path = os.path.join(project_root, include_path)
        args.append(f"-I{include_path}")

    for raw in _to_str_list(settings.get("defines")):
        args.append(raw if raw.startswith("-D") else f"-D{raw}")

    args.extend(_normalize_extra_flags(settings.get("extra_flags")))

    header = str(settings.get("prefix_header") or "").strip()
    if header:
        header_path = os.path.expanduser(header)
        if project_root and not os.path.isabs(header_path):
            header_path = os.path.join(project_root, header_path)
        args.extend(["-include-pch", os.path.abspath(header_path)])
    return args


def read_implicit_prefix(paths: list[str], *, project_root: str = "") -> tuple[str, list[str]]:
    """Concatenated text of implicit includes, plus the paths that could not be read."""
    chunks: list[str] = []
    failed: list[str] = []
    for raw in paths:
        path = os.path.expanduser(str(raw or "").strip())
        if not path:
            continue
        if project_root and not os.path.isabs(path):
            path = os.path.join(project_root, path)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                text = fh.read()
        except (OSError, UnicodeDecodeError):
            failed.append(path)
            continue
        if text and not text.endswith("\n"):
            text += "\n"
        chunks.append(text)
    return "".join(chunks), failed


def _to_str_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    out: list[str] = []
    for item in value:
        text = str(item or "").strip()
        if text:
            out.append(text)
    return out


def _normalize_extra_flags(value: object) -> list[str]:
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        try:
            return [item for item in shlex.split(text) if item.strip()]
        except ValueError:
            return [part for part in text.split() if part]
    return []


def _to_int(value: object, default: int) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return int(default)

"""JSON file holding the `c_cpp` and `completion` engine sections."""

from __future__ import annotations

import json
from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

from clang_async.settings_models import CompletionSettings, default_engine_settings


class SettingsStoreError(RuntimeError):
    """Raised when the engine settings file cannot be written."""


def merge_defaults(data: Mapping[str, Any], defaults: Mapping[str, Any]) -> dict[str, Any]:
    """Fill keys missing from `data` with `defaults`, recursing into nested sections."""
    merged = {key: deepcopy(value) for key, value in data.items()}
    for key, fallback in defaults.items():
        value = merged.get(key)
        if key not in merged:
            merged[key] = deepcopy(fallback)
        elif isinstance(value, dict) and isinstance(fallback, dict):
            merged[key] = merge_defaults(value, fallback)
    return merged


def lookup(data: Mapping[str, Any], dotted_key: str, default: Any = None) -> Any:
    node: Any = data
    for part in filter(None, dotted_key.split(".")):
        if not isinstance(node, Mapping):
            return default
        node = node.get(part, default)
    return node


def assign(data: dict[str, Any], dotted_key: str, value: Any) -> None:
    parts = [part for part in dotted_key.split(".") if part]
    if not parts:
        raise ValueError("Settings key cannot be empty.")
    node = data
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[parts[-1]] = value


class EngineSettingsStore:
    """Engine settings loaded over built-in defaults; a broken file never blocks startup."""

    def __init__(self, path: Path | None, defaults: Mapping[str, Any] | None = None) -> None:
        self.path = Path(path) if path is not None else None
        self.defaults = merge_defaults(defaults if defaults is not None else default_engine_settings(), {})
        self.data: dict[str, Any] = merge_defaults({}, self.defaults)
        self.dirty = False
        self.last_error: str | None = None

    def load(self) -> dict[str, Any]:
        self.last_error = None
        self.dirty = False
        raw: object = {}
        if self.path is not None and self.path.is_file():
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                self.last_error = f"Could not read settings file '{self.path}': {exc}"
                raw = {}
        if not isinstance(raw, dict):
            self.last_error = f"Settings root in '{self.path}' must be a JSON object, found {type(raw).__name__}."
            raw = {}
        self.data = merge_defaults(raw, self.defaults)
        return self.data

    def save(self) -> None:
        if self.path is not None:
            payload = json.dumps(self.data, indent=2, sort_keys=True)
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.write_text(payload + "\n", encoding="utf-8")
            except OSError as exc:
                raise SettingsStoreError(f"Could not write settings file '{self.path}': {exc}") from exc
        self.dirty = False

    def get(self, key: str, default: Any = None) -> Any:
        return lookup(self.data, key, default)

    def set(self, key: str, value: Any) -> bool:
        if lookup(self.data, key, object()) == value:
            return False
        assign(self.data, key, value)
        self.dirty = True
        return True

    def section(self, key: str) -> dict[str, Any]:
        value = lookup(self.data, key)
        return deepcopy(value) if isinstance(value, dict) else {}

    def clang_settings(self) -> dict[str, Any]:
        return self.section("c_cpp")

    def completion_settings(self) -> CompletionSettings:
        raw = self.section("completion").get("max_items", 500)
        try:
            max_items = int(raw)
        except (TypeError, ValueError):
            max_items = 500
        return {"max_items": max(1, max_items)}

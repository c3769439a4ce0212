import argparse
import sys
from pathlib import Path

from PySide6.QtCore import QCoreApplication, QTimer

from clang_async.lang_cpp import CPP_LANGUAGE_IDS, ClangLanguagePack
from clang_async.services import CompletionProvider
from clang_async.settings_store import EngineSettingsStore

EXIT_OK = 0
EXIT_TIMEOUT = 1
EXIT_SPAWN_FAILED = 2


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="clang-async",
        description="Run one clang-complete completion or syntax check without an editor.",
    )
    parser.add_argument("file", help="C/C++ source file")
    parser.add_argument("row", type=int, nargs="?", default=1, help="1-based line of the cursor")
    parser.add_argument("column", type=int, nargs="?", default=1, help="1-based column of the cursor")
    parser.add_argument("--prefix", default=None, help="identifier prefix (default: taken from the cursor)")
    parser.add_argument("--settings", default="", help="JSON settings file with a `c_cpp` section")
    parser.add_argument("--syntax-check", action="store_true", help="print diagnostics instead of completions")
    parser.add_argument(
        "--language",
        choices=sorted(CPP_LANGUAGE_IDS),
        default=None,
        help="editor language id (default: taken from the file suffix)",
    )
    parser.add_argument("--timeout-ms", type=int, default=15000)
    parser.add_argument("--verbose", action="store_true", help="print worker status messages to stderr")
    return parser.parse_args(argv)


def _language_id_for_path(path: Path) -> str:
    suffix = path.suffix.lower()
    by_suffix = {".c": "c", ".m": "objective-c", ".mm": "objective-cpp"}
    return by_suffix.get(suffix, "cpp")


def _print_completions(provider: CompletionProvider, file_path: str, payload: dict) -> None:
    for candidate in payload.get("items") or []:
        print(candidate.name)
        for variant in provider.templates_for(file_path, candidate.name):
            ret = f"{variant.return_type} " if variant.return_type else ""
            expansion = provider.expand(file_path, variant)
            snippet = expansion.snippet if expansion is not None else ""
            print(f"    {ret}{candidate.name}{variant.display_args}    {candidate.name}{snippet}")


def _print_diagnostics(diagnostics: list) -> None:
    for item in diagnostics:
        print(f"{item.file_path}:{item.line}:{item.column}: {item.severity}: {item.message}")


def run(argv: list[str]) -> int:
    args = _parse_args(argv)
    source_path = Path(args.file).expanduser().resolve()
    try:
        source_text = source_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Cannot read {source_path}: {exc}", file=sys.stderr)
        return EXIT_SPAWN_FAILED

    store = EngineSettingsStore(Path(args.settings).expanduser() if args.settings else None)
    store.load()
    if store.last_error:
        print(f"Settings ignored: {store.last_error}", file=sys.stderr)

    app = QCoreApplication.instance() or QCoreApplication([sys.argv[0]])
    pack = ClangLanguagePack(project_root=str(source_path.parent))
    pack.update_settings(dict(store.completion_settings()))
    pack.update_project_settings(store.clang_settings())
    if args.verbose:
        pack.statusMessage.connect(lambda text: print(text, file=sys.stderr))

    file_path = str(source_path)
    outcome = {"code": EXIT_TIMEOUT}

    def _finish(code: int) -> None:
        outcome["code"] = code
        app.quit()

    def _on_completion(payload: object) -> None:
        if not isinstance(payload, dict) or payload.get("file_path") != file_path:
            return
        _print_completions(pack, file_path, payload)
        pack.candidates(file_path)
        _finish(EXIT_OK)

    def _on_diagnostics(path: str, diagnostics: object) -> None:
        if path != file_path or not args.syntax_check:
            return
        _print_diagnostics(list(diagnostics or []))
        _finish(EXIT_OK)

    pack.completionReady.connect(_on_completion)
    pack.diagnosticsUpdated.connect(_on_diagnostics)
    pack.on_editor_attached(
        editor_id="cli",
        file_path=file_path,
        source_text=source_text,
        language_id=args.language or _language_id_for_path(source_path),
    )
    engine = pack.engine_for(file_path)
    if engine is None or engine.spawn_error:
        reason = engine.spawn_error if engine is not None else "unsupported file type"
        print(reason, file=sys.stderr)
        pack.shutdown()
        return EXIT_SPAWN_FAILED

    if args.syntax_check:
        pack.request_syntax_check(file_path=file_path, source_text=source_text)
    else:
        pack.request_completion(
            file_path=file_path,
            source_text=source_text,
            line=max(1, args.row),
            column=max(0, args.column - 1),
            prefix=args.prefix,
        )

    QTimer.singleShot(max(1000, int(args.timeout_ms)), lambda: _finish(outcome["code"]))
    app.exec()
    if outcome["code"] == EXIT_TIMEOUT:
        print("No answer from clang-complete.", file=sys.stderr)
    if engine.spawn_error:
        outcome["code"] = EXIT_SPAWN_FAILED
    pack.shutdown()
    return int(outcome["code"])


if __name__ == "__main__":
    sys.exit(run(sys.argv[1:]))

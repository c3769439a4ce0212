from .clang_document import ClangDocumentEngine, CompletionResult
from .clang_language_pack import (
    CPP_FILE_EXTENSIONS,
    CPP_LANGUAGE_IDS,
    ClangLanguagePack,
)

__all__ = [
    "CPP_FILE_EXTENSIONS",
    "CPP_LANGUAGE_IDS",
    "ClangDocumentEngine",
    "ClangLanguagePack",
    "CompletionResult",
]

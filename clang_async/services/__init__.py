from .completion_provider import CompletionProvider, CompletionProviderCapabilities

__all__ = [
    "CompletionProvider",
    "CompletionProviderCapabilities",
]

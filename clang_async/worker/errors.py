from __future__ import annotations


class SpawnError(RuntimeError):
    """Raised when the worker executable cannot be found or started."""


class MalformedFrame(ValueError):
    """Raised when a completed response frame does not match its grammar."""


class ProtocolMisuse(AssertionError):
    """Raised when a request is sent while another one is still outstanding."""

"""Request framing and sentinel-terminated response demuxing for clang-complete."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .types import FrameComplete, FrameEvent, Incomplete, RequestMode, WorkerCrashed

SENTINEL = b"$"


@dataclass(frozen=True)
class SourcePayload:
    """Document text as uploaded, with implicit-include text prepended."""

    text: str
    extra_prefix: str = ""

    @property
    def prefix_text(self) -> str:
        prefix = str(self.extra_prefix or "")
        if prefix and not prefix.endswith("\n"):
            prefix += "\n"
        return prefix

    @property
    def prefix_line_count(self) -> int:
        return self.prefix_text.count("\n")

    @property
    def data(self) -> bytes:
        return (self.prefix_text + str(self.text or "")).encode("utf-8")

    def block(self) -> bytes:
        # Length and payload come from the same encoded bytes.
        data = self.data
        return f"source_length:{len(data)}\n".encode("ascii") + data + b"\n\n"


def source_upload_request(payload: SourcePayload) -> bytes:
    return b"SOURCEFILE\n" + payload.block()


def reparse_request(payload: SourcePayload) -> bytes:
    return source_upload_request(payload) + b"REPARSE\n\n"


def completion_request(prefix: str, row: int, column: int, payload: SourcePayload) -> bytes:
    """Completion frame; `row` is relative to the visible buffer and shifted past implicit includes."""
    clean_prefix = str(prefix or "")
    if "\n" in clean_prefix:
        raise ValueError("Completion prefix cannot span lines.")
    worker_row = max(1, int(row)) + payload.prefix_line_count
    header = (
        "COMPLETION\n"
        f"row:{worker_row}\n"
        f"column:{max(1, int(column))}\n"
        f"prefix:{clean_prefix}\n"
    )
    return header.encode("utf-8") + payload.block()


def syntax_check_request(payload: SourcePayload) -> bytes:
    return b"SYNTAXCHECK\n" + payload.block()


def cmdline_args_request(args: Iterable[str]) -> bytes:
    items = [str(arg) for arg in args]
    for arg in items:
        if not arg or any(ch.isspace() for ch in arg):
            raise ValueError(f"Worker arguments cannot be empty or contain whitespace: {arg!r}")
    body = "".join(f"{arg} " for arg in items)
    return f"CMDLINEARGS\nnum_args:{len(items)}\n{body}\n".encode("utf-8")


def shutdown_request() -> bytes:
    return b"SHUTDOWN\n"


def decode_source_block(frame: bytes) -> bytes:
    """Return the payload bytes of the first `source_length:` block in `frame`."""
    marker = b"source_length:"
    start = frame.find(marker)
    if start < 0:
        raise ValueError("Frame has no source block.")
    header_end = frame.find(b"\n", start)
    if header_end < 0:
        raise ValueError("Source block header is not terminated.")
    length = int(frame[start + len(marker) : header_end].decode("ascii"))
    body_start = header_end + 1
    body = frame[body_start : body_start + length]
    if len(body) != length:
        raise ValueError("Source block is shorter than its declared length.")
    return body


class RequestEncoder:
    """Builds every frame kind for one document."""

    def __init__(self, extra_prefix: str = "") -> None:
        self.extra_prefix = str(extra_prefix or "")

    def payload(self, text: str) -> SourcePayload:
        return SourcePayload(text=str(text or ""), extra_prefix=self.extra_prefix)

    def source_upload(self, text: str) -> bytes:
        return source_upload_request(self.payload(text))

    def reparse(self, text: str) -> bytes:
        return reparse_request(self.payload(text))

    def completion(self, prefix: str, row: int, column: int, text: str) -> bytes:
        return completion_request(prefix, row, column, self.payload(text))

    def syntax_check(self, text: str) -> bytes:
        return syntax_check_request(self.payload(text))

    def cmdline_args(self, args: Iterable[str]) -> bytes:
        return cmdline_args_request(args)

    def shutdown(self) -> bytes:
        return shutdown_request()


class ResponseDemuxer:
    """Incremental accumulator for `$`-terminated worker responses."""

    def __init__(self, sentinel: bytes = SENTINEL) -> None:
        if len(sentinel) != 1:
            raise ValueError("Sentinel must be a single byte.")
        self._sentinel = sentinel
        self._buffer = bytearray()
        self.mode = RequestMode.NONE

    def begin(self, mode: RequestMode) -> None:
        self._buffer.clear()
        self.mode = mode

    def reset(self) -> None:
        self._buffer.clear()
        self.mode = RequestMode.NONE

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def feed(self, data: bytes | bytearray) -> FrameEvent:
        if not data:
            return Incomplete(len(self._buffer))
        self._buffer.extend(data)
        if bytes(data[-1:]) != self._sentinel:
            return Incomplete(len(self._buffer))

        text = bytes(self._buffer[:-1]).decode("utf-8", errors="replace")
        mode = self.mode
        self.reset()
        return FrameComplete(mode=mode, text=text)

    def abort(self, reason: str) -> WorkerCrashed:
        event = WorkerCrashed(mode=self.mode, discarded_bytes=len(self._buffer), reason=str(reason or ""))
        self.reset()
        return event

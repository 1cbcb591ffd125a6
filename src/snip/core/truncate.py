# src/snip/core/truncate.py
"""
Per-file truncation.

A file is streamed byte by byte through a LineAccumulator, which validates
UTF-8 incrementally and keeps whole lines while both the line and byte limits
allow. Once a line does not fit, the accumulator switches to count-only mode:
it keeps counting lines for the report but stores nothing else.
"""
import codecs
from dataclasses import dataclass
from pathlib import Path

from snip.utils.text import normalize_newlines

TRUNCATION_MARKER = "… [TRUNCATED: original_lines={original} kept_lines={kept}]\n"

_READ_CHUNK = 64 * 1024
_NL = 0x0A


class InvalidEncoding(ValueError):
    """The file is not valid UTF-8."""


@dataclass(frozen=True)
class Truncation:
    content: str
    original_lines: int
    original_bytes: int
    kept_lines: int
    kept_bytes: int
    truncated: bool


def truncation_marker(original_lines: int, kept_lines: int) -> str:
    return TRUNCATION_MARKER.format(original=original_lines, kept=kept_lines)


class LineAccumulator:
    """Finite-state accumulator: buffering until a limit is hit, then count-only."""

    def __init__(self, max_lines: int, max_bytes: int):
        self.max_lines = max_lines
        self.max_bytes = max_bytes
        self.original_lines = 0
        self.original_bytes = 0
        self.kept_lines = 0
        self.truncated = False
        self._decoder = codecs.getincrementaldecoder("utf-8")("strict")
        self._kept = bytearray()
        self._line = bytearray()
        self._count_only = False
        self._last_was_newline = False

    @property
    def kept_bytes(self) -> int:
        return len(self._kept)

    def _exhausted(self) -> bool:
        return self.kept_lines >= self.max_lines or len(self._kept) >= self.max_bytes

    def _stop_buffering(self) -> None:
        self.truncated = True
        self._count_only = True
        self._line.clear()

    def _flush_line(self) -> None:
        self.original_lines += 1
        if self.kept_lines < self.max_lines and len(self._kept) + len(self._line) <= self.max_bytes:
            self._kept += self._line
            self.kept_lines += 1
            self._line.clear()
        else:
            self._stop_buffering()

    def feed(self, byte: int) -> None:
        try:
            self._decoder.decode(bytes((byte,)))
        except UnicodeDecodeError as e:
            raise InvalidEncoding(f"invalid utf-8 at byte {self.original_bytes}") from e
        self.original_bytes += 1
        self._last_was_newline = byte == _NL

        if self._count_only:
            if byte == _NL:
                self.original_lines += 1
            return

        self._line.append(byte)
        # A line that can no longer fit is dropped as soon as that is known,
        # so the buffer never grows past the remaining byte budget.
        if self._exhausted() or len(self._kept) + len(self._line) > self.max_bytes:
            self._stop_buffering()
            if byte == _NL:
                self.original_lines += 1
            return

        if byte == _NL:
            self._flush_line()

    def finish(self) -> Truncation:
        try:
            self._decoder.decode(b"", final=True)
        except UnicodeDecodeError as e:
            raise InvalidEncoding("invalid utf-8: truncated sequence at end of file") from e

        if self.original_bytes and not self._last_was_newline:
            if self._count_only:
                self.original_lines += 1
            else:
                self._flush_line()

        content = normalize_newlines(self._kept.decode("utf-8"))
        if self.truncated:
            content += truncation_marker(self.original_lines, self.kept_lines)
        return Truncation(
            content=content,
            original_lines=self.original_lines,
            original_bytes=self.original_bytes,
            kept_lines=self.kept_lines,
            kept_bytes=len(self._kept),
            truncated=self.truncated,
        )


def truncate_bytes(data: bytes, max_lines: int, max_bytes: int) -> Truncation:
    acc = LineAccumulator(max_lines, max_bytes)
    for byte in data:
        acc.feed(byte)
    return acc.finish()


def truncate_file(path: Path, max_lines: int, max_bytes: int) -> Truncation:
    """
    Reads and truncates one file. The handle never outlives this call.

    Raises OSError if the file cannot be opened or read, and InvalidEncoding
    if it is not UTF-8; no partial content is returned in either case.
    """
    acc = LineAccumulator(max_lines, max_bytes)
    with open(path, "rb") as f:
        while True:
            chunk = f.read(_READ_CHUNK)
            if not chunk:
                break
            for byte in chunk:
                acc.feed(byte)
    return acc.finish()

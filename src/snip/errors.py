# src/snip/errors.py
from typing import Optional

EXIT_OK = 0
EXIT_CANCELLED = 1
EXIT_USAGE = 2
EXIT_IO = 3
EXIT_PARTIAL = 4


class SnipError(Exception):
    """Base error. Carries the process exit code the CLI should use."""
    exit_code = EXIT_IO

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(SnipError):
    """Invalid configuration, unknown profile/slice, or bad CLI usage."""
    exit_code = EXIT_USAGE


class TraversalError(SnipError):
    """The root directory itself could not be enumerated."""


class RenderError(SnipError):
    """The render callback failed; the run produces no output."""


class OutputError(SnipError):
    pass


class Cancelled(SnipError):
    exit_code = EXIT_CANCELLED


class PartialOutput(SnipError):
    """Raised after output was written when files or slices were dropped."""
    exit_code = EXIT_PARTIAL


class ApplyError(SnipError):
    INVALID_INPUT = "invalid_input"
    IO = "io"

    def __init__(self, message: str, kind: str = INVALID_INPUT):
        super().__init__(message, EXIT_USAGE if kind == self.INVALID_INPUT else EXIT_IO)
        self.kind = kind

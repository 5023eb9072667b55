"""Exceptions raised by the dithering pipeline.

Every failure the CLI reports derives from DitherSomeError. Configuration
errors are also ValueErrors and pipe failures are also IOErrors.
"""

from __future__ import annotations


class DitherSomeError(Exception):
    """Base class for all dither-some failures."""


class ConfigurationError(DitherSomeError, ValueError):
    """Invalid options detected before any frame is streamed."""


class ResolutionError(ConfigurationError):
    """A resolution could not be resolved."""


class InvalidReference(ResolutionError):
    """The reference resolution is itself unresolved."""


class Underspecified(ResolutionError):
    """Both fields are sentinels, so neither dimension can be derived."""


class ProbeError(DitherSomeError):
    """ffprobe failed to start, exited non-zero or printed garbage."""


class StreamIoError(DitherSomeError, IOError):
    """A frame pipe could not be opened or written."""


class SubprocessExitError(DitherSomeError):
    """The encoder exited with a non-zero status."""

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class RemuxError(DitherSomeError):
    """Both the stream-copy and the AAC fallback remux failed."""

    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(message)
        self.stderr = stderr

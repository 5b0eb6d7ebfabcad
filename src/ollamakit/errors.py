"""Errors raised or forwarded by streaming calls.

Transport failures are not wrapped: consumers see the original
``httpx.TransportError`` or ``httpx.HTTPStatusError``.
"""

from __future__ import annotations


class OllamaKitError(Exception):
    """Base class for errors raised by this package."""


class RequestConstructionError(OllamaKitError):
    """Raised when a request cannot be built from the config and payload."""


class DecodeError(OllamaKitError):
    """Raised when a non-empty stream line does not decode into a response."""

    def __init__(self, line: str, cause: Exception | None = None) -> None:
        self.line = line
        self.cause = cause
        preview = line if len(line) <= 200 else line[:200] + "..."
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Could not decode stream line {preview!r}{detail}")


class ServerError(DecodeError):
    """Raised when the server reports an error record inside the stream."""

    def __init__(self, line: str, message: str) -> None:
        self.message = message
        super().__init__(line)
        self.args = (f"Server reported an error: {message}",)

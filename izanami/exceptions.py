"""Exception classes for the Izanami SDK."""

from __future__ import annotations


class IzanamiError(Exception):
    """Raised when an Izanami request or client setup fails.

    Attributes:
        code: Machine-readable error code (e.g. ``"HTTP_503"`` or
            ``"MISSING_CLIENT_CREDENTIALS"``).
        status: HTTP status code of the response, ``0`` when no response
            was received.
        message: Human-readable error description.
    """

    def __init__(self, message: str, *, code: str, status: int = 0) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.message = message

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, status={self.status}, "
            f"message={self.message!r})"
        )

    def __str__(self) -> str:
        if self.status:
            return f"[{self.code}] {self.message} (HTTP {self.status})"
        return f"[{self.code}] {self.message}"


class EventStreamError(IzanamiError):
    """A single event-stream attempt failed at the transport level.

    Covers connection failures, responses other than 200 and I/O errors while
    reading the stream. Watchers log it and reconnect with backoff; it only
    reaches callers of :func:`izanami.events.open_event_stream` directly.
    """

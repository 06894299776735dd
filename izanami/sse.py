"""Incremental Server-Sent Events decoder.

The decoder is I/O free: the event watchers read lines from the HTTP
response and feed them here one at a time, so the same code serves the
synchronous and asynchronous clients.
"""

from __future__ import annotations

import re

from izanami.models import Event

_INTEGER = re.compile(r"[+-]?[0-9]+")


def parse_retry(value: str) -> float:
    """Convert a ``retry`` field value to a delay in seconds.

    The value is a base-10 count of milliseconds. Anything that does not
    parse, or is not strictly positive, yields ``0.0``.
    """
    if not _INTEGER.fullmatch(value):
        return 0.0
    milliseconds = int(value)
    if milliseconds <= 0:
        return 0.0
    return milliseconds / 1000


def split_field(line: str) -> tuple[str, str] | None:
    """Split a ``field: value`` line.

    Returns ``None`` for comments and for lines without a colon. At most one
    space after the colon is removed from the value.
    """
    if line.startswith(":"):
        return None
    name, sep, value = line.partition(":")
    if not sep:
        return None
    if value.startswith(" "):
        value = value[1:]
    return name, value


class EventStreamParser:
    """Rebuilds events from the lines of one connection attempt.

    Feed each line (with or without its ``\\n``/``\\r\\n`` terminator) to
    :meth:`feed`. It returns a complete :class:`Event` when a blank line
    closes an event carrying data, and ``None`` otherwise.

    Attributes:
        retry_delay: The most recent positive ``retry`` value seen during
            the attempt, in seconds. ``0.0`` when the server sent none.
    """

    def __init__(self) -> None:
        self.retry_delay = 0.0
        self._id = ""
        self._type = ""
        self._data = ""

    def feed(self, line: str) -> Event | None:
        line = line.removesuffix("\n").removesuffix("\r")

        if not line:
            if not self._data:
                # Keep-alive
                return None
            event = Event(id=self._id, type=self._type, data=self._data)
            self._reset()
            return event

        parsed = split_field(line)
        if parsed is None:
            return None

        name, value = parsed
        if name == "id":
            self._id = value
        elif name == "event":
            self._type = value
        elif name == "data":
            if self._data:
                self._data += "\n"
            self._data += value
        elif name == "retry":
            delay = parse_retry(value)
            if delay > 0:
                self.retry_delay = delay
        return None

    def _reset(self) -> None:
        self._id = ""
        self._type = ""
        self._data = ""

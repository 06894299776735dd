"""Value types shared by the event-stream client."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union


@dataclass(frozen=True)
class Event:
    """A complete Server-Sent Event received from Izanami."""

    id: str = ""
    type: str = ""
    data: str = ""

    def json(self) -> Any | None:
        """Decode ``data`` as JSON, or return ``None`` if it is not JSON."""
        try:
            return json.loads(self.data)
        except json.JSONDecodeError:
            return None


@dataclass(frozen=True)
class WatchRequest:
    """Scope of an event subscription.

    Empty or zero fields are not sent. A non-empty ``payload`` switches the
    request from GET to POST with a JSON body, which the server uses to
    evaluate script features.
    """

    user: str = ""
    context: str = ""
    features: tuple[str, ...] = ()
    projects: tuple[str, ...] = ()
    conditions: bool = False
    date: str | datetime = ""
    one_tag_in: tuple[str, ...] = ()
    all_tags_in: tuple[str, ...] = ()
    no_tag_in: tuple[str, ...] = ()
    refresh_interval: int = 0
    keep_alive_interval: int = 0
    payload: str = ""

    def __post_init__(self) -> None:
        # Accept lists from callers but store tuples so the request stays hashable.
        for name in ("features", "projects", "one_tag_in", "all_tags_in", "no_tag_in"):
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))


# ---------------------------------------------------------------------------
# Feature activation values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BoolActive:
    """Activation of a classic on/off feature."""

    value: bool

    def __str__(self) -> str:
        return "true" if self.value else "false"


@dataclass(frozen=True)
class StringActive:
    """Activation of a string-valued feature."""

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class NumberActive:
    """Activation of a number-valued feature."""

    value: float

    def __str__(self) -> str:
        if self.value.is_integer():
            return str(int(self.value))
        return str(self.value)


ActiveValue = Union[BoolActive, StringActive, NumberActive]


def active_value(raw: Any) -> ActiveValue:
    """Wrap a decoded JSON ``active`` field in its tagged variant.

    Raises:
        TypeError: If ``raw`` is not a bool, string or number.
    """
    # bool is checked first: it is a subclass of int.
    if isinstance(raw, bool):
        return BoolActive(raw)
    if isinstance(raw, str):
        return StringActive(raw)
    if isinstance(raw, (int, float)):
        return NumberActive(float(raw))
    raise TypeError(f"unsupported active value: {raw!r}")

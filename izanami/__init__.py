"""Izanami Python SDK.

Provides synchronous and asynchronous clients for the live event stream of
an Izanami feature-flag server.

Quick start::

    from izanami import CancelToken, IzanamiClient, WatchRequest

    token = CancelToken()
    client = IzanamiClient(
        "http://localhost:9000", client_id="my-id", client_secret="my-secret"
    )
    client.events.watch(WatchRequest(projects=["my-project"]), print, cancel=token)

For async usage::

    from izanami import AsyncIzanamiClient, WatchRequest

    async def main():
        async with AsyncIzanamiClient(
            "http://localhost:9000", client_id="my-id", client_secret="my-secret"
        ) as client:
            await client.events.watch(WatchRequest(), handle_event)
"""

from __future__ import annotations

from izanami.async_client import AsyncIzanamiClient
from izanami.client import IzanamiClient
from izanami.config import ClientSettings
from izanami.events import Backoff, CancelToken, watch_events, watch_events_async
from izanami.exceptions import EventStreamError, IzanamiError
from izanami.models import (
    ActiveValue,
    BoolActive,
    Event,
    NumberActive,
    StringActive,
    WatchRequest,
    active_value,
)

__all__ = [
    "IzanamiClient",
    "AsyncIzanamiClient",
    "ClientSettings",
    "IzanamiError",
    "EventStreamError",
    "Event",
    "WatchRequest",
    "CancelToken",
    "Backoff",
    "watch_events",
    "watch_events_async",
    "ActiveValue",
    "BoolActive",
    "StringActive",
    "NumberActive",
    "active_value",
]

__version__ = "0.1.0"

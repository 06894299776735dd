"""Namespace classes for the Izanami SDK.

Each namespace groups related endpoints and delegates HTTP calls to the
parent client's internal transport methods.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager, AbstractContextManager
from typing import TYPE_CHECKING, Any

from izanami.events import (
    AsyncEventCallback,
    Backoff,
    CancelToken,
    EventCallback,
    open_event_stream,
    open_event_stream_async,
    watch_events,
    watch_events_async,
)
from izanami.models import WatchRequest

if TYPE_CHECKING:
    import httpx

    from izanami._transport import AsyncTransport, SyncTransport


class EventsNamespace:
    """Event stream endpoints (``/api/v2/events``)."""

    def __init__(self, transport: SyncTransport, log: Any = None) -> None:
        self._t = transport
        self._log = log

    def watch(
        self,
        request: WatchRequest | None,
        callback: EventCallback,
        *,
        cancel: CancelToken | None = None,
        backoff: Backoff | None = None,
    ) -> None:
        """Watch events until ``cancel`` is cancelled.

        Reconnects automatically, resuming from the last handled event.
        An exception raised by ``callback`` stops the watch and propagates.
        """
        watch_events(
            self._t,
            request or WatchRequest(),
            callback,
            cancel=cancel,
            log=self._log,
            backoff=backoff,
        )

    def open(
        self, request: WatchRequest | None = None, last_event_id: str = ""
    ) -> AbstractContextManager[httpx.Response]:
        """Open a single stream connection without reconnection."""
        return open_event_stream(
            self._t, request or WatchRequest(), last_event_id, log=self._log
        )


class AsyncEventsNamespace:
    """Async event stream endpoints (``/api/v2/events``)."""

    def __init__(self, transport: AsyncTransport, log: Any = None) -> None:
        self._t = transport
        self._log = log

    async def watch(
        self,
        request: WatchRequest | None,
        callback: AsyncEventCallback,
        *,
        backoff: Backoff | None = None,
    ) -> None:
        """Watch events until the calling task is cancelled."""
        await watch_events_async(
            self._t,
            request or WatchRequest(),
            callback,
            log=self._log,
            backoff=backoff,
        )

    def open(
        self, request: WatchRequest | None = None, last_event_id: str = ""
    ) -> AbstractAsyncContextManager[httpx.Response]:
        """Open a single stream connection without reconnection."""
        return open_event_stream_async(
            self._t, request or WatchRequest(), last_event_id, log=self._log
        )

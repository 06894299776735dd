"""Server-Sent Events (SSE) support for the Izanami SDK.

Provides the stream opener for ``/api/v2/events`` and the watchers that keep
a subscription alive across disconnects, in synchronous and asynchronous
flavours.

A watch only ends when the caller cancels it or when the callback raises.
Transport failures are logged and retried forever with exponential backoff;
a clean server-side disconnect is retried after a short fixed delay.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import socket
import threading
from contextlib import (
    AsyncExitStack,
    ExitStack,
    asynccontextmanager,
    contextmanager,
)
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Iterator,
    Union,
)

import httpx
import structlog

from izanami.exceptions import EventStreamError
from izanami.models import Event, WatchRequest
from izanami.sse import EventStreamParser

if TYPE_CHECKING:
    from izanami._transport import AsyncTransport, SyncTransport

logger = structlog.get_logger(__name__)

EVENTS_PATH = "/api/v2/events"

INITIAL_BACKOFF = 1.0
MAX_BACKOFF = 60.0
DISCONNECT_DELAY = 2.0

MAX_LOGGED_BODY = 2048

SENSITIVE_HEADERS = frozenset(
    {
        "cookie",
        "set-cookie",
        "authorization",
        "izanami-client-secret",
        "izanami-client-id",
        "x-api-key",
        "authentication",
        "www-authenticate",
    }
)

EventCallback = Callable[[Event], Any]
AsyncEventCallback = Callable[[Event], Union[Awaitable[Any], Any]]

# Errors raised by httpx while reading a response body. StreamError covers
# reads on a response closed by CancelToken.cancel().
_READ_ERRORS = (httpx.HTTPError, httpx.StreamError)


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------


def normalize_context_path(path: str) -> str:
    """Give a non-empty context path its leading ``/``."""
    if path and not path.startswith("/"):
        return "/" + path
    return path


def build_watch_params(request: WatchRequest) -> dict[str, str]:
    """Build the query parameters for ``request``, skipping unset fields."""
    params: dict[str, str] = {}
    if request.user:
        params["user"] = request.user
    if request.context:
        params["context"] = normalize_context_path(request.context)
    if request.features:
        params["features"] = ",".join(request.features)
    if request.projects:
        params["projects"] = ",".join(request.projects)
    if request.conditions:
        params["conditions"] = "true"
    if request.date:
        date = request.date
        params["date"] = date.isoformat() if isinstance(date, datetime) else date
    if request.one_tag_in:
        params["oneTagIn"] = ",".join(request.one_tag_in)
    if request.all_tags_in:
        params["allTagIn"] = ",".join(request.all_tags_in)
    if request.no_tag_in:
        params["noTagIn"] = ",".join(request.no_tag_in)
    if request.refresh_interval > 0:
        params["refreshInterval"] = str(request.refresh_interval)
    if request.keep_alive_interval > 0:
        params["keepAliveInterval"] = str(request.keep_alive_interval)
    return params


def build_watch_headers(request: WatchRequest, last_event_id: str = "") -> dict[str, str]:
    """Build the per-attempt headers: resumption id and payload content type."""
    headers: dict[str, str] = {}
    if last_event_id:
        headers["Last-Event-Id"] = last_event_id
    if request.payload:
        headers["Content-Type"] = "application/json"
    return headers


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Return a copy of ``headers`` safe to log."""
    return {
        key: "[REDACTED]" if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def _truncate(body: str | None) -> str | None:
    if body is None or len(body) <= MAX_LOGGED_BODY:
        return body
    extra = len(body) - MAX_LOGGED_BODY
    return f"{body[:MAX_LOGGED_BODY]}... [TRUNCATED: {extra} more bytes]"


def _prepare(
    transport: SyncTransport | AsyncTransport,
    request: WatchRequest,
    last_event_id: str,
    log: Any,
) -> tuple[str, dict[str, str], dict[str, str], str | None]:
    method = "POST" if request.payload else "GET"
    params = build_watch_params(request)
    headers = build_watch_headers(request, last_event_id)
    content = request.payload or None

    if transport.verbose:
        log.info(
            "izanami.events.request",
            method=method,
            url=transport.base_url + EVENTS_PATH,
            params=params,
            headers=redact_headers({**transport._auth_headers(), **headers}),
            body=_truncate(content),
        )
    return method, params, headers, content


def _check_response(
    transport: SyncTransport | AsyncTransport,
    response: httpx.Response,
    log: Any,
) -> None:
    if transport.verbose:
        log.info(
            "izanami.events.response",
            status=response.status_code,
            reason=response.reason_phrase,
        )
    if response.status_code != httpx.codes.OK:
        raise EventStreamError(
            f"event stream returned status {response.status_code}",
            code=f"HTTP_{response.status_code}",
            status=response.status_code,
        )


def _connect_error(exc: Exception) -> EventStreamError:
    return EventStreamError(
        f"failed to connect to event stream: {exc}",
        code="EVENT_STREAM_CONNECT_FAILED",
    )


def _read_error(exc: Exception) -> EventStreamError:
    return EventStreamError(
        f"error reading event stream: {exc}",
        code="EVENT_STREAM_READ_FAILED",
    )


def _log_failure(log: Any, exc: EventStreamError) -> None:
    log.warning(
        "izanami.events.attempt_failed",
        error=exc.message,
        code=exc.code,
        status=exc.status,
    )


@contextmanager
def open_event_stream(
    transport: SyncTransport,
    request: WatchRequest,
    last_event_id: str = "",
    *,
    log: Any = None,
) -> Iterator[httpx.Response]:
    """Open one event-stream connection (synchronous).

    The yielded response is live and unread. It is closed when the block
    exits, however it exits.

    Args:
        transport: Client that injects authentication and sends the request.
        request: Subscription scope.
        last_event_id: Id of the last event handled, sent as
            ``Last-Event-Id`` when non-empty.
        log: structlog logger for verbose request logging.

    Raises:
        EventStreamError: If the connection fails or the server answers
            with any status other than 200.
    """
    log = log or logger
    method, params, headers, content = _prepare(transport, request, last_event_id, log)
    with ExitStack() as stack:
        try:
            response = stack.enter_context(
                transport._stream(
                    method, EVENTS_PATH, params=params, headers=headers, content=content
                )
            )
        except httpx.HTTPError as exc:
            raise _connect_error(exc) from exc
        _check_response(transport, response, log)
        yield response


@asynccontextmanager
async def open_event_stream_async(
    transport: AsyncTransport,
    request: WatchRequest,
    last_event_id: str = "",
    *,
    log: Any = None,
) -> AsyncIterator[httpx.Response]:
    """Open one event-stream connection (asynchronous).

    Same contract as :func:`open_event_stream`.
    """
    log = log or logger
    method, params, headers, content = _prepare(transport, request, last_event_id, log)
    async with AsyncExitStack() as stack:
        try:
            response = await stack.enter_async_context(
                transport._stream(
                    method, EVENTS_PATH, params=params, headers=headers, content=content
                )
            )
        except httpx.HTTPError as exc:
            raise _connect_error(exc) from exc
        _check_response(transport, response, log)
        yield response


# ---------------------------------------------------------------------------
# Reconnection policy
# ---------------------------------------------------------------------------


class AttemptOutcome(enum.Enum):
    """How a single connection attempt ended.

    The watchers report ``DISCONNECTED`` for every end of stream, since a
    line iterator has no other way to finish without an error.
    ``COMPLETED`` is the policy's recovery outcome and resets the backoff
    without the fixed disconnect delay; the two are never merged.
    """

    COMPLETED = "completed"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class Backoff:
    """Delay between connection attempts.

    ``current`` is the delay the next failure will wait. It starts at
    ``initial``, doubles after each consecutive failure and never exceeds
    ``maximum``.
    """

    initial: float = INITIAL_BACKOFF
    maximum: float = MAX_BACKOFF
    disconnect_delay: float = DISCONNECT_DELAY
    current: float = field(init=False)

    def __post_init__(self) -> None:
        self.current = self.initial

    def next_delay(self, outcome: AttemptOutcome, retry_delay: float = 0.0) -> float:
        """Compute the sleep before the next attempt and update the state.

        Args:
            outcome: How the attempt that just ended finished.
            retry_delay: Server-suggested delay in seconds from the SSE
                ``retry`` field. When positive it replaces the computed
                delay for this sleep only.

        Raises:
            ValueError: For ``CANCELLED``, which never reconnects.
        """
        if outcome is AttemptOutcome.FAILED:
            delay = self.current
            self.current = min(self.current * 2, self.maximum)
        elif outcome is AttemptOutcome.DISCONNECTED:
            delay = self.disconnect_delay
            self.current = self.initial
        elif outcome is AttemptOutcome.COMPLETED:
            self.current = self.initial
            delay = self.current
        else:
            raise ValueError(f"no reconnect delay for {outcome.value} attempts")

        if retry_delay > 0:
            return retry_delay
        return delay


def _abort(response: httpx.Response) -> None:
    """Close ``response`` and wake any thread blocked reading it.

    Closing alone does not interrupt a ``recv`` already waiting in another
    thread, so the socket is shut down first when the transport exposes it.
    """
    stream = response.extensions.get("network_stream")
    sock = stream.get_extra_info("socket") if stream is not None else None
    if sock is not None:
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Already closed by the peer or by the reader.
            pass
    response.close()


class CancelToken:
    """Cooperative stop signal for a synchronous watch.

    Call :meth:`cancel` from any thread (a signal handler, another worker)
    to stop the watch. It wakes a pending backoff sleep at once and shuts
    down the socket of the in-flight response, so a read blocked on a
    silent server returns.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._response: httpx.Response | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request the watch to stop."""
        self._event.set()
        with self._lock:
            response = self._response
        if response is not None:
            _abort(response)

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; return ``True`` if cancelled."""
        return self._event.wait(timeout)

    @contextmanager
    def _watching(self, response: httpx.Response) -> Iterator[None]:
        with self._lock:
            self._response = response
        if self.cancelled:
            _abort(response)
        try:
            yield
        finally:
            with self._lock:
                self._response = None


# ---------------------------------------------------------------------------
# Watchers
# ---------------------------------------------------------------------------


class EventWatcher:
    """Keeps an event subscription alive (synchronous).

    Each call to :meth:`run` is one watch: it connects, hands every complete
    event to ``callback`` in stream order and reconnects after failures,
    resuming from the last handled event id.

    Args:
        transport: Client that authenticates and sends requests.
        request: Subscription scope.
        callback: Called once per event. Raising stops the watch and the
            exception propagates out of :meth:`run`.
        cancel: Token used to stop the watch from another thread.
        log: structlog logger. Defaults to this module's logger.
        backoff: Reconnection policy. Defaults to 1 s doubling up to 60 s.
    """

    def __init__(
        self,
        transport: SyncTransport,
        request: WatchRequest,
        callback: EventCallback,
        *,
        cancel: CancelToken | None = None,
        log: Any = None,
        backoff: Backoff | None = None,
    ) -> None:
        self._transport = transport
        self._request = request
        self._callback = callback
        self._cancel = cancel or CancelToken()
        self._log = log or logger
        self._policy = backoff or Backoff()
        # Per-watch state, reset by run().
        self._backoff = replace(self._policy)
        self._last_event_id = ""

    @property
    def last_event_id(self) -> str:
        """Id of the last event the callback accepted."""
        return self._last_event_id

    def _start(self) -> None:
        # A copy, so the caller's policy object is never mutated.
        self._backoff = replace(self._policy)
        self._last_event_id = ""

    def run(self) -> None:
        """Watch until cancelled. Returns ``None`` once the token is cancelled.

        Every call starts a new watch: no resumption id, initial backoff.
        """
        self._start()
        attempt = 0
        while not self._cancel.cancelled:
            attempt += 1
            outcome, retry_delay = self._attempt()
            if outcome is AttemptOutcome.CANCELLED:
                return

            delay = self._backoff.next_delay(outcome, retry_delay)
            self._log.info(
                "izanami.events.reconnecting",
                delay=delay,
                outcome=outcome.value,
                attempt=attempt,
            )
            if self._cancel.wait(delay):
                return

    def _attempt(self) -> tuple[AttemptOutcome, float]:
        parser = EventStreamParser()
        # Only opening and reading are classified here. Exceptions raised
        # by the callback propagate untouched.
        with ExitStack() as stack:
            try:
                response = stack.enter_context(
                    open_event_stream(
                        self._transport, self._request, self._last_event_id, log=self._log
                    )
                )
            except EventStreamError as exc:
                return self._failed(exc, parser.retry_delay)
            stack.enter_context(self._cancel._watching(response))

            lines = response.iter_lines()
            while True:
                try:
                    line = next(lines)
                except StopIteration:
                    if self._cancel.cancelled:
                        return AttemptOutcome.CANCELLED, 0.0
                    return AttemptOutcome.DISCONNECTED, parser.retry_delay
                except Exception as exc:
                    if self._cancel.cancelled:
                        return AttemptOutcome.CANCELLED, 0.0
                    if isinstance(exc, _READ_ERRORS):
                        return self._failed(_read_error(exc), parser.retry_delay)
                    raise

                if self._cancel.cancelled:
                    return AttemptOutcome.CANCELLED, 0.0

                event = parser.feed(line)
                if event is not None:
                    self._deliver(event)

    def _failed(
        self, exc: EventStreamError, retry_delay: float
    ) -> tuple[AttemptOutcome, float]:
        if self._cancel.cancelled:
            return AttemptOutcome.CANCELLED, 0.0
        _log_failure(self._log, exc)
        return AttemptOutcome.FAILED, retry_delay

    def _deliver(self, event: Event) -> None:
        self._callback(event)
        if event.id:
            self._last_event_id = event.id
        self._log.debug(
            "izanami.events.delivered", event_id=event.id, event_type=event.type
        )


class AsyncEventWatcher:
    """Keeps an event subscription alive (asynchronous).

    Cancel the task running :meth:`run` to stop the watch: cancellation
    interrupts both a pending read and a backoff sleep, and
    :class:`asyncio.CancelledError` propagates to the caller.

    ``callback`` may be a plain function or a coroutine function. Its result
    is awaited before the next line is read.
    """

    def __init__(
        self,
        transport: AsyncTransport,
        request: WatchRequest,
        callback: AsyncEventCallback,
        *,
        log: Any = None,
        backoff: Backoff | None = None,
    ) -> None:
        self._transport = transport
        self._request = request
        self._callback = callback
        self._log = log or logger
        self._policy = backoff or Backoff()
        # Per-watch state, reset by run().
        self._backoff = replace(self._policy)
        self._last_event_id = ""
        self._sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    @property
    def last_event_id(self) -> str:
        """Id of the last event the callback accepted."""
        return self._last_event_id

    def _start(self) -> None:
        # A copy, so the caller's policy object is never mutated.
        self._backoff = replace(self._policy)
        self._last_event_id = ""

    async def run(self) -> None:
        """Watch until the surrounding task is cancelled or the callback raises.

        Every call starts a new watch: no resumption id, initial backoff.
        """
        self._start()
        attempt = 0
        while True:
            attempt += 1
            outcome, retry_delay = await self._attempt()
            delay = self._backoff.next_delay(outcome, retry_delay)
            self._log.info(
                "izanami.events.reconnecting",
                delay=delay,
                outcome=outcome.value,
                attempt=attempt,
            )
            await self._sleep(delay)

    async def _attempt(self) -> tuple[AttemptOutcome, float]:
        parser = EventStreamParser()
        async with AsyncExitStack() as stack:
            try:
                response = await stack.enter_async_context(
                    open_event_stream_async(
                        self._transport, self._request, self._last_event_id, log=self._log
                    )
                )
            except EventStreamError as exc:
                _log_failure(self._log, exc)
                return AttemptOutcome.FAILED, parser.retry_delay

            lines = response.aiter_lines()
            while True:
                try:
                    line = await anext(lines)
                except StopAsyncIteration:
                    return AttemptOutcome.DISCONNECTED, parser.retry_delay
                except _READ_ERRORS as exc:
                    _log_failure(self._log, _read_error(exc))
                    return AttemptOutcome.FAILED, parser.retry_delay

                event = parser.feed(line)
                if event is not None:
                    await self._deliver(event)

    async def _deliver(self, event: Event) -> None:
        result = self._callback(event)
        if inspect.isawaitable(result):
            await result
        if event.id:
            self._last_event_id = event.id
        self._log.debug(
            "izanami.events.delivered", event_id=event.id, event_type=event.type
        )


def watch_events(
    transport: SyncTransport,
    request: WatchRequest,
    callback: EventCallback,
    *,
    cancel: CancelToken | None = None,
    log: Any = None,
    backoff: Backoff | None = None,
) -> None:
    """Watch Izanami events until ``cancel`` is cancelled (synchronous).

    Blocks the calling thread. Returns ``None`` after cancellation; an
    exception raised by ``callback`` propagates unchanged.

    Example::

        token = CancelToken()
        signal.signal(signal.SIGINT, lambda *_: token.cancel())
        watch_events(client, WatchRequest(projects=["my-project"]), print,
                     cancel=token)
    """
    EventWatcher(
        transport, request, callback, cancel=cancel, log=log, backoff=backoff
    ).run()


async def watch_events_async(
    transport: AsyncTransport,
    request: WatchRequest,
    callback: AsyncEventCallback,
    *,
    log: Any = None,
    backoff: Backoff | None = None,
) -> None:
    """Watch Izanami events until the task is cancelled (asynchronous).

    Example::

        task = asyncio.create_task(
            watch_events_async(client, WatchRequest(), handle_event)
        )
        ...
        task.cancel()
    """
    await AsyncEventWatcher(
        transport, request, callback, log=log, backoff=backoff
    ).run()

"""Synchronous Izanami client.

Provides ``IzanamiClient``, a synchronous wrapper around the Izanami client
API (``/api/v2``) using :mod:`httpx`.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import httpx
from httpx_sse import connect_sse

from izanami.config import ClientSettings
from izanami.namespaces import EventsNamespace


def _settings_from(settings: ClientSettings | None, **overrides: Any) -> ClientSettings:
    """Use ``settings`` as is, or build them from explicit arguments and the environment."""
    if settings is not None:
        return settings
    return ClientSettings(**{k: v for k, v in overrides.items() if v is not None})


class IzanamiClient:
    """Synchronous client for the Izanami client API.

    Usage::

        from izanami import IzanamiClient, WatchRequest

        client = IzanamiClient(
            "http://localhost:9000", client_id="my-id", client_secret="my-secret"
        )
        client.events.watch(WatchRequest(projects=["my-project"]), print)

    The client manages its own :class:`httpx.Client` instance. Use it as a
    context manager to ensure the underlying connection pool is closed
    promptly::

        with IzanamiClient(settings=ClientSettings()) as client:
            client.events.watch(None, handle_event, cancel=token)

    Arguments left as ``None`` are read from ``IZANAMI_*`` environment
    variables.

    Args:
        base_url: Root URL of the Izanami leader instance.
        client_id: Client API key id.
        client_secret: Client API key secret.
        worker_url: Optional worker URL used instead of the leader.
        timeout: Connect timeout in seconds. Defaults to 30.
        verify: Verify TLS certificates. Defaults to ``True``.
        verbose: Log event-stream requests with secrets redacted.
        settings: Complete settings, used instead of the arguments above.
        log: structlog logger for the event watchers.

    Raises:
        IzanamiError: If the client id or secret is missing.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        worker_url: str | None = None,
        timeout: float | None = None,
        verify: bool | None = None,
        verbose: bool | None = None,
        settings: ClientSettings | None = None,
        log: Any = None,
    ) -> None:
        self._settings = _settings_from(
            settings,
            leader_url=base_url,
            client_id=client_id,
            client_secret=client_secret,
            worker_url=worker_url,
            timeout=timeout,
            verify=verify,
            verbose=verbose,
        )
        self._settings.validate_client_auth()
        self._base_url = self._settings.base_url
        self._http = httpx.Client(
            base_url=self._base_url,
            timeout=self._settings.timeout,
            verify=self._settings.verify,
        )

        # Namespace accessors
        self.events = EventsNamespace(self, log)

    # -- Context manager ----------------------------------------------------

    def __enter__(self) -> IzanamiClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self._http.close()

    # -- Transport ----------------------------------------------------------

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def verbose(self) -> bool:
        return self._settings.verbose

    def _auth_headers(self) -> dict[str, str]:
        """Build the client API authentication headers."""
        return {
            "Izanami-Client-Id": self._settings.client_id,
            "Izanami-Client-Secret": self._settings.client_secret,
        }

    @contextmanager
    def _stream(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str],
        headers: dict[str, str],
        content: str | None = None,
    ) -> Iterator[httpx.Response]:
        """Send a streaming request and yield the unread response."""
        with connect_sse(
            self._http,
            method,
            path,
            params=params,
            headers={**self._auth_headers(), **headers},
            content=content,
            # The stream stays open indefinitely between events.
            timeout=httpx.Timeout(self._settings.timeout, read=None),
        ) as event_source:
            yield event_source.response

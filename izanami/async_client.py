"""Asynchronous Izanami client.

Provides ``AsyncIzanamiClient``, an async wrapper around the Izanami client
API (``/api/v2``) using :mod:`httpx` with ``AsyncClient``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
from httpx_sse import aconnect_sse

from izanami.client import _settings_from
from izanami.config import ClientSettings
from izanami.namespaces import AsyncEventsNamespace


class AsyncIzanamiClient:
    """Asynchronous client for the Izanami client API.

    Usage::

        import asyncio
        from izanami import AsyncIzanamiClient, WatchRequest

        async def main():
            async with AsyncIzanamiClient(
                "http://localhost:9000", client_id="id", client_secret="secret"
            ) as client:
                await client.events.watch(WatchRequest(), print)

        asyncio.run(main())

    Cancel the task running ``events.watch`` to stop watching.

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
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._settings.timeout,
            verify=self._settings.verify,
        )

        # Namespace accessors
        self.events = AsyncEventsNamespace(self, log)

    # -- Context manager ----------------------------------------------------

    async def __aenter__(self) -> AsyncIzanamiClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying async HTTP connection pool."""
        await self._http.aclose()

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

    @asynccontextmanager
    async def _stream(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str],
        headers: dict[str, str],
        content: str | None = None,
    ) -> AsyncIterator[httpx.Response]:
        """Send a streaming request and yield the unread response."""
        async with aconnect_sse(
            self._http,
            method,
            path,
            params=params,
            headers={**self._auth_headers(), **headers},
            content=content,
            timeout=httpx.Timeout(self._settings.timeout, read=None),
        ) as event_source:
            yield event_source.response

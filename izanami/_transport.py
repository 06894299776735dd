"""Transport protocol definitions for the event-stream code.

These protocols describe what the stream opener needs from a client: where
requests go, which authentication headers it injects, and how it opens a
streaming request. They are used only for static type checking and are not
instantiated at runtime.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager, AbstractContextManager
from typing import Protocol

import httpx


class SyncTransport(Protocol):
    """Protocol for synchronous streaming transports."""

    @property
    def base_url(self) -> str: ...

    @property
    def verbose(self) -> bool: ...

    def _auth_headers(self) -> dict[str, str]: ...

    def _stream(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str],
        headers: dict[str, str],
        content: str | None = None,
    ) -> AbstractContextManager[httpx.Response]: ...


class AsyncTransport(Protocol):
    """Protocol for asynchronous streaming transports."""

    @property
    def base_url(self) -> str: ...

    @property
    def verbose(self) -> bool: ...

    def _auth_headers(self) -> dict[str, str]: ...

    def _stream(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str],
        headers: dict[str, str],
        content: str | None = None,
    ) -> AbstractAsyncContextManager[httpx.Response]: ...

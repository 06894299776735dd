"""Shared fixtures for the Izanami SDK tests."""

from __future__ import annotations

import pytest

from izanami import AsyncIzanamiClient, CancelToken, IzanamiClient

BASE_URL = "http://izanami.test"
EVENTS_URL = f"{BASE_URL}/api/v2/events"
SSE_HEADERS = {"content-type": "text/event-stream"}


class RecordingToken(CancelToken):
    """CancelToken that records backoff sleeps instead of waiting.

    Cancels itself once ``stop_after`` sleeps have been requested.
    """

    def __init__(self, stop_after: int = 1) -> None:
        super().__init__()
        self.stop_after = stop_after
        self.waits: list[float] = []

    def wait(self, timeout: float) -> bool:
        self.waits.append(timeout)
        if len(self.waits) >= self.stop_after:
            self.cancel()
        return self.cancelled


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep IZANAMI_* variables from the host out of the tests."""
    for name in (
        "IZANAMI_LEADER_URL",
        "IZANAMI_WORKER_URL",
        "IZANAMI_CLIENT_ID",
        "IZANAMI_CLIENT_SECRET",
        "IZANAMI_TIMEOUT",
        "IZANAMI_VERIFY",
        "IZANAMI_VERBOSE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def client() -> IzanamiClient:
    """Create a sync IzanamiClient pointed at the test base URL."""
    return IzanamiClient(BASE_URL, client_id="test-id", client_secret="test-secret")


@pytest.fixture()
def async_client() -> AsyncIzanamiClient:
    """Create an async AsyncIzanamiClient pointed at the test base URL."""
    return AsyncIzanamiClient(BASE_URL, client_id="test-id", client_secret="test-secret")

"""Tests for client construction, settings and authentication.

Uses ``respx`` to mock httpx requests without hitting a real server.
"""

from __future__ import annotations

import httpx
import pytest
import respx

from conftest import BASE_URL, EVENTS_URL, SSE_HEADERS
from izanami import (
    AsyncIzanamiClient,
    BoolActive,
    ClientSettings,
    Event,
    IzanamiClient,
    IzanamiError,
    NumberActive,
    StringActive,
    WatchRequest,
    active_value,
)


# ---------------------------------------------------------------------------
# Client construction
# ---------------------------------------------------------------------------


class TestClientConstruction:
    """Verify client initialization and configuration."""

    def test_base_url_stored(self) -> None:
        c = IzanamiClient("http://example.com/", client_id="i", client_secret="s")
        assert c.base_url == "http://example.com"

    def test_trailing_slash_stripped(self) -> None:
        c = IzanamiClient("http://example.com///", client_id="i", client_secret="s")
        assert c.base_url == "http://example.com"

    def test_worker_url_preferred(self) -> None:
        c = IzanamiClient(
            BASE_URL,
            worker_url="http://worker.test/",
            client_id="i",
            client_secret="s",
        )
        assert c.base_url == "http://worker.test"

    def test_missing_credentials_rejected(self) -> None:
        with pytest.raises(IzanamiError) as exc_info:
            IzanamiClient(BASE_URL, client_id="only-id")

        assert exc_info.value.code == "MISSING_CLIENT_CREDENTIALS"
        assert exc_info.value.status == 0

    def test_async_missing_credentials_rejected(self) -> None:
        with pytest.raises(IzanamiError):
            AsyncIzanamiClient(BASE_URL)

    def test_events_namespace_exists(self, client: IzanamiClient) -> None:
        assert hasattr(client, "events")

    def test_verbose_defaults_off(self, client: IzanamiClient) -> None:
        assert client.verbose is False

    def test_context_manager(self) -> None:
        with IzanamiClient(BASE_URL, client_id="i", client_secret="s") as c:
            assert c.base_url == BASE_URL
        # After exiting, the httpx client should be closed
        assert c._http.is_closed


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestClientSettings:
    """Verify settings from arguments and the environment."""

    def test_defaults(self) -> None:
        settings = ClientSettings(leader_url=BASE_URL)

        assert settings.timeout == 30.0
        assert settings.verify is True
        assert settings.verbose is False
        assert settings.base_url == BASE_URL

    def test_settings_are_frozen(self) -> None:
        settings = ClientSettings(leader_url=BASE_URL)

        with pytest.raises(Exception):
            settings.verbose = True  # type: ignore[misc]

    def test_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("IZANAMI_LEADER_URL", "http://env.test")
        monkeypatch.setenv("IZANAMI_CLIENT_ID", "env-id")
        monkeypatch.setenv("IZANAMI_CLIENT_SECRET", "env-secret")
        monkeypatch.setenv("IZANAMI_VERBOSE", "true")

        c = IzanamiClient()

        assert c.base_url == "http://env.test"
        assert c.verbose is True
        assert c._auth_headers()["Izanami-Client-Id"] == "env-id"

    def test_arguments_override_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("IZANAMI_LEADER_URL", "http://env.test")
        monkeypatch.setenv("IZANAMI_CLIENT_ID", "env-id")
        monkeypatch.setenv("IZANAMI_CLIENT_SECRET", "env-secret")

        c = IzanamiClient(BASE_URL, client_id="arg-id")

        assert c.base_url == BASE_URL
        assert c._auth_headers()["Izanami-Client-Id"] == "arg-id"
        assert c._auth_headers()["Izanami-Client-Secret"] == "env-secret"

    def test_explicit_settings_object(self) -> None:
        settings = ClientSettings(
            leader_url=BASE_URL, client_id="i", client_secret="s", verbose=True
        )

        c = IzanamiClient(settings=settings)

        assert c.verbose is True


# ---------------------------------------------------------------------------
# Authentication headers
# ---------------------------------------------------------------------------


class TestAuthorizationHeaders:
    """Verify client credentials are sent on the event stream."""

    @respx.mock
    def test_client_credentials_sent(self, client: IzanamiClient) -> None:
        route = respx.get(EVENTS_URL).mock(
            return_value=httpx.Response(200, headers=SSE_HEADERS, content=b"")
        )

        with client.events.open():
            pass

        request = route.calls.last.request
        assert request.headers["Izanami-Client-Id"] == "test-id"
        assert request.headers["Izanami-Client-Secret"] == "test-secret"

    @respx.mock
    def test_worker_receives_stream(self) -> None:
        route = respx.get("http://worker.test/api/v2/events").mock(
            return_value=httpx.Response(200, headers=SSE_HEADERS, content=b"")
        )
        c = IzanamiClient(
            BASE_URL, worker_url="http://worker.test", client_id="i", client_secret="s"
        )

        with c.events.open():
            pass

        assert route.called


# ---------------------------------------------------------------------------
# Async client: basic smoke tests
# ---------------------------------------------------------------------------


class TestAsyncClient:
    """Verify the async client mirrors the sync client's behaviour."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_async_open(self, async_client: AsyncIzanamiClient) -> None:
        route = respx.post(EVENTS_URL).mock(
            return_value=httpx.Response(200, headers=SSE_HEADERS, content=b"data: x\n\n")
        )

        async with async_client.events.open(WatchRequest(payload="{}"), "5") as response:
            lines = [line async for line in response.aiter_lines()]

        assert lines == ["data: x", ""]
        request = route.calls.last.request
        assert request.headers["Last-Event-Id"] == "5"
        assert request.headers["Izanami-Client-Secret"] == "test-secret"

    @respx.mock
    @pytest.mark.asyncio
    async def test_async_context_manager(self) -> None:
        async with AsyncIzanamiClient(BASE_URL, client_id="i", client_secret="s") as c:
            assert c.base_url == BASE_URL

        assert c._http.is_closed


# ---------------------------------------------------------------------------
# Errors and values
# ---------------------------------------------------------------------------


class TestErrorRepresentation:
    """Verify error formatting."""

    def test_str_with_status(self) -> None:
        err = IzanamiError("event stream returned status 503", code="HTTP_503", status=503)
        assert str(err) == "[HTTP_503] event stream returned status 503 (HTTP 503)"

    def test_str_without_status(self) -> None:
        err = IzanamiError("missing", code="MISSING_CLIENT_CREDENTIALS")
        assert str(err) == "[MISSING_CLIENT_CREDENTIALS] missing"

    def test_repr(self) -> None:
        err = IzanamiError("boom", code="X", status=500)
        assert repr(err) == "IzanamiError(code='X', status=500, message='boom')"


class TestEventValues:
    """Verify event payload helpers."""

    def test_event_json(self) -> None:
        assert Event(data='{"active": true}').json() == {"active": True}

    def test_event_json_not_json(self) -> None:
        assert Event(data="plain text").json() is None

    @pytest.mark.parametrize(
        ("raw", "expected", "text"),
        [
            (True, BoolActive(True), "true"),
            (False, BoolActive(False), "false"),
            ("variant-a", StringActive("variant-a"), "variant-a"),
            (3, NumberActive(3.0), "3"),
            (2.5, NumberActive(2.5), "2.5"),
        ],
    )
    def test_active_value(self, raw: object, expected: object, text: str) -> None:
        value = active_value(raw)
        assert value == expected
        assert str(value) == text

    def test_active_value_rejects_other_types(self) -> None:
        with pytest.raises(TypeError):
            active_value(None)

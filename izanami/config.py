"""Client configuration loaded from arguments or environment variables."""

from __future__ import annotations

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from izanami.exceptions import IzanamiError


class ClientSettings(BaseSettings):
    """Connection settings for an Izanami server.

    Every field can be supplied through the environment with the
    ``IZANAMI_`` prefix (``IZANAMI_LEADER_URL``, ``IZANAMI_CLIENT_ID``, ...).

    Attributes:
        leader_url: Root URL of the Izanami leader instance.
        worker_url: Optional root URL of a worker instance. When set, client
            API traffic (the event stream included) goes to the worker.
        client_id: Client API key id.
        client_secret: Client API key secret.
        timeout: Connect, write and pool timeout in seconds. Reads on the
            event stream never time out.
        verify: Verify TLS certificates.
        verbose: Log event-stream requests and responses with sensitive
            headers redacted.
    """

    model_config = SettingsConfigDict(
        env_prefix="IZANAMI_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    leader_url: str
    worker_url: str = ""
    client_id: str = ""
    client_secret: str = ""
    timeout: float = 30.0
    verify: bool = True
    verbose: bool = False

    @computed_field
    @property
    def base_url(self) -> str:
        """URL used for client API calls: the worker if set, else the leader."""
        return (self.worker_url or self.leader_url).rstrip("/")

    def validate_client_auth(self) -> None:
        """Ensure client API credentials are present.

        Raises:
            IzanamiError: If the client id or secret is empty.
        """
        if not self.client_id or not self.client_secret:
            raise IzanamiError(
                "client id and client secret are required for the client API",
                code="MISSING_CLIENT_CREDENTIALS",
            )

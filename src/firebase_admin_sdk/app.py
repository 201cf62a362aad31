"""App bootstrap.

An :class:`App` owns the configuration, the credential, one shared
``httpx.AsyncClient`` and the public key caches used to verify tokens. The
auth and messaging clients are created lazily on first access and share
those resources. Closing the app closes the HTTP client and drops the
cached keys.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any, Self

from .auth.client import AuthClient
from .auth.key_cache import ID_TOKEN_CERT_URL, SESSION_COOKIE_CERT_URL, PublicKeyCache
from .config import EMULATOR_HOST_ENV_VAR, PROJECT_ID_ENV_VARS, AppConfig
from .credentials import ApplicationDefault
from .errors import FailedPreconditionError
from .http import create_async_http_client
from .messaging.client import MessagingClient
from .telemetry import get_logger

if TYPE_CHECKING:
    import httpx

    from .credentials import Credential


def resolve_project_id(config: AppConfig, credential: Credential) -> str | None:
    """Project id from the config, else the environment, else the credential."""
    if config.project_id:
        return config.project_id
    for var in PROJECT_ID_ENV_VARS:
        value = os.environ.get(var)
        if value:
            return value
    return credential.project_id


class App:
    """Shared state behind the service clients of one project."""

    def __init__(
        self,
        credential: Credential | None = None,
        config: AppConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the app.

        Args:
            credential: Credential for outbound calls; application default
                credentials when omitted.
            config: App configuration; read from the environment when omitted.
            transport: Optional transport for the shared HTTP client.
        """
        config = config or AppConfig.from_env()
        if config.emulator_host is None and os.environ.get(EMULATOR_HOST_ENV_VAR):
            config = config.with_overrides(emulator_host=os.environ[EMULATOR_HOST_ENV_VAR])
        self.config = config
        self.credential = credential or ApplicationDefault()
        self.http_client = create_async_http_client(config, transport=transport)
        self.credential.attach_http_client(self.http_client)
        self.project_id = resolve_project_id(config, self.credential)
        self.id_token_keys = PublicKeyCache(ID_TOKEN_CERT_URL, self.http_client)
        self.session_cookie_keys = PublicKeyCache(SESSION_COOKIE_CERT_URL, self.http_client)
        self._auth: AuthClient | None = None
        self._messaging: MessagingClient | None = None
        self._closed = False
        self._logger = get_logger()
        self._logger.debug(
            "App initialized",
            project_id=self.project_id,
            emulator=config.emulator_mode,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise FailedPreconditionError("app has been closed")

    @property
    def auth(self) -> AuthClient:
        self._check_open()
        if self._auth is None:
            self._auth = AuthClient.from_app(self)
        return self._auth

    @property
    def messaging(self) -> MessagingClient:
        """Messaging client; raises ``InvalidArgumentError`` when no project id is known."""
        self._check_open()
        if self._messaging is None:
            self._messaging = MessagingClient.from_app(self)
        return self._messaging

    async def aclose(self) -> None:
        """Close the HTTP client and clear the key caches."""
        if self._closed:
            return
        self._closed = True
        self.id_token_keys.clear()
        self.session_cookie_keys.clear()
        await self.http_client.aclose()


def initialize_app(
    credential: Credential | None = None,
    config: AppConfig | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> App:
    return App(credential, config, transport=transport)

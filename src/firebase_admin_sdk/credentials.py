"""Credentials used to authorize outbound calls.

A credential produces OAuth2 bearer tokens and caches them until five
minutes before they expire. Refreshes are single-flight: concurrent callers
wait on the same in-progress refresh instead of starting their own.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import os
import time
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Self

import httpx
import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from pydantic import BaseModel, ConfigDict, Field

from .config import CREDENTIALS_ENV_VAR
from .core.cancellation import run_cancellable
from .errors import InvalidArgumentError, UnauthenticatedError
from .telemetry import get_logger, trace_operation

if TYPE_CHECKING:
    from .core.cancellation import CancellationToken

TOKEN_URI = "https://oauth2.googleapis.com/token"
METADATA_TOKEN_URL = (
    "http://metadata.google.internal/computeMetadata/v1/instance/"
    "service-accounts/default/token"
)
METADATA_HEADERS = {"Metadata-Flavor": "Google"}
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

SCOPES = (
    "https://www.googleapis.com/auth/cloud-platform",
    "https://www.googleapis.com/auth/firebase.messaging",
    "https://www.googleapis.com/auth/identitytoolkit",
    "https://www.googleapis.com/auth/userinfo.email",
)

REFRESH_SKEW = timedelta(minutes=5)
_ASSERTION_LIFETIME = 3600


class AccessToken(BaseModel):
    """An OAuth2 bearer token and its expiry (None means it never expires)."""

    model_config = ConfigDict(frozen=True)

    token: str = Field(..., min_length=1)
    expiry: datetime | None = None

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> Self:
        """Create an AccessToken from an OAuth2 token endpoint response."""
        expires_in = data.get("expires_in")
        expiry = None
        if expires_in is not None:
            expiry = datetime.now(UTC) + timedelta(seconds=int(expires_in))
        return cls(token=data["access_token"], expiry=expiry)

    def expires_within(self, skew: timedelta) -> bool:
        """Check whether the token expires within ``skew`` from now."""
        if self.expiry is None:
            return False
        return datetime.now(UTC) + skew >= self.expiry


class Credential(ABC):
    """Base class for every credential variant."""

    def __init__(self) -> None:
        self._token: AccessToken | None = None
        self._lock = asyncio.Lock()
        self._http_client: httpx.AsyncClient | None = None
        self._logger = get_logger()

    @property
    def project_id(self) -> str | None:
        """Project the credential belongs to, when known."""
        return None

    @property
    def service_account_email(self) -> str | None:
        """Service account email, when the credential carries one."""
        return None

    def attach_http_client(self, client: httpx.AsyncClient) -> None:
        """Use ``client`` for token fetches instead of a throwaway client."""
        self._http_client = client

    async def get_access_token(
        self, *, cancel: CancellationToken | None = None
    ) -> AccessToken:
        """Return a cached token, refreshing it when it nears expiry.

        Raises:
            UnauthenticatedError: If a token cannot be obtained.
            OperationCancelledError: When ``cancel`` fires during a refresh.
        """
        token = self._token
        if token is not None and not token.expires_within(REFRESH_SKEW):
            return token

        async with self._lock:
            token = self._token
            if token is not None and not token.expires_within(REFRESH_SKEW):
                return token
            with trace_operation("credential.refresh", attributes={"credential": type(self).__name__}):
                token = await run_cancellable(self._refresh(), cancel)
            self._token = token
            self._logger.debug(
                "Credential refreshed",
                credential=type(self).__name__,
                expiry=token.expiry.isoformat() if token.expiry else None,
            )
            return token

    async def _refresh(self) -> AccessToken:
        if self._http_client is not None:
            return await self._fetch_token(self._http_client)
        async with httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0)) as client:
            return await self._fetch_token(client)

    @abstractmethod
    async def _fetch_token(self, client: httpx.AsyncClient) -> AccessToken:
        """Obtain a fresh token from the credential's source."""

    async def _post_token_form(
        self,
        client: httpx.AsyncClient,
        url: str,
        data: dict[str, str],
    ) -> AccessToken:
        try:
            response = await client.post(url, data=data)
        except httpx.HTTPError as e:
            raise UnauthenticatedError(f"failed to obtain access token: {e}", cause=e) from e
        return _token_from_response(response)


def _token_from_response(response: httpx.Response) -> AccessToken:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if response.status_code != 200 or "access_token" not in body:
        reason = body.get("error_description") or body.get("error") or response.text
        raise UnauthenticatedError(
            f"failed to obtain access token: status {response.status_code}: {reason}",
            http_response=response,
        )
    return AccessToken.from_response(body)


def _load_json(source: str | os.PathLike[str] | dict[str, Any]) -> dict[str, Any]:
    if isinstance(source, dict):
        return source
    try:
        return json.loads(Path(source).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise InvalidArgumentError(f"failed to read credentials from {source}: {e}", cause=e) from e


def _require(info: dict[str, Any], *names: str) -> None:
    missing = [name for name in names if not info.get(name)]
    if missing:
        raise InvalidArgumentError(f"credentials are missing fields: {', '.join(missing)}")


class ServiceAccountCredential(Credential):
    """Credential backed by a service account private key."""

    def __init__(self, source: str | os.PathLike[str] | dict[str, Any]) -> None:
        super().__init__()
        info = _load_json(source)
        if info.get("type", "service_account") != "service_account":
            raise InvalidArgumentError(
                f"expected a service_account credential, got: {info.get('type')}"
            )
        _require(info, "client_email", "private_key")
        self._email: str = info["client_email"]
        self._key_id: str | None = info.get("private_key_id")
        self._project_id: str | None = info.get("project_id")
        self._token_uri: str = info.get("token_uri") or TOKEN_URI
        self._private_key = load_rsa_private_key(info["private_key"])

    @property
    def project_id(self) -> str | None:
        return self._project_id

    @property
    def service_account_email(self) -> str:
        return self._email

    @property
    def private_key(self) -> rsa.RSAPrivateKey:
        return self._private_key

    @property
    def key_id(self) -> str | None:
        return self._key_id

    def _assertion(self) -> str:
        now = int(time.time())
        payload = {
            "iss": self._email,
            "scope": " ".join(SCOPES),
            "aud": self._token_uri,
            "iat": now,
            "exp": now + _ASSERTION_LIFETIME,
        }
        headers = {"kid": self._key_id} if self._key_id else None
        return jwt.encode(payload, self._private_key, algorithm="RS256", headers=headers)

    async def _fetch_token(self, client: httpx.AsyncClient) -> AccessToken:
        return await self._post_token_form(
            client,
            self._token_uri,
            {"grant_type": JWT_BEARER_GRANT, "assertion": self._assertion()},
        )


class RefreshTokenCredential(Credential):
    """Credential backed by an OAuth2 refresh token."""

    def __init__(self, source: str | os.PathLike[str] | dict[str, Any]) -> None:
        super().__init__()
        info = _load_json(source)
        if info.get("type", "authorized_user") != "authorized_user":
            raise InvalidArgumentError(
                f"expected an authorized_user credential, got: {info.get('type')}"
            )
        _require(info, "client_id", "client_secret", "refresh_token")
        self._client_id: str = info["client_id"]
        self._client_secret: str = info["client_secret"]
        self._refresh_token: str = info["refresh_token"]
        self._project_id: str | None = info.get("quota_project_id") or info.get("project_id")
        self._token_uri: str = info.get("token_uri") or TOKEN_URI

    @property
    def project_id(self) -> str | None:
        return self._project_id

    @property
    def client_id(self) -> str:
        return self._client_id

    async def _fetch_token(self, client: httpx.AsyncClient) -> AccessToken:
        return await self._post_token_form(
            client,
            self._token_uri,
            {
                "grant_type": "refresh_token",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": self._refresh_token,
            },
        )


TokenSource = Callable[[], "AccessToken | Awaitable[AccessToken]"]


class ImplicitCredential(Credential):
    """Credential whose tokens come from a caller-supplied function."""

    def __init__(
        self,
        token_source: TokenSource,
        *,
        project_id: str | None = None,
        service_account_email: str | None = None,
    ) -> None:
        super().__init__()
        self._token_source = token_source
        self._project_id = project_id
        self._email = service_account_email

    @property
    def project_id(self) -> str | None:
        return self._project_id

    @property
    def service_account_email(self) -> str | None:
        return self._email

    async def _fetch_token(self, client: httpx.AsyncClient) -> AccessToken:
        result = self._token_source()
        if inspect.isawaitable(result):
            result = await result
        if not isinstance(result, AccessToken):
            raise UnauthenticatedError("token source did not return an AccessToken")
        return result


class ApplicationDefault(Credential):
    """Credential discovered from the environment.

    Uses the JSON file named by ``GOOGLE_APPLICATION_CREDENTIALS`` when set,
    otherwise the compute metadata server.
    """

    def __init__(self) -> None:
        super().__init__()
        self._delegate: Credential | None = None
        path = os.environ.get(CREDENTIALS_ENV_VAR)
        if path:
            self._delegate = credential_from_file(path)

    @property
    def project_id(self) -> str | None:
        return self._delegate.project_id if self._delegate else None

    @property
    def service_account_email(self) -> str | None:
        return self._delegate.service_account_email if self._delegate else None

    @property
    def delegate(self) -> Credential | None:
        return self._delegate

    async def _fetch_token(self, client: httpx.AsyncClient) -> AccessToken:
        if self._delegate is not None:
            return await self._delegate._fetch_token(client)
        try:
            response = await client.get(METADATA_TOKEN_URL, headers=METADATA_HEADERS)
        except httpx.HTTPError as e:
            raise UnauthenticatedError(
                f"failed to obtain access token from the metadata server: {e}", cause=e
            ) from e
        return _token_from_response(response)


def credential_from_file(source: str | os.PathLike[str] | dict[str, Any]) -> Credential:
    """Create a credential from a JSON credentials file, dispatching on ``type``."""
    info = _load_json(source)
    kind = info.get("type")
    if kind == "service_account":
        return ServiceAccountCredential(info)
    if kind == "authorized_user":
        return RefreshTokenCredential(info)
    raise InvalidArgumentError(f"unsupported credential type: {kind}")


def load_rsa_private_key(pem: str | bytes) -> rsa.RSAPrivateKey:
    """Parse an RSA private key in PKCS#8 or PKCS#1 PEM form."""
    data = pem.encode() if isinstance(pem, str) else pem
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError) as e:
        raise InvalidArgumentError(f"failed to parse private key: {e}", cause=e) from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise InvalidArgumentError("private key is not an RSA key")
    return key

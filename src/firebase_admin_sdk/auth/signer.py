"""Signers used to mint custom tokens."""

from __future__ import annotations

import asyncio
import base64
from typing import TYPE_CHECKING, Protocol

import httpx
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from ..core.cancellation import run_cancellable
from ..errors import FirebaseError, OperationCancelledError, UnauthenticatedError
from ..http import Request
from ._errors import TokenSignError

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric import rsa

    from ..core.cancellation import CancellationToken
    from ..core.http_executor import AsyncHTTPExecutor

IAM_SIGN_URL = "https://iamcredentials.googleapis.com/v1/projects/-/serviceAccounts/{email}:signBlob"
METADATA_EMAIL_URL = (
    "http://metadata.google.internal/computeMetadata/v1/instance/"
    "service-accounts/default/email"
)
METADATA_TIMEOUT = 2.0
EMULATOR_EMAIL = "firebase-auth-emulator@example.com"

_DISCOVERY_HELP = (
    "initialize the SDK with service account credentials or specify a service account "
    "with iam.serviceAccounts.signBlob permission"
)


class CryptoSigner(Protocol):
    """Signs token bytes and reports the identity doing the signing."""

    @property
    def algorithm(self) -> str: ...

    async def sign(
        self, payload: bytes, *, cancel: CancellationToken | None = None
    ) -> bytes: ...

    async def email(self, *, cancel: CancellationToken | None = None) -> str: ...


class ServiceAccountSigner:
    """Signs locally with a service account's RSA private key."""

    algorithm = "RS256"

    def __init__(self, private_key: rsa.RSAPrivateKey, client_email: str) -> None:
        self._private_key = private_key
        self._client_email = client_email

    async def sign(self, payload: bytes, *, cancel: CancellationToken | None = None) -> bytes:
        return self._private_key.sign(payload, padding.PKCS1v15(), hashes.SHA256())

    async def email(self, *, cancel: CancellationToken | None = None) -> str:
        return self._client_email


class IAMSigner:
    """Signs remotely through the IAM credentials ``signBlob`` endpoint.

    The service account is either given explicitly or discovered once from
    the compute metadata server. Discovery makes a single short attempt, so
    a missing metadata server surfaces as an unauthenticated error instead
    of a hang.
    """

    algorithm = "RS256"

    def __init__(
        self,
        executor: AsyncHTTPExecutor,
        *,
        service_account_id: str | None = None,
        metadata_url: str = METADATA_EMAIL_URL,
        sign_url: str = IAM_SIGN_URL,
    ) -> None:
        self._executor = executor
        self._service_account = service_account_id
        self._metadata_url = metadata_url
        self._sign_url = sign_url
        self._lock = asyncio.Lock()

    async def sign(self, payload: bytes, *, cancel: CancellationToken | None = None) -> bytes:
        account = await self.email(cancel=cancel)
        request = Request(
            "POST",
            self._sign_url.format(email=account),
            json={"payload": base64.b64encode(payload).decode()},
        )
        try:
            data = await self._executor.execute_json(request, cancel=cancel)
        except OperationCancelledError:
            raise
        except FirebaseError as e:
            raise TokenSignError(
                f"failed to sign token: {e.message}",
                http_response=e.http_response,
                cause=e,
            ) from e

        signed = data.get("signedBlob")
        if not isinstance(signed, str):
            raise TokenSignError("failed to sign token: response did not contain a signature")
        return base64.b64decode(signed)

    async def email(self, *, cancel: CancellationToken | None = None) -> str:
        if self._service_account:
            return self._service_account
        async with self._lock:
            if not self._service_account:
                self._service_account = await self._discover(cancel)
        return self._service_account

    async def _discover(self, cancel: CancellationToken | None) -> str:
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            response = await run_cancellable(
                self._executor.client.get(
                    self._metadata_url,
                    headers={"Metadata-Flavor": "Google"},
                    timeout=METADATA_TIMEOUT,
                ),
                cancel,
            )
        except httpx.HTTPError as e:
            raise UnauthenticatedError(
                f"failed to determine service account: {e}; {_DISCOVERY_HELP}",
                cause=e,
            ) from e
        result = response.text.strip()
        if response.status_code != 200 or not result:
            raise UnauthenticatedError(
                "failed to determine service account: unexpected response from metadata "
                f"service (status {response.status_code}); {_DISCOVERY_HELP}",
                http_response=response,
            )
        return result


class EmulatorSigner:
    """Produces unsigned tokens accepted only by the auth emulator."""

    algorithm = "none"

    async def sign(self, payload: bytes, *, cancel: CancellationToken | None = None) -> bytes:
        return b""

    async def email(self, *, cancel: CancellationToken | None = None) -> str:
        return EMULATOR_EMAIL

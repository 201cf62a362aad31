"""Custom token minting and session cookie creation."""

from __future__ import annotations

import base64
import json
import time
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Callable

from ..errors import InvalidArgumentError, UnknownError
from ..http import Request
from ..telemetry import trace_operation
from . import _validators

if TYPE_CHECKING:
    from ..core.cancellation import CancellationToken
    from ..core.http_executor import AsyncHTTPExecutor
    from .signer import CryptoSigner

FIREBASE_AUDIENCE = (
    "https://identitytoolkit.googleapis.com/google.identity.identitytoolkit.v1.IdentityToolkit"
)
TOKEN_LIFETIME = 3600
MIN_SESSION_COOKIE_DURATION = timedelta(minutes=5)
MAX_SESSION_COOKIE_DURATION = timedelta(days=14)


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def b64url_decode(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _encode_segment(value: dict[str, Any]) -> str:
    return b64url_encode(json.dumps(value, separators=(",", ":")).encode())


class TokenGenerator:
    """Mints custom tokens with a signer and creates session cookies."""

    def __init__(
        self,
        signer: CryptoSigner,
        executor: AsyncHTTPExecutor,
        base_url: str,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.signer = signer
        self.base_url = base_url
        self._executor = executor
        self._clock = clock

    async def create_custom_token(
        self,
        uid: str,
        developer_claims: dict[str, Any] | None = None,
        *,
        tenant_id: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> str:
        """Mint a signed custom token for ``uid``.

        Raises:
            InvalidArgumentError: For a bad uid or claims, before anything is signed.
            UnauthenticatedError: When no signing principal can be determined.
            TokenSignError: When the signer fails.
        """
        _validators.validate_uid(uid)
        if developer_claims is not None:
            _validators.validate_custom_claims(developer_claims)

        with trace_operation("auth.create_custom_token"):
            email = await self.signer.email(cancel=cancel)
            now = int(self._clock())
            payload: dict[str, Any] = {
                "iss": email,
                "sub": email,
                "aud": FIREBASE_AUDIENCE,
                "uid": uid,
                "iat": now,
                "exp": now + TOKEN_LIFETIME,
            }
            if developer_claims:
                payload["claims"] = developer_claims
            if tenant_id:
                payload["tenant_id"] = tenant_id

            header = {"alg": self.signer.algorithm, "typ": "JWT"}
            signing_input = f"{_encode_segment(header)}.{_encode_segment(payload)}"
            signature = await self.signer.sign(signing_input.encode(), cancel=cancel)
            return f"{signing_input}.{b64url_encode(signature)}"

    async def create_session_cookie(
        self,
        id_token: str,
        expires_in: timedelta | int,
        *,
        cancel: CancellationToken | None = None,
    ) -> str:
        """Exchange an ID token for a session cookie valid for ``expires_in``."""
        if not isinstance(id_token, str) or not id_token:
            raise InvalidArgumentError("id token must be a non-empty string")
        if isinstance(expires_in, bool) or not isinstance(expires_in, (timedelta, int)):
            raise InvalidArgumentError("expires_in must be a timedelta or a number of seconds")
        duration = expires_in if isinstance(expires_in, timedelta) else timedelta(seconds=expires_in)
        if not MIN_SESSION_COOKIE_DURATION <= duration <= MAX_SESSION_COOKIE_DURATION:
            raise InvalidArgumentError(
                "session cookie duration must be between 5 minutes and 14 days"
            )

        with trace_operation("auth.create_session_cookie"):
            data = await self._executor.execute_json(
                Request(
                    "POST",
                    f"{self.base_url}:createSessionCookie",
                    json={"idToken": id_token, "validDuration": int(duration.total_seconds())},
                ),
                cancel=cancel,
            )
        cookie = data.get("sessionCookie")
        if not isinstance(cookie, str) or not cookie:
            raise UnknownError("failed to create session cookie: empty response")
        return cookie

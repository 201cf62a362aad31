"""Verification of ID tokens and session cookies.

Checks run in a fixed order and fail fast: structure, header, claims,
timestamps, then the RS256 signature against the key cache. Cheap claim
checks run before any key fetch so malformed tokens never cause I/O.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Callable

import jwt
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from ..errors import InvalidArgumentError
from ..telemetry import trace_operation
from ._errors import (
    ExpiredIdTokenError,
    ExpiredSessionCookieError,
    InvalidIdTokenError,
    InvalidSessionCookieError,
    RevokedIdTokenError,
    RevokedSessionCookieError,
)
from .token_gen import FIREBASE_AUDIENCE

if TYPE_CHECKING:
    from ..core.cancellation import CancellationToken
    from ..errors import FirebaseError
    from .key_cache import PublicKeyCache

ID_TOKEN_ISSUER_PREFIX = "https://securetoken.google.com/"
SESSION_COOKIE_ISSUER_PREFIX = "https://session.firebase.google.com/"
MAX_CLOCK_SKEW_SECONDS = 300

_STANDARD_CLAIMS = frozenset({"iss", "aud", "exp", "iat", "sub", "uid"})


class VerifiedToken(BaseModel):
    """Decoded claims of a verified ID token or session cookie.

    Item access (``token["email"]``) reads any raw claim.
    """

    model_config = ConfigDict(frozen=True)

    auth_time: int | None = None
    issuer: str
    audience: str
    expires: int
    issued_at: int
    subject: str
    uid: str
    tenant_id: str | None = None
    firebase: dict[str, Any] = Field(default_factory=dict)
    claims: dict[str, Any] = Field(default_factory=dict)

    _raw: dict[str, Any] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> VerifiedToken:
        firebase = payload.get("firebase")
        firebase = firebase if isinstance(firebase, dict) else {}
        tenant = firebase.get("tenant")
        token = cls(
            auth_time=payload.get("auth_time"),
            issuer=payload["iss"],
            audience=payload["aud"],
            expires=payload["exp"],
            issued_at=payload["iat"],
            subject=payload["sub"],
            uid=payload["sub"],
            tenant_id=tenant if isinstance(tenant, str) else None,
            firebase=firebase,
            claims={k: v for k, v in payload.items() if k not in _STANDARD_CLAIMS},
        )
        token._raw = dict(payload)
        return token

    def __getitem__(self, key: str) -> Any:
        return self._raw[key]

    def __contains__(self, key: object) -> bool:
        return key in self._raw

    def get(self, key: str, default: Any = None) -> Any:
        return self._raw.get(key, default)


class TokenVerifier:
    """Verifies one family of platform-issued JWTs."""

    def __init__(
        self,
        *,
        short_name: str,
        issuer_prefix: str,
        key_cache: PublicKeyCache,
        project_id: str | None,
        invalid_error: type[FirebaseError],
        expired_error: type[FirebaseError],
        revoked_error: type[FirebaseError],
        emulator_mode: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.short_name = short_name
        self.issuer_prefix = issuer_prefix
        self.key_cache = key_cache
        self.project_id = project_id
        self.invalid_error = invalid_error
        self.expired_error = expired_error
        self.revoked_error = revoked_error
        self.emulator_mode = emulator_mode
        self._clock = clock

    @property
    def articled_name(self) -> str:
        article = "an" if self.short_name[0].lower() in "aeiou" else "a"
        return f"{article} {self.short_name}"

    async def verify(
        self,
        token: str,
        *,
        clock_skew_seconds: int = 0,
        cancel: CancellationToken | None = None,
    ) -> VerifiedToken:
        """Verify ``token`` and return its decoded claims.

        Raises:
            InvalidArgumentError: For a missing project id or an out-of-range skew.
            FirebaseError: The verifier's invalid or expired error class.
            CertificateFetchError: When the signing keys cannot be fetched.
        """
        if not self.project_id:
            raise InvalidArgumentError(
                f"project id not available; must be set to verify {self.articled_name}"
            )
        if isinstance(clock_skew_seconds, bool) or not isinstance(clock_skew_seconds, int) or not (
            0 <= clock_skew_seconds <= MAX_CLOCK_SKEW_SECONDS
        ):
            raise InvalidArgumentError(
                f"clock_skew_seconds must be an integer between 0 and {MAX_CLOCK_SKEW_SECONDS}"
            )
        if not isinstance(token, str) or not token:
            raise self.invalid_error(f"{self.short_name} must be a non-empty string")

        with trace_operation("auth.verify_token", attributes={"token.type": self.short_name}):
            header, payload = self._decode(token)
            self._verify_content(header, payload)
            self._verify_timestamps(payload, clock_skew_seconds)
            if not self.emulator_mode:
                await self._verify_signature(token, header["kid"], cancel)
            return VerifiedToken.from_payload(payload)

    def _decode(self, token: str) -> tuple[dict[str, Any], dict[str, Any]]:
        if token.count(".") != 2:
            raise self.invalid_error(
                f"incorrect number of segments in {self.short_name}; expected 3"
            )
        try:
            header = jwt.get_unverified_header(token)
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as e:
            raise self.invalid_error(f"failed to decode {self.short_name}: {e}", cause=e) from e
        return header, payload

    def _verify_content(self, header: dict[str, Any], payload: dict[str, Any]) -> None:
        name = self.short_name
        issuer = self.issuer_prefix + (self.project_id or "")
        project_hint = (
            f"make sure the {name} comes from the same Firebase project as the credential "
            "used to authenticate this SDK"
        )
        audience = payload.get("aud")

        if not self.emulator_mode:
            if not header.get("kid"):
                if audience == FIREBASE_AUDIENCE:
                    raise self.invalid_error(f"expected {self.articled_name} but got a custom token")
                raise self.invalid_error(f"{name} has no 'kid' header")
            if header.get("alg") != "RS256":
                raise self.invalid_error(
                    f"{name} has invalid algorithm; expected 'RS256' but got {header.get('alg')!r}"
                )
        if audience != self.project_id:
            raise self.invalid_error(
                f"{name} has invalid 'aud' (audience) claim; expected {self.project_id!r} "
                f"but got {audience!r}; {project_hint}"
            )
        if payload.get("iss") != issuer:
            raise self.invalid_error(
                f"{name} has invalid 'iss' (issuer) claim; expected {issuer!r} "
                f"but got {payload.get('iss')!r}; {project_hint}"
            )
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise self.invalid_error(f"{name} has empty 'sub' (subject) claim")
        if len(subject) > 128:
            raise self.invalid_error(
                f"{name} has a 'sub' (subject) claim longer than 128 characters"
            )

    def _verify_timestamps(self, payload: dict[str, Any], skew: int) -> None:
        issued_at = payload.get("iat")
        expires = payload.get("exp")
        for claim, value in (("iat", issued_at), ("exp", expires)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise self.invalid_error(f"{self.short_name} has invalid '{claim}' claim")
        now = int(self._clock())
        if issued_at > now + skew:
            raise self.invalid_error(f"{self.short_name} issued at future timestamp: {issued_at}")
        if expires <= now - skew:
            raise self.expired_error(f"{self.short_name} has expired at: {expires}")

    async def _verify_signature(
        self, token: str, kid: str, cancel: CancellationToken | None
    ) -> None:
        key = await self.key_cache.get(kid, cancel=cancel)
        if key is None:
            raise self.invalid_error(
                f"{self.short_name} has 'kid' header {kid!r} that does not match any public key"
            )
        try:
            jwt.decode(
                token,
                key,
                algorithms=["RS256"],
                options={
                    "verify_aud": False,
                    "verify_iss": False,
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "verify_sub": False,
                    "verify_jti": False,
                },
            )
        except jwt.InvalidSignatureError as e:
            raise self.invalid_error(
                f"failed to verify {self.short_name} signature", cause=e
            ) from e
        except jwt.PyJWTError as e:
            raise self.invalid_error(f"failed to verify {self.short_name}: {e}", cause=e) from e


def new_id_token_verifier(
    key_cache: PublicKeyCache,
    project_id: str | None,
    *,
    emulator_mode: bool = False,
    clock: Callable[[], float] = time.time,
) -> TokenVerifier:
    return TokenVerifier(
        short_name="ID token",
        issuer_prefix=ID_TOKEN_ISSUER_PREFIX,
        key_cache=key_cache,
        project_id=project_id,
        invalid_error=InvalidIdTokenError,
        expired_error=ExpiredIdTokenError,
        revoked_error=RevokedIdTokenError,
        emulator_mode=emulator_mode,
        clock=clock,
    )


def new_session_cookie_verifier(
    key_cache: PublicKeyCache,
    project_id: str | None,
    *,
    emulator_mode: bool = False,
    clock: Callable[[], float] = time.time,
) -> TokenVerifier:
    return TokenVerifier(
        short_name="session cookie",
        issuer_prefix=SESSION_COOKIE_ISSUER_PREFIX,
        key_cache=key_cache,
        project_id=project_id,
        invalid_error=InvalidSessionCookieError,
        expired_error=ExpiredSessionCookieError,
        revoked_error=RevokedSessionCookieError,
        emulator_mode=emulator_mode,
        clock=clock,
    )

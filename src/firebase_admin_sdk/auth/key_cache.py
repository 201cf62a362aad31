"""Public key cache for token signature verification.

Keys are fetched as a ``{kid: PEM certificate}`` JSON map and cached for the
``max-age`` advertised by the response's ``Cache-Control`` header.
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from typing import TYPE_CHECKING, Callable

import httpx
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa

from ..core.cancellation import run_cancellable
from ..telemetry import get_logger, trace_operation
from ._errors import CertificateFetchError

if TYPE_CHECKING:
    from ..core.cancellation import CancellationToken

ID_TOKEN_CERT_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)
SESSION_COOKIE_CERT_URL = "https://www.googleapis.com/identitytoolkit/v3/relyingparty/publicKeys"
DEFAULT_MAX_AGE = 300

_MAX_AGE_RE = re.compile(r"max-age=(\d+)")


def parse_max_age(cache_control: str | None, default: int = DEFAULT_MAX_AGE) -> int:
    """Extract ``max-age`` seconds from a Cache-Control header."""
    if cache_control:
        for directive in cache_control.split(","):
            match = _MAX_AGE_RE.fullmatch(directive.strip())
            if match:
                return int(match.group(1))
    return default


def parse_public_keys(content: bytes) -> dict[str, rsa.RSAPublicKey]:
    """Parse a ``{kid: PEM x509 certificate}`` document into RSA public keys."""
    try:
        certs = json.loads(content)
    except ValueError as e:
        raise CertificateFetchError(f"failed to parse public keys: {e}", cause=e) from e
    if not isinstance(certs, dict):
        raise CertificateFetchError("failed to parse public keys: expected a JSON object")

    keys: dict[str, rsa.RSAPublicKey] = {}
    for kid, pem in certs.items():
        if not isinstance(pem, str):
            raise CertificateFetchError(f"failed to parse public key {kid}: not a string")
        try:
            cert = x509.load_pem_x509_certificate(pem.encode())
        except ValueError as e:
            raise CertificateFetchError(f"failed to parse public key {kid}: {e}", cause=e) from e
        public_key = cert.public_key()
        if not isinstance(public_key, rsa.RSAPublicKey):
            raise CertificateFetchError(f"public key {kid} is not an RSA key")
        keys[kid] = public_key
    return keys


class PublicKeyCache:
    """Async key cache with single-flight refresh.

    Concurrent callers that miss the cache share one in-flight fetch.
    """

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient,
        *,
        default_max_age: int = DEFAULT_MAX_AGE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the key cache.

        Args:
            url: Certificate endpoint.
            client: Shared HTTP client.
            default_max_age: Lifetime used when the response has no max-age.
            clock: Time source, in epoch seconds.
        """
        self.url = url
        self.default_max_age = default_max_age
        self._client = client
        self._clock = clock
        self._keys: dict[str, rsa.RSAPublicKey] | None = None
        self._expires_at: float = 0
        self._inflight: asyncio.Future[dict[str, rsa.RSAPublicKey]] | None = None
        self._logger = get_logger()

    @property
    def is_cached(self) -> bool:
        return self._keys is not None and self._clock() < self._expires_at

    @property
    def expires_at(self) -> float:
        return self._expires_at

    async def keys(
        self,
        *,
        force_refresh: bool = False,
        cancel: CancellationToken | None = None,
    ) -> dict[str, rsa.RSAPublicKey]:
        """Return the current key set, fetching it when missing or expired."""
        if not force_refresh and self.is_cached and self._keys is not None:
            return self._keys
        return await self._refresh(cancel)

    async def get(
        self, kid: str, *, cancel: CancellationToken | None = None
    ) -> rsa.RSAPublicKey | None:
        """Look up a key by id.

        An unknown kid in a still-valid cache forces one refresh, since the
        signer may have rotated keys early.

        Returns:
            The key, or None when it is unknown even after a refresh.
        """
        was_cached = self.is_cached
        keys = await self.keys(cancel=cancel)
        key = keys.get(kid)
        if key is None and was_cached:
            keys = await self.keys(force_refresh=True, cancel=cancel)
            key = keys.get(kid)
        return key

    def clear(self) -> None:
        """Drop cached keys, forcing a fetch on next access."""
        self._keys = None
        self._expires_at = 0

    async def _refresh(self, cancel: CancellationToken | None) -> dict[str, rsa.RSAPublicKey]:
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._fetch())
            self._inflight.add_done_callback(self._on_fetch_done)
        # shield keeps one caller's cancellation from aborting the shared fetch
        return await run_cancellable(asyncio.shield(self._inflight), cancel)

    def _on_fetch_done(self, future: asyncio.Future[dict[str, rsa.RSAPublicKey]]) -> None:
        self._inflight = None
        if not future.cancelled():
            future.exception()

    async def _fetch(self) -> dict[str, rsa.RSAPublicKey]:
        with trace_operation("key_cache.refresh", attributes={"url": self.url}):
            try:
                response = await self._client.get(self.url)
            except httpx.HTTPError as e:
                raise CertificateFetchError(
                    f"failed to fetch public key certificates: {e}", cause=e
                ) from e
            if response.status_code != 200:
                raise CertificateFetchError(
                    "failed to fetch public key certificates: "
                    f"status {response.status_code}: {response.text}",
                    http_response=response,
                )

            keys = parse_public_keys(response.content)
            max_age = parse_max_age(response.headers.get("Cache-Control"), self.default_max_age)
            self._keys = keys
            self._expires_at = self._clock() + max_age
            self._logger.info(
                "Public keys refreshed",
                url=self.url,
                key_count=len(keys),
                max_age=max_age,
            )
            return keys

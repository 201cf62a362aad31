"""
Shared test fixtures for Firebase Admin SDK tests.

Provides signing keys and certificates, token factories, a mock HTTP
backend and a ready-to-use app wired to it.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta
from typing import Any, Callable

import httpx
import jwt
import pytest
import pytest_asyncio
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from firebase_admin_sdk import App, AppConfig, ServiceAccountCredential
from firebase_admin_sdk.auth.key_cache import ID_TOKEN_CERT_URL, SESSION_COOKIE_CERT_URL
from firebase_admin_sdk.config import CREDENTIALS_ENV_VAR, EMULATOR_HOST_ENV_VAR, PROJECT_ID_ENV_VARS
from firebase_admin_sdk.credentials import TOKEN_URI
from support import CLIENT_EMAIL, FAST_RETRY, KEY_ID, PROJECT_ID, MockBackend


def generate_certificate(key: rsa.RSAPrivateKey) -> str:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "mock-signer")])
    now = datetime.now(UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode()


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    """Provide the RSA key that signs tokens and backs the service account."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_key() -> rsa.RSAPrivateKey:
    """Provide an RSA key unknown to the key endpoints."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def signing_cert(rsa_key: rsa.RSAPrivateKey) -> str:
    """Provide a self-signed PEM certificate for the signing key."""
    return generate_certificate(rsa_key)


@pytest.fixture(scope="session")
def service_account_info(rsa_key: rsa.RSAPrivateKey) -> dict[str, str]:
    """Provide service account JSON content for the signing key."""
    pem = rsa_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    return {
        "type": "service_account",
        "project_id": PROJECT_ID,
        "private_key_id": KEY_ID,
        "private_key": pem,
        "client_email": CLIENT_EMAIL,
        "client_id": "1234567890",
        "token_uri": TOKEN_URI,
    }


@pytest.fixture(scope="session")
def token_factory(rsa_key: rsa.RSAPrivateKey) -> Callable[..., str]:
    """Provide a factory for platform-issued ID tokens and session cookies.

    Keyword overrides replace claims; a value of None drops the claim.
    """

    def make(
        uid: str = "alice",
        *,
        key: rsa.RSAPrivateKey | None = None,
        kid: str | None = KEY_ID,
        session_cookie: bool = False,
        project_id: str = PROJECT_ID,
        **overrides: Any,
    ) -> str:
        now = int(time.time())
        issuer = (
            f"https://session.firebase.google.com/{project_id}"
            if session_cookie
            else f"https://securetoken.google.com/{project_id}"
        )
        claims: dict[str, Any] = {
            "iss": issuer,
            "aud": project_id,
            "auth_time": now - 100,
            "sub": uid,
            "iat": now - 10,
            "exp": now + 3600,
            "firebase": {"identities": {}, "sign_in_provider": "custom"},
        }
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        headers = {"kid": kid} if kid else {}
        return jwt.encode(claims, key or rsa_key, algorithm="RS256", headers=headers)

    return make


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove environment variables that change app bootstrap."""
    for var in (*PROJECT_ID_ENV_VARS, EMULATOR_HOST_ENV_VAR, CREDENTIALS_ENV_VAR):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def backend(signing_cert: str) -> MockBackend:
    """Provide a backend serving OAuth2 tokens and public key certificates."""
    mock = MockBackend()
    mock.add(
        TOKEN_URI,
        httpx.Response(200, json={"access_token": "mock-access-token", "expires_in": 3600}),
    )
    certs = httpx.Response(
        200,
        json={KEY_ID: signing_cert},
        headers={"Cache-Control": "public, max-age=3600, must-revalidate"},
    )
    mock.add(ID_TOKEN_CERT_URL, certs)
    mock.add(SESSION_COOKIE_CERT_URL, certs)
    return mock


@pytest.fixture
def app_config() -> AppConfig:
    """Provide an app configuration with immediate retries."""
    return AppConfig(project_id=PROJECT_ID, retry=FAST_RETRY)


@pytest_asyncio.fixture
async def app(
    clean_env: None,
    backend: MockBackend,
    app_config: AppConfig,
    service_account_info: dict[str, str],
):
    """Provide an app wired to the mock backend with a service account credential."""
    instance = App(
        ServiceAccountCredential(service_account_info),
        app_config,
        transport=backend.transport,
    )
    yield instance
    await instance.aclose()

"""Local argument validation for auth operations.

Every check raises :class:`InvalidArgumentError` before any network call.
"""

from __future__ import annotations

import json
import re
from typing import Any
from urllib.parse import urlparse

from ..errors import InvalidArgumentError

MAX_UID_LENGTH = 128
MAX_CLAIMS_PAYLOAD_SIZE = 1000
MIN_PASSWORD_LENGTH = 6

RESERVED_CLAIMS = frozenset({
    "acr", "amr", "at_hash", "aud", "auth_time", "azp", "cnf", "c_hash",
    "exp", "firebase", "iat", "iss", "jti", "nbf", "nonce", "sub",
})

_EMAIL_RE = re.compile(r"^[^@]+@[^@]+$")
_PHONE_DIGIT_RE = re.compile(r"\d")


def validate_uid(uid: Any, *, required: bool = True) -> str | None:
    if uid is None and not required:
        return None
    if not isinstance(uid, str) or not uid or len(uid) > MAX_UID_LENGTH:
        raise InvalidArgumentError(
            f"uid must be a non-empty string with no more than {MAX_UID_LENGTH} characters"
        )
    return uid


def validate_email(email: Any, *, required: bool = False) -> str | None:
    if email is None and not required:
        return None
    if not isinstance(email, str) or not email:
        raise InvalidArgumentError("email must be a non-empty string")
    if not _EMAIL_RE.match(email):
        raise InvalidArgumentError(f"malformed email string: {email!r}")
    return email


def validate_phone(phone: Any, *, required: bool = False) -> str | None:
    if phone is None and not required:
        return None
    if not isinstance(phone, str) or not phone:
        raise InvalidArgumentError("phone number must be a non-empty string")
    if not phone.startswith("+") or not _PHONE_DIGIT_RE.search(phone):
        raise InvalidArgumentError(
            "phone number must be a valid, E.164 compliant identifier starting with a '+' sign"
        )
    return phone


def validate_photo_url(url: Any, *, required: bool = False) -> str | None:
    if url is None and not required:
        return None
    if not isinstance(url, str) or not url:
        raise InvalidArgumentError("photo url must be a non-empty string")
    if not is_absolute_url(url):
        raise InvalidArgumentError(f"malformed photo url string: {url!r}")
    return url


def validate_display_name(name: Any, *, required: bool = False) -> str | None:
    if name is None and not required:
        return None
    if not isinstance(name, str) or not name:
        raise InvalidArgumentError("display name must be a non-empty string")
    return name


def validate_password(password: Any, *, required: bool = False) -> str | None:
    if password is None and not required:
        return None
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidArgumentError(
            f"password must be a string at least {MIN_PASSWORD_LENGTH} characters long"
        )
    return password


def validate_provider_id(provider_id: Any, *, required: bool = True) -> str | None:
    if provider_id is None and not required:
        return None
    if not isinstance(provider_id, str) or not provider_id:
        raise InvalidArgumentError("provider id must be a non-empty string")
    return provider_id


def validate_provider_uid(provider_uid: Any, *, required: bool = True) -> str | None:
    if provider_uid is None and not required:
        return None
    if not isinstance(provider_uid, str) or not provider_uid:
        raise InvalidArgumentError("provider uid must be a non-empty string")
    return provider_uid


def validate_tenant_id(tenant_id: Any) -> str:
    if not isinstance(tenant_id, str) or not tenant_id:
        raise InvalidArgumentError("tenant id must be a non-empty string")
    return tenant_id


def validate_custom_claims(claims: Any) -> str:
    """Validate developer claims and return their JSON serialization."""
    if not isinstance(claims, dict):
        raise InvalidArgumentError("custom claims must be a dict")
    reserved = sorted(RESERVED_CLAIMS.intersection(claims))
    if reserved:
        raise InvalidArgumentError(f"claims {reserved!r} are reserved and cannot be set")
    try:
        serialized = json.dumps(claims, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"custom claims are not JSON serializable: {e}", cause=e) from e
    if len(serialized.encode()) > MAX_CLAIMS_PAYLOAD_SIZE:
        raise InvalidArgumentError(
            f"serialized custom claims must not exceed {MAX_CLAIMS_PAYLOAD_SIZE} characters"
        )
    return serialized


def is_absolute_url(url: str, *, schemes: tuple[str, ...] = ("http", "https")) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in schemes and bool(parsed.netloc)

"""Auth-specific errors and the identity service error parser."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..core.errors import format_http_message
from ..errors import (
    AlreadyExistsError,
    FirebaseError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    UnknownError,
)

if TYPE_CHECKING:
    import httpx


class InvalidIdTokenError(InvalidArgumentError):
    """The ID token is malformed, mis-signed or fails a claim check."""


class ExpiredIdTokenError(InvalidIdTokenError):
    default_kind = "id-token-expired"


class RevokedIdTokenError(InvalidIdTokenError):
    default_kind = "id-token-revoked"


class InvalidSessionCookieError(InvalidArgumentError):
    """The session cookie is malformed, mis-signed or fails a claim check."""


class ExpiredSessionCookieError(InvalidSessionCookieError):
    default_kind = "session-cookie-expired"


class RevokedSessionCookieError(InvalidSessionCookieError):
    default_kind = "session-cookie-revoked"


class UserDisabledError(InvalidArgumentError):
    """The user behind a token has been disabled."""

    default_kind = "user-disabled"


class CertificateFetchError(UnknownError):
    """Public signing certificates could not be fetched."""

    default_kind = "certificate-fetch-failed"


class TokenSignError(UnknownError):
    default_kind = "token-sign-failed"


class InsufficientPermissionError(PermissionDeniedError):
    default_kind = "insufficient-permission"


class UserNotFoundError(NotFoundError):
    default_kind = "user-not-found"


class TenantNotFoundError(NotFoundError):
    default_kind = "tenant-not-found"


class ConfigurationNotFoundError(NotFoundError):
    default_kind = "configuration-not-found"


class EmailAlreadyExistsError(AlreadyExistsError):
    default_kind = "email-already-exists"


class PhoneNumberAlreadyExistsError(AlreadyExistsError):
    default_kind = "phone-already-exists"


class UidAlreadyExistsError(AlreadyExistsError):
    default_kind = "uid-already-exists"


class InvalidEmailError(InvalidArgumentError):
    default_kind = "invalid-email"


class InvalidPhoneNumberError(InvalidArgumentError):
    default_kind = "invalid-phone"


class InvalidPasswordError(InvalidArgumentError):
    default_kind = "invalid-password"


class InvalidDynamicLinkDomainError(InvalidArgumentError):
    default_kind = "invalid-dynamic-link-domain"


class InvalidContinueUriError(InvalidArgumentError):
    default_kind = "invalid-continue-uri"


# server code -> (error class, description)
_SERVER_CODES: dict[str, tuple[type[FirebaseError], str]] = {
    "CONFIGURATION_NOT_FOUND": (
        ConfigurationNotFoundError,
        "no identity provider configuration found for the given identifier",
    ),
    "DUPLICATE_EMAIL": (
        EmailAlreadyExistsError,
        "user with the provided email already exists",
    ),
    "DUPLICATE_LOCAL_ID": (
        UidAlreadyExistsError,
        "user with the provided uid already exists",
    ),
    "EMAIL_EXISTS": (
        EmailAlreadyExistsError,
        "user with the provided email already exists",
    ),
    "INSUFFICIENT_PERMISSION": (
        InsufficientPermissionError,
        "credential used to initialize the SDK has insufficient permissions to perform the "
        "requested operation",
    ),
    "INVALID_CONTINUE_URI": (
        InvalidContinueUriError,
        "the continue URL provided in the request is invalid",
    ),
    "INVALID_DYNAMIC_LINK_DOMAIN": (
        InvalidDynamicLinkDomainError,
        "the provided dynamic link domain is not configured or authorized for the current "
        "project",
    ),
    "INVALID_EMAIL": (InvalidEmailError, "the provided email is invalid"),
    "INVALID_ID_TOKEN": (InvalidIdTokenError, "the provided ID token is invalid"),
    "INVALID_PHONE_NUMBER": (InvalidPhoneNumberError, "the provided phone number is invalid"),
    "PHONE_NUMBER_EXISTS": (
        PhoneNumberAlreadyExistsError,
        "user with the provided phone number already exists",
    ),
    "TENANT_NOT_FOUND": (TenantNotFoundError, "no tenant found for the given identifier"),
    "TOKEN_EXPIRED": (ExpiredIdTokenError, "the provided ID token is expired"),
    "USER_DISABLED": (UserDisabledError, "the user record is disabled"),
    "USER_NOT_FOUND": (UserNotFoundError, "no user record found for the given identifier"),
    "WEAK_PASSWORD": (InvalidPasswordError, "the provided password is too weak"),
}


def split_server_message(message: str) -> tuple[str, str | None]:
    """Split ``"CODE : detail"`` into its code and optional detail."""
    code, sep, detail = message.partition(":")
    detail = detail.strip() if sep else ""
    return code.strip(), detail or None


def auth_error_parser(response: httpx.Response, err: FirebaseError) -> FirebaseError | None:
    """Refine a generic platform error using the identity service's error code."""
    message = err.details.get("message")
    if not isinstance(message, str) or not message:
        return None
    server_code, detail = split_server_message(message)
    mapped = _SERVER_CODES.get(server_code)
    if mapped is None:
        return None
    cls, description = mapped
    reason = f"{description} ({server_code})"
    if detail:
        reason = f"{reason}: {detail}"
    kind = cls.default_kind or err.kind
    return cls(
        format_http_message(response.status_code, reason, kind),
        http_response=response,
        details=err.details,
    )

"""Messaging-specific errors and the FCM and IID error parsers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..core.errors import format_http_message, parse_error_body
from ..errors import (
    FirebaseError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    ResourceExhaustedError,
    UnauthenticatedError,
    UnavailableError,
    UnknownError,
)

if TYPE_CHECKING:
    import httpx

FCM_ERROR_TYPE = "type.googleapis.com/google.firebase.fcm.v1.FcmError"


class UnregisteredError(NotFoundError):
    """The registration token is no longer valid."""

    default_kind = "registration-token-not-registered"


class SenderIdMismatchError(PermissionDeniedError):
    """The credential's project differs from the token's sender."""

    default_kind = "mismatched-credential"


class InvalidApnsCredentialsError(UnauthenticatedError):
    default_kind = "invalid-apns-credentials"


class ThirdPartyAuthError(UnauthenticatedError):
    default_kind = "third-party-auth-error"


class QuotaExceededError(ResourceExhaustedError):
    default_kind = "message-rate-exceeded"


class ServerUnavailableError(UnavailableError):
    default_kind = "server-unavailable"


class InternalServerError(InternalError):
    default_kind = "internal-error"


class TooManyTopicsError(ResourceExhaustedError):
    default_kind = "too-many-topics"


class UnknownMessagingError(UnknownError):
    default_kind = "unknown-error"


_FCM_ERROR_CODES: dict[str, type[FirebaseError]] = {
    "APNS_AUTH_ERROR": InvalidApnsCredentialsError,
    "QUOTA_EXCEEDED": QuotaExceededError,
    "SENDER_ID_MISMATCH": SenderIdMismatchError,
    "THIRD_PARTY_AUTH_ERROR": ThirdPartyAuthError,
    "UNREGISTERED": UnregisteredError,
    "INVALID_ARGUMENT": InvalidArgumentError,
    "UNAVAILABLE": ServerUnavailableError,
    "INTERNAL": InternalServerError,
}

_STATUS_ERRORS: dict[str, type[FirebaseError]] = {
    "NOT_FOUND": UnregisteredError,
    "INVALID_ARGUMENT": InvalidArgumentError,
    "UNAVAILABLE": ServerUnavailableError,
    "INTERNAL": InternalServerError,
    "RESOURCE_EXHAUSTED": QuotaExceededError,
}

# IID code -> (error class, description)
IID_ERROR_CODES: dict[str, tuple[type[FirebaseError], str]] = {
    "INVALID_ARGUMENT": (InvalidArgumentError, "request contains an invalid argument"),
    "NOT_FOUND": (UnregisteredError, "request contains an invalid registration token"),
    "INTERNAL": (InternalServerError, "server encountered an internal error"),
    "TOO_MANY_TOPICS": (TooManyTopicsError, "client exceeded the number of allowed topics"),
}


def _fcm_error_code(details: Any) -> str | None:
    if not isinstance(details, list):
        return None
    for detail in details:
        if isinstance(detail, dict) and detail.get("@type") == FCM_ERROR_TYPE:
            code = detail.get("errorCode")
            if isinstance(code, str):
                return code
    return None


def fcm_error_parser(response: httpx.Response, err: FirebaseError) -> FirebaseError:
    """Classify an FCM failure by its typed ``FcmError`` detail, then its status.

    Statuses with no messaging-specific class keep the platform class and code
    of ``err`` so the generic predicates still match.
    """
    reason = str(err.details.get("message") or "") or response.text or "unknown FCM error"
    cls = _FCM_ERROR_CODES.get(_fcm_error_code(err.details.get("details")) or "")
    if cls is None:
        status = err.details.get("status") or err.code.value
        cls = _STATUS_ERRORS.get(str(status))
    if cls is None:
        kind = UnknownMessagingError.default_kind
        return type(err)(
            format_http_message(response.status_code, reason, kind),
            code=err.code,
            kind=kind,
            http_response=response,
            details=err.details,
        )
    kind = cls.default_kind or cls.default_code.kind
    return cls(
        format_http_message(response.status_code, reason, kind),
        http_response=response,
        details=err.details,
    )


def iid_error_parser(response: httpx.Response, err: FirebaseError) -> FirebaseError:
    """Classify a failed topic management call by the IID ``{"error": CODE}`` body."""
    code = parse_error_body(response).get("error")
    cls, description = IID_ERROR_CODES.get(
        code if isinstance(code, str) else "", (UnknownMessagingError, "")
    )
    kind = cls.default_kind or cls.default_code.kind
    reason = description or (f"unexpected IID error: {code}" if code else response.text)
    return cls(
        format_http_message(response.status_code, reason, kind),
        http_response=response,
        details=err.details,
    )

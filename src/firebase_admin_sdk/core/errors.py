"""Centralized error factory for the Firebase Admin SDK.

Turns HTTP responses and transport exceptions into platform errors so every
service reports failures with the same structure and message format.
"""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx

from ..errors import (
    DeadlineExceededError,
    ErrorCode,
    FirebaseError,
    NetworkError,
    OperationCancelledError,
    UnknownError,
    error_class_for,
)

# Service hook that may refine the generic platform error for a response.
ErrorParser = Callable[[httpx.Response, FirebaseError], FirebaseError | None]

_STATUS_CODES: dict[int, ErrorCode] = {
    400: ErrorCode.INVALID_ARGUMENT,
    401: ErrorCode.UNAUTHENTICATED,
    403: ErrorCode.PERMISSION_DENIED,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    412: ErrorCode.FAILED_PRECONDITION,
    416: ErrorCode.OUT_OF_RANGE,
    429: ErrorCode.RESOURCE_EXHAUSTED,
    500: ErrorCode.INTERNAL,
    501: ErrorCode.UNIMPLEMENTED,
    503: ErrorCode.UNAVAILABLE,
    504: ErrorCode.DEADLINE_EXCEEDED,
}


def code_for_status(status: int) -> ErrorCode:
    """Map an HTTP status to a platform code."""
    return _STATUS_CODES.get(status, ErrorCode.UNKNOWN)


def format_http_message(status: int | None, reason: str, kind: str) -> str:
    """Build the user-facing message for an HTTP-derived error."""
    if status is None:
        return f"{reason}; code: {kind}"
    return f"http error status: {status}; reason: {reason}; code: {kind}"


def parse_error_body(response: httpx.Response) -> dict[str, Any]:
    """Return the decoded JSON body, or an empty dict when it is not JSON."""
    try:
        body = json.loads(response.content)
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class ErrorFactory:
    """Centralized error creation with consistent structure."""

    @staticmethod
    def from_http_response(
        response: httpx.Response,
        *,
        parser: ErrorParser | None = None,
    ) -> FirebaseError:
        """Create an SDK error from a non-success HTTP response.

        The HTTP status picks the initial code. A platform ``error.status`` in
        the body overrides it, and ``parser`` may replace the result entirely.

        Args:
            response: Buffered HTTP response.
            parser: Optional service-specific refinement.

        Returns:
            Appropriate FirebaseError subclass.
        """
        status = response.status_code
        code = code_for_status(status)
        body = parse_error_body(response)

        details: dict[str, Any] = {}
        reason = ""
        error = body.get("error")
        if isinstance(error, dict):
            details = error
            platform_status = error.get("status")
            if isinstance(platform_status, str) and platform_status in ErrorCode.__members__:
                code = ErrorCode(platform_status)
            reason = str(error.get("message") or "")
        elif isinstance(error, str):
            reason = error

        if not reason:
            text = response.content.decode("utf-8", errors="replace").strip()
            reason = text or f"unexpected http response with status: {status}"

        err_cls = error_class_for(code)
        err = err_cls(
            format_http_message(status, reason, code.kind),
            code=code,
            http_response=response,
            details=details,
        )
        if parser is not None:
            refined = parser(response, err)
            if refined is not None:
                return refined
        return err

    @staticmethod
    def from_exception(exc: BaseException) -> FirebaseError:
        """Create an SDK error from a transport exception.

        Args:
            exc: Original exception.

        Returns:
            Appropriate FirebaseError subclass.
        """
        if isinstance(exc, FirebaseError):
            return exc

        if isinstance(exc, httpx.TimeoutException):
            return DeadlineExceededError(
                f"timed out while making an http call: {exc}",
                cause=exc,
            )

        if isinstance(exc, httpx.HTTPError):
            return NetworkError(
                f"unknown error while making an http call: {exc}",
                cause=exc,
            )

        return UnknownError(f"unexpected error: {exc}", cause=exc)

    @staticmethod
    def cancelled(reason: str | None = None) -> OperationCancelledError:
        """Create the error raised when a caller cancels an operation."""
        if reason:
            return OperationCancelledError(f"operation cancelled: {reason}")
        return OperationCancelledError()

"""Error classes for the Firebase Admin SDK.

Every error raised by the SDK is a :class:`FirebaseError`. Errors carry a
platform :class:`ErrorCode`, a stable kebab-case ``kind`` suffix, the
buffered HTTP response when one was received, and any structured details
reported by the backend.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import httpx


class ErrorCode(StrEnum):
    """Platform-wide error codes shared by every service."""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    FAILED_PRECONDITION = "FAILED_PRECONDITION"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    ABORTED = "ABORTED"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    CANCELLED = "CANCELLED"
    DATA_LOSS = "DATA_LOSS"
    UNKNOWN = "UNKNOWN"
    INTERNAL = "INTERNAL"
    UNAVAILABLE = "UNAVAILABLE"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    UNIMPLEMENTED = "UNIMPLEMENTED"

    @property
    def kind(self) -> str:
        """Kebab-case form used in error messages."""
        return self.value.lower().replace("_", "-")


class FirebaseError(Exception):
    """Base error for the SDK with structured error information."""

    default_code: ErrorCode = ErrorCode.UNKNOWN
    default_kind: str | None = None

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | str | None = None,
        kind: str | None = None,
        http_response: httpx.Response | None = None,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = ErrorCode(code) if code is not None else self.default_code
        self.kind = kind or self.default_kind or self.code.kind
        self.http_response = http_response
        self.details = details or {}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    @property
    def status_code(self) -> int | None:
        """HTTP status of the response that produced this error, if any."""
        if self.http_response is None:
            return None
        return self.http_response.status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error": self.message,
            "code": self.code.value,
            "kind": self.kind,
            "status_code": self.status_code,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind={self.kind!r}, message={self.message!r})"


class InvalidArgumentError(FirebaseError):
    """Client specified an invalid argument."""

    default_code = ErrorCode.INVALID_ARGUMENT


class FailedPreconditionError(FirebaseError):
    """Request can not be executed in the current system state."""

    default_code = ErrorCode.FAILED_PRECONDITION


class OutOfRangeError(FirebaseError):
    """Client specified an invalid range."""

    default_code = ErrorCode.OUT_OF_RANGE


class UnauthenticatedError(FirebaseError):
    """Request not authenticated due to missing, invalid or expired credentials."""

    default_code = ErrorCode.UNAUTHENTICATED


class PermissionDeniedError(FirebaseError):
    """Client does not have sufficient permission."""

    default_code = ErrorCode.PERMISSION_DENIED


class NotFoundError(FirebaseError):
    """A specified resource is not found."""

    default_code = ErrorCode.NOT_FOUND


class ConflictError(FirebaseError):
    """Concurrency conflict, such as a read-modify-write conflict."""

    default_code = ErrorCode.CONFLICT


class AbortedError(FirebaseError):
    """Concurrency conflict reported by the backend."""

    default_code = ErrorCode.ABORTED


class AlreadyExistsError(FirebaseError):
    """The resource that a client tried to create already exists."""

    default_code = ErrorCode.ALREADY_EXISTS


class ResourceExhaustedError(FirebaseError):
    """Either out of resource quota or reaching rate limiting."""

    default_code = ErrorCode.RESOURCE_EXHAUSTED


class OperationCancelledError(FirebaseError):
    """Request cancelled by the caller."""

    default_code = ErrorCode.CANCELLED

    def __init__(self, message: str = "operation cancelled", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class DataLossError(FirebaseError):
    """Unrecoverable data loss or data corruption."""

    default_code = ErrorCode.DATA_LOSS


class UnknownError(FirebaseError):
    """Unknown server error."""

    default_code = ErrorCode.UNKNOWN


class InternalError(FirebaseError):
    """Internal server error."""

    default_code = ErrorCode.INTERNAL


class UnavailableError(FirebaseError):
    """Service unavailable."""

    default_code = ErrorCode.UNAVAILABLE


class DeadlineExceededError(FirebaseError):
    """Request deadline exceeded."""

    default_code = ErrorCode.DEADLINE_EXCEEDED


class UnimplementedError(FirebaseError):
    """The operation is not implemented by the backend."""

    default_code = ErrorCode.UNIMPLEMENTED


class NetworkError(UnavailableError):
    """The request never produced an HTTP response."""

    default_kind = "network-error"


_ERROR_CLASSES: dict[ErrorCode, type[FirebaseError]] = {
    ErrorCode.INVALID_ARGUMENT: InvalidArgumentError,
    ErrorCode.FAILED_PRECONDITION: FailedPreconditionError,
    ErrorCode.OUT_OF_RANGE: OutOfRangeError,
    ErrorCode.UNAUTHENTICATED: UnauthenticatedError,
    ErrorCode.PERMISSION_DENIED: PermissionDeniedError,
    ErrorCode.NOT_FOUND: NotFoundError,
    ErrorCode.CONFLICT: ConflictError,
    ErrorCode.ABORTED: AbortedError,
    ErrorCode.ALREADY_EXISTS: AlreadyExistsError,
    ErrorCode.RESOURCE_EXHAUSTED: ResourceExhaustedError,
    ErrorCode.CANCELLED: OperationCancelledError,
    ErrorCode.DATA_LOSS: DataLossError,
    ErrorCode.UNKNOWN: UnknownError,
    ErrorCode.INTERNAL: InternalError,
    ErrorCode.UNAVAILABLE: UnavailableError,
    ErrorCode.DEADLINE_EXCEEDED: DeadlineExceededError,
    ErrorCode.UNIMPLEMENTED: UnimplementedError,
}


def error_class_for(code: ErrorCode) -> type[FirebaseError]:
    """Get the platform error class for a code."""
    return _ERROR_CLASSES.get(code, UnknownError)


def _walk(err: BaseException | None):
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = err.__cause__ or err.__context__


def find_error(err: BaseException | None) -> FirebaseError | None:
    """Return the first FirebaseError in the cause chain of ``err``."""
    for e in _walk(err):
        if isinstance(e, FirebaseError):
            return e
    return None


def has_code(err: BaseException | None, code: ErrorCode) -> bool:
    """Check whether any error in the chain carries the platform code."""
    return any(isinstance(e, FirebaseError) and e.code == code for e in _walk(err))


def has_kind(err: BaseException | None, kind: str) -> bool:
    """Check whether any error in the chain carries the given kind."""
    return any(isinstance(e, FirebaseError) and e.kind == kind for e in _walk(err))


def http_response(err: BaseException | None) -> httpx.Response | None:
    """Return the HTTP response attached to the first FirebaseError in the chain."""
    found = find_error(err)
    return found.http_response if found else None


def is_invalid_argument(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.INVALID_ARGUMENT)


def is_failed_precondition(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.FAILED_PRECONDITION)


def is_out_of_range(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.OUT_OF_RANGE)


def is_unauthenticated(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.UNAUTHENTICATED)


def is_permission_denied(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.PERMISSION_DENIED)


def is_not_found(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.NOT_FOUND)


def is_conflict(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.CONFLICT)


def is_aborted(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.ABORTED)


def is_already_exists(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.ALREADY_EXISTS)


def is_resource_exhausted(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.RESOURCE_EXHAUSTED)


def is_cancelled(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.CANCELLED)


def is_data_loss(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.DATA_LOSS)


def is_unknown(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.UNKNOWN)


def is_internal(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.INTERNAL)


def is_unavailable(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.UNAVAILABLE)


def is_deadline_exceeded(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.DEADLINE_EXCEEDED)


def is_unimplemented(err: BaseException | None) -> bool:
    return has_code(err, ErrorCode.UNIMPLEMENTED)

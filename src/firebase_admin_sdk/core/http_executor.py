"""Centralized HTTP executor for the Firebase Admin SDK.

Every outbound service call goes through :class:`AsyncHTTPExecutor`, which
injects credentials and SDK headers, retries transient failures with
exponential backoff, observes caller cancellation and classifies failures
into platform errors.
"""

from __future__ import annotations

import json
import time
from datetime import UTC
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any, Callable, Mapping

import httpx

from .._version import __version__
from ..errors import FirebaseError, OperationCancelledError, UnknownError
from ..http import Request, Response, has_success_status
from ..telemetry import get_logger, trace_operation
from .cancellation import run_cancellable, sleep_cancellable
from .errors import ErrorFactory, ErrorParser

if TYPE_CHECKING:
    from ..config import RetryConfig
    from ..credentials import Credential
    from .cancellation import CancellationToken

API_CLIENT_HEADER = "X-Goog-Api-Client"
CLIENT_VERSION_HEADER = "X-Client-Version"
API_CLIENT_VALUE = f"fire-admin-python/{__version__}"
CLIENT_VERSION_VALUE = f"Python/Admin/{__version__}"


def calculate_retry_delay(retry_config: RetryConfig, retry_index: int) -> float:
    """Calculate retry delay with exponential backoff.

    Args:
        retry_config: Retry configuration.
        retry_index: Number of retries already made (0-indexed).

    Returns:
        Delay in seconds.
    """
    return retry_config.get_delay(retry_index)


def should_retry_status(retry_config: RetryConfig, status_code: int) -> bool:
    """Check if status code should trigger a retry."""
    return status_code in retry_config.retry_statuses


def parse_retry_after(value: str | None, *, now: float | None = None) -> float | None:
    """Parse a ``Retry-After`` header given in seconds or as an HTTP date.

    Returns:
        Seconds to wait, or None when the header is missing or malformed.
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    current = now if now is not None else time.time()
    return max(0.0, when.timestamp() - current)


class AsyncHTTPExecutor:
    """Asynchronous HTTP executor with credentials, retry and cancellation."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry_config: RetryConfig,
        *,
        credential: Credential | None = None,
        headers: Mapping[str, str] | None = None,
        success_fn: Callable[[httpx.Response], bool] = has_success_status,
        error_fn: ErrorParser | None = None,
    ) -> None:
        """Initialize async HTTP executor.

        Args:
            client: Shared async HTTP client.
            retry_config: Retry configuration.
            credential: Source of the bearer token, if calls are authorized.
            headers: Extra headers added to every request.
            success_fn: Predicate deciding which responses are successful.
            error_fn: Service-specific error refinement.
        """
        self._client = client
        self._retry_config = retry_config
        self._credential = credential
        self._headers = {
            API_CLIENT_HEADER: API_CLIENT_VALUE,
            CLIENT_VERSION_HEADER: CLIENT_VERSION_VALUE,
            **(headers or {}),
        }
        self._success_fn = success_fn
        self._error_fn = error_fn
        self._logger = get_logger()

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry_config

    async def auth_headers(
        self, *, cancel: CancellationToken | None = None
    ) -> dict[str, str]:
        """Headers every request carries, including the bearer token."""
        headers = dict(self._headers)
        if self._credential is not None:
            token = await self._credential.get_access_token(cancel=cancel)
            headers["Authorization"] = f"Bearer {token.token}"
        return headers

    async def execute(
        self,
        request: Request,
        *,
        cancel: CancellationToken | None = None,
    ) -> Response:
        """Execute a request with retry logic.

        Args:
            request: Request to send.
            cancel: Optional cancellation token.

        Returns:
            Buffered response accepted by the success predicate.

        Raises:
            OperationCancelledError: When ``cancel`` fires.
            FirebaseError: On a non-retryable failure or when retries run out.
        """
        max_attempts = self._retry_config.max_attempts
        last_error: FirebaseError | None = None

        for attempt in range(max_attempts):
            if cancel is not None:
                cancel.raise_if_cancelled()

            try:
                raw = await run_cancellable(self._execute_single(request, attempt, cancel), cancel)
            except OperationCancelledError:
                raise
            except httpx.HTTPError as e:
                last_error = ErrorFactory.from_exception(e)
                if attempt + 1 >= max_attempts:
                    break
                delay = calculate_retry_delay(self._retry_config, attempt)
                self._log_retry("Request failed", attempt, delay, error=str(e))
                await sleep_cancellable(delay, cancel)
                continue

            if self._success_fn(raw):
                return Response.from_httpx(raw)

            last_error = ErrorFactory.from_http_response(raw, parser=self._error_fn)
            if attempt + 1 >= max_attempts or not should_retry_status(
                self._retry_config, raw.status_code
            ):
                break

            delay = calculate_retry_delay(self._retry_config, attempt)
            retry_after = parse_retry_after(raw.headers.get("Retry-After"))
            if retry_after is not None:
                if retry_after > self._retry_config.max_delay:
                    break
                delay = max(delay, retry_after)
            self._log_retry("Retryable status", attempt, delay, status=raw.status_code)
            await sleep_cancellable(delay, cancel)

        raise last_error or UnknownError("request failed after retries")

    async def execute_json(
        self,
        request: Request,
        *,
        cancel: CancellationToken | None = None,
    ) -> dict[str, Any]:
        """Execute a request and decode its JSON object body."""
        response = await self.execute(request, cancel=cancel)
        if not response.body:
            return {}
        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise UnknownError(
                f"error while parsing response: {e}",
                http_response=response.raw,
                cause=e,
            ) from e
        if not isinstance(data, dict):
            raise UnknownError(
                "unexpected response body: expected a JSON object",
                http_response=response.raw,
            )
        return data

    async def _execute_single(
        self,
        request: Request,
        attempt: int,
        cancel: CancellationToken | None,
    ) -> httpx.Response:
        with trace_operation(
            "http_request",
            attributes={"http.method": request.method, "http.url": request.url, "attempt": attempt},
        ):
            headers = await self.auth_headers(cancel=cancel)
            prepared = request.prepare(headers)
            return await self._client.request(
                prepared.method,
                prepared.url,
                headers=prepared.headers,
                params=prepared.params or None,
                content=prepared.content,
            )

    def _log_retry(
        self,
        message: str,
        attempt: int,
        delay: float,
        *,
        status: int | None = None,
        error: str | None = None,
    ) -> None:
        self._logger.warning(
            message,
            attempt=attempt,
            delay=delay,
            status=status,
            error=error,
        )

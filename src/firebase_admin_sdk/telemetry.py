"""Tracing and structured logging for SDK operations.

Every network-facing operation runs inside a span from
:func:`trace_operation`. Failures are tagged with the platform error code and
kind so traces can be filtered the same way callers filter exceptions.
Log events pass through :func:`redact_secrets`, so credentials never reach
the log output.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ._version import __version__

if TYPE_CHECKING:
    from collections.abc import Generator, MutableMapping

    from .config import TelemetryConfig

SDK_NAME = "firebase-admin-sdk"
REDACTED = "[redacted]"
SECRET_FIELDS = frozenset({
    "access_token",
    "assertion",
    "authorization",
    "id_token",
    "password",
    "password_hash",
    "private_key",
    "refresh_token",
    "session_cookie",
    "token",
})

_tracer: trace.Tracer | None = None
_logger: structlog.BoundLogger | None = None


def get_tracer() -> trace.Tracer:
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(SDK_NAME, __version__)
    return _tracer


def get_logger() -> structlog.BoundLogger:
    global _logger
    if _logger is None:
        _logger = structlog.get_logger(SDK_NAME)
    return _logger


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Structlog processor masking values of credential-bearing fields."""
    for key in event_dict.keys() & SECRET_FIELDS:
        event_dict[key] = REDACTED
    return event_dict


def configure_telemetry(config: TelemetryConfig) -> None:
    """Install the tracer and logger described by ``config``.

    A disabled config installs a no-op tracer and leaves structlog alone.
    """
    global _tracer, _logger

    if config.enabled and config.trace_requests:
        _tracer = trace.get_tracer(config.service_name, __version__)
    else:
        _tracer = trace.NoOpTracer()

    if not config.enabled:
        return

    level = logging.getLevelNamesMapping()[config.log_level]
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            redact_secrets,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger = structlog.get_logger(config.service_name).bind(sdk_version=__version__)


@contextmanager
def trace_operation(
    name: str,
    *,
    attributes: dict[str, Any] | None = None,
) -> Generator[trace.Span, None, None]:
    """Run the enclosed block inside a span named ``name``.

    None-valued attributes are skipped. An escaping exception marks the span
    as failed; SDK errors also record ``firebase.error.code`` and
    ``firebase.error.kind``.
    """
    with get_tracer().start_as_current_span(name) as span:
        span.set_attribute("firebase.sdk.version", __version__)
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            code = getattr(e, "code", None)
            kind = getattr(e, "kind", None)
            if code is not None:
                span.set_attribute("firebase.error.code", str(code))
            if kind:
                span.set_attribute("firebase.error.kind", kind)
            span.record_exception(e)
            raise

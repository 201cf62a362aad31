"""Core components for the Firebase Admin SDK.

Infrastructure shared by the auth and messaging clients.
"""

from __future__ import annotations

from .cancellation import CancellationToken
from .errors import ErrorFactory
from .http_executor import AsyncHTTPExecutor

__all__ = [
    "AsyncHTTPExecutor",
    "CancellationToken",
    "ErrorFactory",
]

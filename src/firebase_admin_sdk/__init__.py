"""Firebase Admin Python SDK."""

from ._version import __version__
from .app import App, initialize_app
from .config import AppConfig, RetryConfig, TelemetryConfig
from .core import CancellationToken
from .credentials import (
    AccessToken,
    ApplicationDefault,
    Credential,
    ImplicitCredential,
    RefreshTokenCredential,
    ServiceAccountCredential,
    credential_from_file,
)
from .errors import ErrorCode, FirebaseError
from .models import BulkResult, ErrorInfo
from .telemetry import configure_telemetry

__all__ = [
    "AccessToken",
    "App",
    "AppConfig",
    "ApplicationDefault",
    "BulkResult",
    "CancellationToken",
    "Credential",
    "ErrorCode",
    "ErrorInfo",
    "FirebaseError",
    "ImplicitCredential",
    "RefreshTokenCredential",
    "RetryConfig",
    "ServiceAccountCredential",
    "TelemetryConfig",
    "__version__",
    "configure_telemetry",
    "credential_from_file",
    "initialize_app",
]

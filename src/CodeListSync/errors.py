# === NAVMAP v1 ===
# {
#   "module": "CodeListSync.errors",
#   "purpose": "Error taxonomy and logging helpers for catalog synchronisation.",
#   "sections": [
#     {
#       "id": "codelistsyncerror",
#       "name": "CodeListSyncError",
#       "anchor": "class-codelistsyncerror",
#       "kind": "class"
#     },
#     {
#       "id": "networkerror",
#       "name": "NetworkError",
#       "anchor": "class-networkerror",
#       "kind": "class"
#     },
#     {
#       "id": "get-actionable-error-message",
#       "name": "get_actionable_error_message",
#       "anchor": "function-get-actionable-error-message",
#       "kind": "function"
#     },
#     {
#       "id": "log-transfer-failure",
#       "name": "log_transfer_failure",
#       "anchor": "function-log-transfer-failure",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Error taxonomy and logging helpers for catalog synchronisation.

Responsibilities
----------------
- Define the exception types raised by the HTTP, registry and configuration
  layers. Every type derives from :class:`CodeListSyncError` so the CLI can
  tell setup failures apart from programming errors.
- Translate HTTP status codes into operator-facing hints via
  :func:`get_actionable_error_message`.
- Centralise structured failure logging through :func:`log_transfer_failure`
  so probe and download failures carry the same fields.

Design Notes
------------
- Transport and download failures are per-artifact: callers log them and move
  on. Only :class:`ConfigError` and a failed catalog fetch end a run.
"""

from __future__ import annotations

import logging
from typing import Any

__all__ = (
    "CodeListSyncError",
    "ConfigError",
    "NetworkError",
    "ProbeError",
    "DownloadError",
    "RegistryError",
    "get_actionable_error_message",
    "log_transfer_failure",
)

LOGGER = logging.getLogger(__name__)


class CodeListSyncError(Exception):
    """Base class for all synchronisation errors."""


class ConfigError(CodeListSyncError):
    """Raised when configuration cannot be loaded or validated."""


class NetworkError(CodeListSyncError):
    """Raised when network-related failures occur."""

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.details = details or {}


class ProbeError(NetworkError):
    """Raised when a metadata-only (HEAD) probe does not return HTTP 200."""


class DownloadError(NetworkError):
    """Raised when a full fetch fails before the payload is persisted."""


class RegistryError(CodeListSyncError):
    """Raised when the registry file cannot be written."""

    def __init__(self, message: str, *, path: str | None = None):
        super().__init__(message)
        self.path = path


def get_actionable_error_message(
    status_code: int | None,
    exception: BaseException | None = None,
) -> tuple[str, str | None]:
    """Generate a user-friendly error message with an actionable suggestion.

    Args:
        status_code: HTTP status code from the failed request, if any.
        exception: Original exception, used when no status code is known.

    Returns:
        Tuple of (error_message, suggestion) where suggestion may be None.

    Examples:
        >>> msg, suggestion = get_actionable_error_message(404)
        >>> msg
        'Resource not found (HTTP 404)'
    """

    if status_code == 401 or status_code == 403:
        return (
            f"Access denied (HTTP {status_code})",
            "The catalog host rejected the request. Check proxy or network permissions.",
        )
    elif status_code == 404:
        return (
            "Resource not found (HTTP 404)",
            "The attachment may have been replaced by a newer upload. Re-run the analysis.",
        )
    elif status_code == 429:
        return (
            "Rate limit exceeded (HTTP 429)",
            "Increase download_delay_seconds to slow down successive requests.",
        )
    elif status_code in (500, 502, 503, 504):
        return (
            f"Server error (HTTP {status_code})",
            "The catalog host is having trouble. The artifact will be retried on the next run.",
        )
    elif status_code and status_code >= 400:
        return (f"HTTP error {status_code}", None)
    elif status_code and status_code != 200:
        return (f"Unexpected status {status_code}", None)

    if exception is not None:
        name = type(exception).__name__
        if "Timeout" in name:
            return (
                "Request timed out",
                "Increase http.read_timeout_ms or http.connect_timeout_ms.",
            )
        if "Connect" in name:
            return (
                "Failed to establish connection",
                "Check network connectivity, DNS resolution, or proxy settings.",
            )
        return (f"{name}: {exception}", None)

    return ("Request failed", None)


def log_transfer_failure(
    logger: logging.Logger,
    url: str,
    *,
    stage: str,
    status_code: int | None = None,
    exception: BaseException | None = None,
) -> str:
    """Log a probe or download failure and return the short reason.

    Args:
        logger: Logger instance to use for output.
        url: URL that failed.
        stage: ``"probe"`` or ``"download"``.
        status_code: HTTP status code if available.
        exception: Original exception if available.

    Returns:
        The short error message, suitable for a ``FAILED: <reason>`` status.
    """

    if status_code is None and isinstance(exception, NetworkError):
        status_code = exception.status_code
    error_msg, suggestion = get_actionable_error_message(status_code, exception)

    log_entry: dict[str, Any] = {
        "url": url,
        "stage": stage,
        "status_code": status_code,
        "error_message": error_msg,
    }
    if exception is not None:
        log_entry["exception_type"] = type(exception).__name__
        log_entry["exception_message"] = str(exception)

    logger.warning("%s failed for %s: %s", stage.capitalize(), url, error_msg, extra={"extra_fields": log_entry})
    if suggestion:
        logger.info("Suggestion: %s", suggestion)
    return error_msg

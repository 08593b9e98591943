# === NAVMAP v1 ===
# {
#   "module": "CodeListSync.http",
#   "purpose": "HTTPX client factory, tenacity retry policy, catalog fetch, HEAD probe and streamed download",
#   "sections": [
#     {
#       "id": "create-client",
#       "name": "create_client",
#       "anchor": "function-create-client",
#       "kind": "function"
#     },
#     {
#       "id": "build-retrying",
#       "name": "build_retrying",
#       "anchor": "function-build-retrying",
#       "kind": "function"
#     },
#     {
#       "id": "fetch-document",
#       "name": "fetch_document",
#       "anchor": "function-fetch-document",
#       "kind": "function"
#     },
#     {
#       "id": "probe",
#       "name": "probe",
#       "anchor": "function-probe",
#       "kind": "function"
#     },
#     {
#       "id": "stream-download",
#       "name": "stream_download",
#       "anchor": "function-stream-download",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""HTTP access to the catalog host.

**Purpose**
-----------
Every network call made during a cycle goes through this module:

- one ``GET`` for the catalog page (:func:`fetch_document`);
- one ``HEAD`` per candidate link (:func:`probe`), accepted only on HTTP 200;
- one streamed ``GET`` per artifact selected for transfer
  (:func:`stream_download`), persisted through
  :func:`CodeListSync.io_utils.atomic_write_stream`.

**Retries**
-----------
Transient failures (connect/read errors, timeouts, HTTP 429 and 5xx) are
retried by a tenacity ``Retrying`` controller built from
:class:`~CodeListSync.config.HttpSettings`. The wait honours ``Retry-After``
when the server sends one and otherwise backs off exponentially. Other
statuses are returned or raised immediately.
"""

from __future__ import annotations

import email.utils
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Tuple

import httpx
import tenacity
from tenacity import RetryCallState, retry_if_exception, retry_if_result
from tqdm import tqdm

from CodeListSync.config import HttpSettings
from CodeListSync.errors import DownloadError, NetworkError, ProbeError
from CodeListSync.io_utils import SizeMismatchError, StreamResult, atomic_write_stream
from CodeListSync.models import ArtifactRecord

__all__ = (
    "RETRYABLE_STATUSES",
    "create_client",
    "is_retryable",
    "build_retrying",
    "parse_http_date",
    "fetch_document",
    "probe",
    "stream_download",
)

LOGGER = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
_RETRYABLE_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.TimeoutException,
    httpx.RemoteProtocolError,
)
_CHUNK_SIZE = 1 << 16


def create_client(
    settings: HttpSettings | None = None,
    *,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Build an ``httpx.Client`` with polite headers and the configured timeouts.

    Args:
        settings: HTTP settings; defaults when omitted.
        transport: Optional transport override (``httpx.MockTransport`` in tests).

    Returns:
        Client that follows redirects. The caller owns it and must close it.
    """
    cfg = settings or HttpSettings()
    timeout = httpx.Timeout(timeout=cfg.read_timeout_s, connect=cfg.connect_timeout_s)
    client = httpx.Client(
        timeout=timeout,
        verify=cfg.verify_tls,
        headers={"User-Agent": cfg.user_agent},
        follow_redirects=True,
        transport=transport,
    )
    LOGGER.debug(
        "HTTP client created: UA=%s, connect=%.1fs, read=%.1fs",
        cfg.user_agent,
        cfg.connect_timeout_s,
        cfg.read_timeout_s,
    )
    return client


# ============================================================================
# Retry policy
# ============================================================================


def is_retryable(*, status: Optional[int] = None, exception: Optional[BaseException] = None) -> bool:
    """Whether a status code or exception describes a transient failure."""
    if status is not None:
        return status in RETRYABLE_STATUSES
    if isinstance(exception, NetworkError):
        return exception.status_code in RETRYABLE_STATUSES
    if exception is not None:
        return isinstance(exception, _RETRYABLE_EXCEPTIONS)
    return False


def _retry_after_seconds(outcome: Any) -> Optional[float]:
    if outcome is None or outcome.failed:
        return None
    response = outcome.result()
    header = getattr(response, "headers", {}).get("Retry-After")
    if not header:
        return None
    try:
        return float(int(header))
    except ValueError:
        pass
    try:
        when = email.utils.parsedate_to_datetime(header)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    return max(0.0, (when - datetime.now(when.tzinfo)).total_seconds())


class _WaitRetryAfter(tenacity.wait.wait_base):
    """Prefer the server's ``Retry-After`` over exponential backoff, capped."""

    def __init__(self, fallback: tenacity.wait.wait_base, cap_s: float) -> None:
        self.fallback = fallback
        self.cap_s = cap_s

    def __call__(self, retry_state: RetryCallState) -> float:
        retry_after_s = _retry_after_seconds(retry_state.outcome)
        if retry_after_s is not None and retry_after_s > 0:
            wait_s = min(retry_after_s, self.cap_s)
            LOGGER.debug("Using Retry-After header: %ss (capped at %ss)", wait_s, self.cap_s)
            return wait_s
        return self.fallback(retry_state)


def _before_sleep(retry_state: RetryCallState) -> None:
    next_action = retry_state.next_action
    wait_s = getattr(next_action, "sleep", 0.0) if next_action is not None else 0.0
    LOGGER.warning(
        "retry attempt=%d wait_ms=%d elapsed_s=%.1f",
        retry_state.attempt_number,
        int(wait_s * 1000),
        retry_state.seconds_since_start or 0.0,
    )


def _last_result(retry_state: RetryCallState) -> Any:
    return retry_state.outcome.result()


def build_retrying(
    settings: HttpSettings | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> tenacity.Retrying:
    """Build the tenacity controller shared by every request of a run.

    Exhausted retries on a retryable status return the last response, so the
    caller reports the real status instead of a ``RetryError``.
    """
    cfg = settings or HttpSettings()
    fallback = tenacity.wait_exponential(multiplier=0.5, max=cfg.backoff_max_seconds)
    return tenacity.Retrying(
        retry=retry_if_exception(lambda exc: is_retryable(exception=exc))
        | retry_if_result(lambda response: is_retryable(status=getattr(response, "status_code", None))),
        stop=tenacity.stop_after_attempt(cfg.max_attempts),
        wait=_WaitRetryAfter(fallback=fallback, cap_s=cfg.backoff_max_seconds),
        sleep=sleep,
        before_sleep=_before_sleep,
        retry_error_callback=_last_result,
        reraise=True,
    )


def _request(
    client: httpx.Client,
    method: str,
    url: str,
    retrying: Optional[tenacity.Retrying],
) -> httpx.Response:
    controller = (retrying or build_retrying()).copy()
    return controller(client.request, method, url)


# ============================================================================
# Requests
# ============================================================================


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """RFC 1123 header date as a naive UTC datetime, or ``None``."""
    if not value:
        return None
    try:
        parsed = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def fetch_document(
    client: httpx.Client,
    url: str,
    *,
    retrying: Optional[tenacity.Retrying] = None,
) -> Tuple[str, str]:
    """Fetch the catalog page.

    Returns:
        ``(html, final_url)``; links must be resolved against ``final_url``.

    Raises:
        NetworkError: On transport failure or a non-2xx status.
    """
    LOGGER.info("Fetching catalog page %s", url)
    try:
        response = _request(client, "GET", url, retrying)
    except httpx.HTTPError as exc:
        raise NetworkError(f"Could not fetch catalog page: {exc}", url=url) from exc
    if not response.is_success:
        raise NetworkError(
            f"Catalog page returned HTTP {response.status_code}",
            url=url,
            status_code=response.status_code,
        )
    return response.text, str(response.url)


def probe(
    client: httpx.Client,
    url: str,
    *,
    retrying: Optional[tenacity.Retrying] = None,
) -> ArtifactRecord:
    """Metadata-only ``HEAD`` probe of one candidate link.

    Raises:
        ProbeError: On transport failure or any status other than 200.
    """
    try:
        response = _request(client, "HEAD", url, retrying)
    except httpx.HTTPError as exc:
        raise ProbeError(f"HEAD request failed: {exc}", url=url) from exc
    if response.status_code != 200:
        raise ProbeError(
            f"HEAD returned HTTP {response.status_code}",
            url=url,
            status_code=response.status_code,
        )

    headers = response.headers
    try:
        content_length = int(headers.get("Content-Length", "0") or 0)
    except ValueError:
        content_length = 0
    return ArtifactRecord(
        url=url,
        content_length=content_length,
        content_type=headers.get("Content-Type"),
        last_modified=parse_http_date(headers.get("Last-Modified")),
        etag=headers.get("ETag"),
    )


def _with_progress(chunks: Iterable[bytes], total: int, label: str) -> Iterable[bytes]:
    with tqdm(total=total or None, unit="B", unit_scale=True, desc=label, leave=False) as bar:
        for chunk in chunks:
            bar.update(len(chunk))
            yield chunk


def stream_download(
    client: httpx.Client,
    url: str,
    dest_path: str,
    *,
    retrying: Optional[tenacity.Retrying] = None,
    show_progress: bool = False,
    verify_content_length: bool = True,
) -> StreamResult:
    """Stream ``url`` into ``dest_path`` atomically.

    The SHA-256 digest and byte count in the result are computed from the
    same bytes that were persisted. ``Content-Length`` counts the encoded
    body, so it is only checked when the response has no ``Content-Encoding``.

    Raises:
        DownloadError: On transport failure, a non-200 status, or a body whose
            length differs from ``Content-Length``.
    """
    controller = (retrying or build_retrying()).copy()
    try:
        for attempt in controller:
            with attempt:
                with client.stream("GET", url) as response:
                    if response.status_code != 200:
                        raise DownloadError(
                            f"GET returned HTTP {response.status_code}",
                            url=url,
                            status_code=response.status_code,
                        )
                    expected = int(response.headers.get("Content-Length", "0") or 0)
                    encoding = response.headers.get("Content-Encoding", "identity").strip().lower()
                    check_length = verify_content_length and encoding in ("", "identity")
                    chunks: Iterable[bytes] = response.iter_bytes(_CHUNK_SIZE)
                    if show_progress:
                        total = expected if check_length else 0
                        chunks = _with_progress(chunks, total, dest_path.rsplit("/", 1)[-1])
                    return atomic_write_stream(
                        dest_path, chunks, expected_len=expected if check_length else None
                    )
    except SizeMismatchError as exc:
        raise DownloadError(str(exc), url=url) from exc
    except httpx.HTTPError as exc:
        raise DownloadError(f"GET request failed: {exc}", url=url) from exc
    raise DownloadError("GET request was not attempted", url=url)

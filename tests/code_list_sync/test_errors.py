"""Tests for the error hierarchy and transfer-failure reporting."""

from __future__ import annotations

import logging

import httpx

from CodeListSync.errors import (
    CodeListSyncError,
    DownloadError,
    NetworkError,
    ProbeError,
    get_actionable_error_message,
    log_transfer_failure,
)

URL = "https://host/download/attachments/1/eas.xlsx"


class TestHierarchy:
    """Test exception attributes."""

    def test_network_error_fields(self):
        exc = DownloadError("GET returned HTTP 503", url=URL, status_code=503)
        assert isinstance(exc, NetworkError)
        assert isinstance(exc, CodeListSyncError)
        assert exc.url == URL
        assert exc.status_code == 503
        assert exc.details == {}

    def test_probe_error_minimal(self):
        exc = ProbeError("HEAD failed")
        assert str(exc) == "HEAD failed"
        assert exc.status_code is None


class TestActionableMessages:
    """Test get_actionable_error_message."""

    def test_not_found(self):
        msg, suggestion = get_actionable_error_message(404)
        assert msg == "Resource not found (HTTP 404)"
        assert "re-run" in suggestion.lower()

    def test_rate_limited(self):
        msg, suggestion = get_actionable_error_message(429)
        assert "Rate limit" in msg
        assert "download_delay_seconds" in suggestion

    def test_server_error(self):
        msg, _ = get_actionable_error_message(503)
        assert msg == "Server error (HTTP 503)"

    def test_timeout_exception(self):
        msg, suggestion = get_actionable_error_message(None, httpx.ReadTimeout("slow"))
        assert msg == "Request timed out"
        assert "read_timeout_ms" in suggestion

    def test_generic(self):
        assert get_actionable_error_message(418)[0] == "HTTP error 418"
        assert get_actionable_error_message(None) == ("Request failed", None)


class TestLogTransferFailure:
    """Test failure logging."""

    def test_status_taken_from_exception(self, caplog):
        exc = DownloadError("GET returned HTTP 404", url=URL, status_code=404)
        with caplog.at_level(logging.INFO):
            reason = log_transfer_failure(logging.getLogger("test"), URL, stage="download", exception=exc)
        assert reason == "Resource not found (HTTP 404)"
        assert "Download failed for" in caplog.text
        assert "Suggestion:" in caplog.text

    def test_network_error_without_status(self):
        exc = DownloadError("Size mismatch: expected 200 bytes, got 100 bytes", url=URL)
        reason = log_transfer_failure(logging.getLogger("test"), URL, stage="download", exception=exc)
        assert reason == "DownloadError: Size mismatch: expected 200 bytes, got 100 bytes"

"""Tests for hyperlink classification and filename helpers."""

from __future__ import annotations

import pytest

from CodeListSync.links import decode_filename, file_type, filename_from_url, is_downloadable


class TestIsDownloadable:
    """Test which catalog links count as artifacts."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://ec.europa.eu/digital-building-blocks/sites/download/attachments/467108974/eas-codes.xlsx",
            "https://host/download/attachments/1/EN16931%20code%20lists%20values.xlsx?version=1&modificationDate=1700000000000&api=v2",
            "https://host/download/attachments/1/en16931-ubl-1.3.15.zip",
            "https://host/download/attachments/1/Technical%20Guidance.pdf",
        ],
    )
    def test_attachment_artifacts(self, url):
        """Attachment links with an artifact extension are downloadable."""
        assert is_downloadable(url)

    def test_attachment_wins_over_navigation_markers(self):
        """Attachment links are trusted even when wrapped by tracker parameters."""
        url = "https://host/download/attachments/1/eas.xlsx?action=preview"
        assert is_downloadable(url)

    @pytest.mark.parametrize(
        "url",
        [
            None,
            "",
            "https://host/pages/viewpage.action?pageId=467108974",
            "https://host/download/attachments/1/readme.txt",
            "https://host/files/eas.xlsx",
            "https://github.com/ConnectingEurope/eInvoicing-EN16931/download/release.zip",
            "https://confluence.atlassian.com/download/guide.pdf",
        ],
    )
    def test_navigation_and_foreign_links(self, url):
        """Navigation, unsupported extensions and excluded hosts are rejected."""
        assert not is_downloadable(url)


class TestFilenames:
    """Test filename extraction and decoding."""

    def test_filename_drops_query_string(self):
        url = "https://host/download/attachments/1/EN16931%20code%20lists.xlsx?version=2&api=v2"
        assert filename_from_url(url) == "EN16931%20code%20lists.xlsx"

    def test_decode_percent_and_plus(self):
        """Both %XX escapes and '+' decode to the display name."""
        assert decode_filename("EN16931%20code%20lists.xlsx") == "EN16931 code lists.xlsx"
        assert decode_filename("Electronic+Address+Scheme.xlsx") == "Electronic Address Scheme.xlsx"

    def test_decode_empty(self):
        assert decode_filename(None) == ""
        assert decode_filename("") == ""

    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("eas-codes.xlsx", "XLSX"),
            ("en16931-cii-1.3.15.zip", "ZIP"),
            ("README", ""),
            (None, ""),
        ],
    )
    def test_file_type(self, filename, expected):
        assert file_type(filename) == expected

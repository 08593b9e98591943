"""Link classification and filename helpers for catalog hyperlinks."""

from __future__ import annotations

from typing import Optional
from urllib.parse import unquote_plus, urlsplit

__all__ = (
    "DOWNLOADABLE_EXTENSIONS",
    "is_downloadable",
    "filename_from_url",
    "decode_filename",
    "file_type",
)

DOWNLOADABLE_EXTENSIONS = ("xlsx", "xls", "xml", "csv", "json", "zip", "pdf")

_DOWNLOAD_MARKERS = ("/download/", "/attachments/")
_NAVIGATION_MARKERS = (
    "action=",
    "breadcrumbs",
    "skilink",
    "menu",
    "hierarchy",
    "#header",
    "#navigation",
    "pageid=",
    "display/",
    "github.com",
    "tracker/plugins",
)
_EXCLUDED_HOSTS = (
    "atlassian.com",
    "confluence.atlassian",
    "docs.atlassian",
    "support.atlassian",
)


def is_downloadable(url: Optional[str]) -> bool:
    """Return True when ``url`` references a downloadable artifact rather than navigation."""
    if not url:
        return False
    lowered = url.lower()
    path = urlsplit(lowered).path
    if not path.endswith(tuple(f".{ext}" for ext in DOWNLOADABLE_EXTENSIONS)):
        return False
    if not any(marker in lowered for marker in _DOWNLOAD_MARKERS):
        return False
    if "attachments" in lowered:
        # Trackers may wrap attachment links; attachments are always trusted.
        return True
    if any(marker in lowered for marker in _NAVIGATION_MARKERS):
        return False
    return not any(host in lowered for host in _EXCLUDED_HOSTS)


def filename_from_url(url: str) -> str:
    """Last path segment of ``url`` without the query string, still percent-encoded."""
    return urlsplit(url).path.rsplit("/", 1)[-1]


def decode_filename(filename: Optional[str]) -> str:
    if not filename:
        return ""
    return unquote_plus(filename)


def file_type(filename: Optional[str]) -> str:
    """Uppercase extension of ``filename`` or an empty string."""
    if not filename or "." not in filename:
        return ""
    suffix = filename.rsplit(".", 1)[1]
    return suffix.upper()

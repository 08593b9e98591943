"""Date, version and text helpers shared by the extractor and the fallback deriver."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Optional

__all__ = (
    "SHORT_DATE_RE",
    "ISO_DATE_RE",
    "normalize_text",
    "parse_short_date",
    "parse_iso_date",
    "normalize_version",
    "modification_timestamp",
    "modification_date",
)

SHORT_DATE_RE = re.compile(r"(\d{2}/\d{2}/\d{2})")
ISO_DATE_RE = re.compile(r"(\d{4}-\d{2}-\d{2})")

_SPLIT_DAY_RE = re.compile(r"(\d{1,2})\s+(/\d{2}/\d{2})")
_SPLIT_SLASH_RE = re.compile(r"(\d{2})/\s+(\d{2})/\s+(\d{2})")
_WHITESPACE_RE = re.compile(r"\s+")
_EXACT_SHORT_DATE_RE = re.compile(r"\d{2}/\d{2}/\d{2}")
_TRAILING_ZERO_RE = re.compile(r"^\d+\.0$")
_MODIFICATION_RE = re.compile(r"modificationDate=(\d+)")


def normalize_text(text: str) -> str:
    """Repair dates split by inline markup and collapse whitespace.

    ``"01 /02/21"`` becomes ``"01/02/21"`` and ``"01/ 02/ 21"`` becomes
    ``"01/02/21"``.
    """
    if not text:
        return ""
    text = _SPLIT_DAY_RE.sub(r"\1\2", text)
    text = _SPLIT_SLASH_RE.sub(r"\1/\2/\3", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def parse_short_date(value: str) -> Optional[date]:
    """Parse ``dd/mm/yy``; years 00-49 map to 20xx and 50-99 to 19xx.

    Returns ``None`` for anything that is not a valid calendar date.
    """
    if not value or not _EXACT_SHORT_DATE_RE.fullmatch(value.strip()):
        return None
    day, month, year = (int(part) for part in value.strip().split("/"))
    year += 2000 if year < 50 else 1900
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_iso_date(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def normalize_version(value: str) -> str:
    """Strip a trailing ``.0`` from two-part versions only (``16.0`` -> ``16``)."""
    if _TRAILING_ZERO_RE.match(value):
        return value[:-2]
    return value


def modification_timestamp(url: str) -> Optional[int]:
    """Return the ``modificationDate`` epoch-millisecond query value, if any."""
    match = _MODIFICATION_RE.search(url or "")
    if not match:
        return None
    return int(match.group(1))


def modification_date(url: str) -> Optional[datetime]:
    """UTC datetime of the URL's ``modificationDate`` parameter.

    Transport timestamps are only ever used as a sort fallback, never as an
    effective or publishing date.
    """
    millis = modification_timestamp(url)
    if millis is None:
        return None
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None

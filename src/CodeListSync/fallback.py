"""Derive missing versions and effective dates from filenames.

Only filename-embedded values are trusted here. Transport timestamps such as
``Last-Modified`` or the URL's ``modificationDate`` are never promoted to an
effective or publishing date.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Iterable, Optional

from CodeListSync.dates import ISO_DATE_RE, SHORT_DATE_RE, normalize_version, parse_iso_date, parse_short_date
from CodeListSync.models import ArtifactMetadata, ArtifactRecord

__all__ = ("derive_version", "derive_effective_date", "derive_metadata", "apply_fallbacks")

LOGGER = logging.getLogger(__name__)

_VALIDATION_ARTEFACT_RE = re.compile(r"en16931-(?:ubl|cii)-(\d+(?:\.\d+)+)\.zip")
_MULTI_PART_RE = re.compile(r"(?<![a-z])(?:version|v)\s*(\d+(?:\.\d+)+)", re.IGNORECASE)
_SIMPLE_RE = re.compile(r"(?<![a-z])(?:version|v)\s*(\d+)", re.IGNORECASE)


def derive_version(filename: str) -> Optional[str]:
    """Version embedded in a decoded filename.

    ``en16931-ubl-1.3.15.zip`` gives ``"1.3.15"``; ``"... values v14 ..."``
    gives ``"14"``; ``"... version 16.0 ..."`` gives ``"16"``.
    """
    if not filename:
        return None
    match = _VALIDATION_ARTEFACT_RE.search(filename.lower())
    if match:
        return match.group(1)
    match = _MULTI_PART_RE.search(filename)
    if match:
        return normalize_version(match.group(1))
    match = _SIMPLE_RE.search(filename)
    if match:
        return match.group(1)
    return None


def derive_effective_date(filename: str) -> Optional[date]:
    """``YYYY-MM-DD`` in the filename, else ``dd/mm/yy``."""
    if not filename:
        return None
    match = ISO_DATE_RE.search(filename)
    if match:
        parsed = parse_iso_date(match.group(1))
        if parsed is not None:
            return parsed
    match = SHORT_DATE_RE.search(filename)
    if match:
        return parse_short_date(match.group(1))
    return None


def derive_metadata(filename: str) -> ArtifactMetadata:
    return ArtifactMetadata(
        effective_date=derive_effective_date(filename),
        version=derive_version(filename),
    )


def apply_fallbacks(records: Iterable[ArtifactRecord]) -> int:
    """Fill missing version/effective date on each record from its filename.

    Returns:
        Number of records that gained at least one field.
    """
    filled = 0
    for record in records:
        if record.version and record.effective_date is not None:
            continue
        before = record.metadata
        record.apply_metadata(derive_metadata(record.decoded_filename))
        if record.metadata != before:
            filled += 1
            LOGGER.debug(
                "Filename fallback for %s: effective_date=%s version=%s",
                record.decoded_filename,
                record.effective_date,
                record.version,
            )
    if filled:
        LOGGER.info("Derived filename metadata for %d artifacts", filled)
    return filled

"""Carry resolved metadata across artifacts that describe the same release.

The catalog documents each EN16931 code-list release next to its XLSX
spreadsheet (the *canonical* artifact) while the GeneriCode ZIP of the same
release is often linked elsewhere without any prose. Two passes close that
gap:

* :func:`propagate_publishing_dates` fills a missing publishing date from the
  effective-date to publishing-date map built by
  :func:`CodeListSync.extraction.extract_publishing_dates`.
* :func:`propagate_paired_metadata` pairs each canonical spreadsheet with the
  archives of the same release by comparing filename dates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Mapping, Optional, Sequence

from CodeListSync.dates import ISO_DATE_RE, parse_iso_date
from CodeListSync.models import ArtifactRecord

__all__ = (
    "PROXIMITY_DAYS",
    "is_canonical",
    "archive_shape",
    "dates_match",
    "propagate_publishing_dates",
    "propagate_paired_metadata",
)

LOGGER = logging.getLogger(__name__)

PROXIMITY_DAYS = 7
"""Maximum distance between a dated archive and its canonical release."""

LEGACY = "legacy"
DATED = "dated"

_DATED_PREFIXES = ("cef-genericodes-", "digital-genericodes-")


def _filename_date(name: str) -> Optional[date]:
    match = ISO_DATE_RE.search(name)
    return parse_iso_date(match.group(1)) if match else None


def is_canonical(record: ArtifactRecord) -> bool:
    """An EN16931 code-list spreadsheet with effective date and version resolved."""
    name = record.decoded_filename.lower()
    return (
        "en16931" in name
        and "code lists" in name
        and name.endswith(".xlsx")
        and record.effective_date is not None
        and bool(record.version)
    )


def archive_shape(record: ArtifactRecord) -> Optional[str]:
    """``"legacy"`` for ``EN16931 ... genericodes ... .zip``, ``"dated"`` for ``cef-genericodes-YYYY-MM-DD.zip``."""
    name = record.decoded_filename.lower()
    if not name.endswith(".zip"):
        return None
    if name.startswith(_DATED_PREFIXES):
        return DATED
    if "en16931" in name and "genericodes" in name:
        return LEGACY
    return None


@dataclass(frozen=True)
class _Source:
    record: ArtifactRecord
    effective_date: date
    filename_date: Optional[date]


def dates_match(
    shape: str,
    archive_date: date,
    effective_date: date,
    filename_date: Optional[date],
    *,
    strict: bool = False,
) -> bool:
    """Whether an archive dated ``archive_date`` belongs to a canonical release.

    Both shapes accept an exact match with the canonical's effective date or
    with the date embedded in its filename. Unless ``strict`` is set, legacy
    archives also accept the same calendar month and dated archives accept a
    distance of at most :data:`PROXIMITY_DAYS`.
    """
    if archive_date == effective_date:
        return True
    if filename_date is not None and archive_date == filename_date:
        return True
    if strict:
        return False
    if shape == LEGACY:
        return (archive_date.year, archive_date.month) == (effective_date.year, effective_date.month)
    if shape == DATED:
        return abs((archive_date - effective_date).days) <= PROXIMITY_DAYS
    return False


def propagate_publishing_dates(records: Sequence[ArtifactRecord], mapping: Mapping[date, date]) -> int:
    """Fill missing publishing dates from an effective-date keyed mapping."""
    updated = 0
    for record in records:
        if record.effective_date is None or record.publishing_date is not None:
            continue
        publishing = mapping.get(record.effective_date)
        if publishing is not None:
            record.publishing_date = publishing
            updated += 1
    if updated:
        LOGGER.info("Propagated publishing dates to %d artifacts by effective date", updated)
    return updated


def propagate_paired_metadata(records: Sequence[ArtifactRecord], *, strict: bool = False) -> int:
    """Copy canonical release metadata onto paired archives.

    On a match the archive's ``effective_date`` and ``is_latest_release`` are
    refreshed from the canonical record; ``publishing_date`` and ``version``
    are only filled when empty. Archives that already carry a version are
    skipped, so running the pass twice changes nothing.

    Args:
        records: All artifacts discovered in the current run.
        strict: Accept exact date equality only.

    Returns:
        Number of archives updated.
    """
    sources = [
        _Source(record, record.effective_date, _filename_date(record.decoded_filename))
        for record in records
        if is_canonical(record)
    ]
    LOGGER.info("Found %d canonical spreadsheets for metadata propagation", len(sources))

    updated = 0
    for source in sources:
        canonical = source.record
        for target in records:
            if target.version:
                continue
            shape = archive_shape(target)
            if shape is None:
                continue
            archive_date = _filename_date(target.decoded_filename)
            if archive_date is None:
                continue
            if not dates_match(shape, archive_date, source.effective_date, source.filename_date, strict=strict):
                continue

            LOGGER.info(
                "Pairing %s (v%s) -> %s (archive date %s, effective date %s)",
                canonical.decoded_filename,
                canonical.version,
                target.decoded_filename,
                archive_date,
                source.effective_date,
            )
            target.effective_date = source.effective_date
            target.is_latest_release = canonical.is_latest_release
            if target.publishing_date is None:
                target.publishing_date = canonical.publishing_date
            target.version = canonical.version
            updated += 1

    if updated:
        LOGGER.info("Propagated metadata to %d paired archives", updated)
    return updated

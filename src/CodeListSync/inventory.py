"""CSV exports for the three phases and the cumulative download history.

Every export is UTF-8 with all fields quoted and rows in :func:`sort_key`
order. Each phase writes a timestamped file (``inventory-YYYYMMDD-HHMMSS.csv``)
and, when configured, a ``<base>-latest.csv`` copy next to it. Phase 3 also
maintains ``downloaded-files.csv`` beside the registry: the history of every
successful transfer, which doubles as the seed for an empty registry.
"""

from __future__ import annotations

import csv
import io
import logging
import os
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from CodeListSync.categories import detect_category
from CodeListSync.dates import modification_date
from CodeListSync.io_utils import atomic_write_text
from CodeListSync.links import decode_filename, file_type
from CodeListSync.models import ArtifactRecord, DownloadStatus
from CodeListSync.registry import FileRegistry

__all__ = (
    "INVENTORY_HEADERS",
    "DOWNLOAD_HEADERS",
    "inventory_row",
    "download_row",
    "write_csv",
    "read_csv",
    "timestamped_filename",
    "write_with_latest_copy",
    "append_cumulative",
    "record_from_row",
    "seed_registry_from_csv",
)

LOGGER = logging.getLogger(__name__)

INVENTORY_HEADERS: Tuple[str, ...] = (
    "effective_date",
    "publishing_date",
    "version",
    "category",
    "is_latest_release",
    "modification_date",
    "url",
    "filename",
    "filetype",
    "content_length",
    "content_type",
    "last_modified",
)
DOWNLOAD_HEADERS: Tuple[str, ...] = INVENTORY_HEADERS + ("actual_length", "hash", "status")

DATE_FORMAT = "%d.%m.%Y"
LAST_MODIFIED_FORMAT = "%Y-%m-%d %H:%M:%S"
TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"

Row = Dict[str, str]


# ============================================================================
# Row builders
# ============================================================================


def _format_date(value: Optional[date]) -> str:
    return value.strftime(DATE_FORMAT) if value else ""


def _format_modification(url: str) -> str:
    modified = modification_date(url)
    if modified is None:
        return ""
    return modified.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


def inventory_row(record: ArtifactRecord) -> Row:
    """Inventory/diff columns for ``record``."""
    return {
        "effective_date": _format_date(record.effective_date),
        "publishing_date": _format_date(record.publishing_date),
        "version": record.version or "",
        "category": record.category or detect_category(record.filename, record.url),
        "is_latest_release": "true" if record.is_latest_release else "false",
        "modification_date": _format_modification(record.url),
        "url": record.url,
        "filename": record.filename,
        "filetype": file_type(record.filename),
        "content_length": str(record.content_length),
        "content_type": record.content_type or "",
        "last_modified": record.last_modified.strftime(LAST_MODIFIED_FORMAT) if record.last_modified else "",
    }


def download_row(record: ArtifactRecord, status: DownloadStatus) -> Row:
    """Inventory columns plus the transfer outcome."""
    row = inventory_row(record)
    row["actual_length"] = str(record.actual_size) if record.actual_size > 0 else ""
    row["hash"] = (record.content_hash or "") if status.succeeded else ""
    row["status"] = status.label
    return row


def _row_sort_key(row: Row) -> Tuple[bool, date, str, str]:
    sort_date = _parse_date(row.get("effective_date", ""))
    if sort_date is None:
        modified = modification_date(row.get("url", ""))
        sort_date = modified.date() if modified is not None else None
    return (
        sort_date is None,
        sort_date or date.min,
        row.get("category", ""),
        decode_filename(row.get("filename", "")).lower(),
    )


# ============================================================================
# File writers
# ============================================================================


def write_csv(path: Path, headers: Sequence[str], rows: Iterable[Row]) -> int:
    """Atomically write ``rows`` under ``headers`` with every field quoted.

    Returns:
        Number of data rows written.
    """
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(headers), quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writeheader()
    count = 0
    for row in rows:
        writer.writerow({header: row.get(header, "") for header in headers})
        count += 1
    atomic_write_text(str(path), buffer.getvalue())
    LOGGER.debug("Wrote CSV file %s with %d rows", path, count)
    return count


def read_csv(path: Path) -> Tuple[List[str], List[Row]]:
    """Header and rows of an existing CSV file; a missing or empty file yields nothing."""
    if not path.exists() or path.stat().st_size == 0:
        return [], []
    with path.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        rows = [dict(row) for row in reader]
        return list(reader.fieldnames or []), rows


def timestamped_filename(base_name: str, now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    return f"{base_name}-{stamp}.csv"


def write_with_latest_copy(
    output_dir: Path,
    base_name: str,
    headers: Sequence[str],
    rows: Sequence[Row],
    *,
    write_latest: bool = True,
    now: Optional[datetime] = None,
) -> Path:
    """Write ``<base>-<timestamp>.csv`` and optionally ``<base>-latest.csv``.

    Returns:
        Path of the timestamped file.
    """
    ordered = sorted(rows, key=_row_sort_key)
    path = Path(output_dir) / timestamped_filename(base_name, now)
    write_csv(path, headers, ordered)
    if write_latest:
        write_csv(Path(output_dir) / f"{base_name}-latest.csv", headers, ordered)
    LOGGER.info("Wrote %d %s rows to %s", len(ordered), base_name, path)
    return path


def append_cumulative(path: Path, rows: Sequence[Row]) -> int:
    """Merge ``rows`` into the cumulative download history.

    Rows are de-duplicated by ``(url, hash)`` with the newest row winning, and
    the whole file is rewritten in sorted order.

    Raises:
        ValueError: If the existing file has a different column layout.

    Returns:
        Total number of rows in the file afterwards.
    """
    headers, existing = read_csv(Path(path))
    if headers and tuple(headers) != DOWNLOAD_HEADERS:
        raise ValueError(
            f"Header mismatch in {path}: expected {len(DOWNLOAD_HEADERS)} columns, found {len(headers)}"
        )
    merged: Dict[Tuple[str, str], Row] = {}
    for row in list(existing) + list(rows):
        merged[(row.get("url", ""), row.get("hash", ""))] = row
    ordered = sorted(merged.values(), key=_row_sort_key)
    write_csv(Path(path), DOWNLOAD_HEADERS, ordered)
    LOGGER.info("Appended %d rows to cumulative history %s (total: %d)", len(rows), path, len(ordered))
    return len(ordered)


# ============================================================================
# Registry seeding
# ============================================================================


def _parse_date(value: str) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        return None


def _parse_datetime(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, LAST_MODIFIED_FORMAT)
    except ValueError:
        return None


def _parse_int(value: str) -> int:
    try:
        return int(value) if value else 0
    except ValueError:
        return 0


def _find_file(base_path: Path, filename: str) -> Optional[Path]:
    if not filename or not base_path.is_dir():
        return None
    candidates = {filename, decode_filename(filename)}
    for root, _dirs, files in os.walk(base_path):
        for name in sorted(files):
            if name in candidates:
                return Path(root) / name
    return None


def record_from_row(row: Row, base_path: Optional[Path] = None) -> ArtifactRecord:
    """Rebuild a downloaded record from a downloads CSV row."""
    record = ArtifactRecord(
        url=row["url"],
        filename=row.get("filename", ""),
        content_length=_parse_int(row.get("content_length", "")),
        content_type=row.get("content_type") or None,
        last_modified=_parse_datetime(row.get("last_modified", "")),
        effective_date=_parse_date(row.get("effective_date", "")),
        publishing_date=_parse_date(row.get("publishing_date", "")),
        version=row.get("version") or None,
        is_latest_release=row.get("is_latest_release", "").lower() == "true",
        category=row.get("category", ""),
        downloaded=True,
        content_hash=row.get("hash") or None,
        actual_size=_parse_int(row.get("actual_length", "")),
    )
    if base_path is not None:
        found = _find_file(Path(base_path), record.filename)
        if found is not None:
            record.local_path = str(found)
    return record


def seed_registry_from_csv(registry: FileRegistry, csv_path: Path, base_path: Path) -> int:
    """Populate an empty registry from the cumulative download history.

    Only successful rows are imported; each one is marked downloaded and its
    file is located by name under ``base_path``. A registry that already
    holds records is left alone.

    Returns:
        Number of records imported.
    """
    if not registry.is_empty():
        return 0
    csv_path = Path(csv_path)
    _headers, rows = read_csv(csv_path)
    if not rows:
        LOGGER.info("No cumulative download history at %s - skipping registry seeding", csv_path.resolve())
        return 0

    LOGGER.info("Seeding registry from cumulative download history %s", csv_path.resolve())
    imported = 0
    for row in rows:
        if not row.get("url"):
            continue
        status = row.get("status", "SUCCEEDED")
        if status and not status.startswith("SUCCEEDED"):
            continue
        registry.register(record_from_row(row, base_path))
        imported += 1
    if imported:
        registry.save()
    LOGGER.info("Registry seeding complete (%d entries)", imported)
    return imported

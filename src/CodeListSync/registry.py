# === NAVMAP v1 ===
# {
#   "module": "CodeListSync.registry",
#   "purpose": "Persistent URL-keyed registry of synchronised artifacts and change detection.",
#   "sections": [
#     {
#       "id": "sort-key",
#       "name": "sort_key",
#       "anchor": "function-sort-key",
#       "kind": "function"
#     },
#     {
#       "id": "record-to-json",
#       "name": "record_to_json",
#       "anchor": "function-record-to-json",
#       "kind": "function"
#     },
#     {
#       "id": "record-from-json",
#       "name": "record_from_json",
#       "anchor": "function-record-from-json",
#       "kind": "function"
#     },
#     {
#       "id": "changeresult",
#       "name": "ChangeResult",
#       "anchor": "class-changeresult",
#       "kind": "class"
#     },
#     {
#       "id": "fileregistry",
#       "name": "FileRegistry",
#       "anchor": "class-fileregistry",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Persistent URL-keyed registry of synchronised artifacts.

Responsibilities
----------------
- Load and save the registry JSON document (``downloaded-files.json``). Saves
  are atomic and always use the deterministic order of :func:`sort_key`, so
  two runs over the same state produce byte-identical files.
- Accept both date encodings found in existing registries: ISO strings and
  ``[year, month, day]`` component arrays.
- Classify freshly probed artifacts as NEW, CHANGED or UNCHANGED.

Failure model
-------------
A registry that cannot be read or parsed is treated as empty and a warning is
logged; the run then re-downloads everything. Write failures raise
:class:`~CodeListSync.errors.RegistryError`.

Concurrency
-----------
One :class:`FileRegistry` instance serialises its own mutations with a
re-entrant lock. Two processes sharing one registry file are not supported.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from CodeListSync.categories import detect_category
from CodeListSync.dates import modification_date
from CodeListSync.errors import RegistryError
from CodeListSync.io_utils import atomic_write_text, sha256_file
from CodeListSync.models import ArtifactRecord, ChangeType

__all__ = (
    "sort_key",
    "sort_records",
    "record_to_json",
    "record_from_json",
    "default_path",
    "expected_path",
    "ChangeResult",
    "FileRegistry",
)

logger = logging.getLogger(__name__)


# ============================================================================
# Ordering
# ============================================================================


def _sort_date(record: ArtifactRecord) -> Optional[date]:
    if record.effective_date is not None:
        return record.effective_date
    modified = modification_date(record.url)
    return modified.date() if modified is not None else None


def sort_key(record: ArtifactRecord) -> Tuple[bool, date, str, str]:
    """Deterministic ordering key shared by the registry and every CSV export.

    Effective date ascending, falling back to the URL's ``modificationDate``;
    dated entries before undated ones; then category; then lower-cased decoded
    filename.
    """
    sort_date = _sort_date(record)
    category = record.category or detect_category(record.filename, record.url)
    return (sort_date is None, sort_date or date.min, category, record.decoded_filename.lower())


def sort_records(records: List[ArtifactRecord]) -> List[ArtifactRecord]:
    return sorted(records, key=sort_key)


# ============================================================================
# Serialisation
# ============================================================================


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, list) and len(value) >= 3:
        return date(int(value[0]), int(value[1]), int(value[2]))
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    raise ValueError(f"Unsupported date value: {value!r}")


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, list) and len(value) >= 3:
        parts = [int(part) for part in value[:6]] + [0] * (6 - min(len(value), 6))
        micros = int(value[6]) // 1000 if len(value) > 6 else 0
        return datetime(*parts[:6], micros)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    raise ValueError(f"Unsupported datetime value: {value!r}")


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def record_to_json(record: ArtifactRecord) -> Dict[str, Any]:
    """JSON-ready mapping for one record; ``None`` fields are omitted."""
    payload: Dict[str, Any] = {
        "url": record.url,
        "filename": record.filename,
        "content_length": record.content_length,
        "content_type": record.content_type,
        "last_modified": record.last_modified.isoformat() if record.last_modified else None,
        "etag": record.etag,
        "effective_date": record.effective_date.isoformat() if record.effective_date else None,
        "publishing_date": record.publishing_date.isoformat() if record.publishing_date else None,
        "version": record.version,
        "is_latest_release": record.is_latest_release,
        "category": record.category,
        "downloaded": record.downloaded,
        "download_time": record.download_time.isoformat() if record.download_time else None,
        "content_hash": record.content_hash,
        "actual_size": record.actual_size,
        "local_path": record.local_path,
    }
    return {key: value for key, value in payload.items() if value is not None}


def record_from_json(url: str, data: Dict[str, Any]) -> ArtifactRecord:
    """Rebuild a record, accepting legacy camelCase keys and array-encoded dates."""
    return ArtifactRecord(
        url=data.get("url") or url,
        filename=data.get("filename") or "",
        content_length=int(_first(data, "content_length", "contentLength") or 0),
        content_type=_first(data, "content_type", "contentType"),
        last_modified=_parse_datetime(_first(data, "last_modified", "lastModified")),
        etag=_first(data, "etag", "eTag"),
        effective_date=_parse_date(data.get("effective_date")),
        publishing_date=_parse_date(data.get("publishing_date")),
        version=data.get("version") or None,
        is_latest_release=bool(data.get("is_latest_release", False)),
        category=data.get("category") or "",
        downloaded=bool(data.get("downloaded", False)),
        download_time=_parse_datetime(_first(data, "download_time", "downloadTime")),
        content_hash=_first(data, "content_hash", "actual_hash", "file_hash", "fileHash"),
        actual_size=int(_first(data, "actual_size", "actualFileSize") or 0),
        local_path=_first(data, "local_path", "localPath"),
    )


def default_path(record: ArtifactRecord, base_path: str | os.PathLike[str]) -> Path:
    """``<base>/<category>/<decoded filename>``; the category level is skipped when unknown."""
    category = record.category or detect_category(record.filename, record.url)
    base = Path(base_path)
    if category:
        base = base / category
    return base / record.decoded_filename


def expected_path(record: ArtifactRecord, base_path: str | os.PathLike[str]) -> Path:
    """Where ``record`` lives on disk: its stored ``local_path``, else :func:`default_path`."""
    if record.local_path:
        return Path(record.local_path)
    return default_path(record, base_path)


# ============================================================================
# Change detection
# ============================================================================


@dataclass
class ChangeResult:
    """Classification of one fresh artifact against the registry."""

    record: ArtifactRecord
    change: ChangeType
    stored: Optional[ArtifactRecord] = None
    reasons: List[str] = field(default_factory=list)

    @property
    def reason(self) -> str:
        return ", ".join(self.reasons)


def _detect_changes(current: ArtifactRecord, stored: ArtifactRecord) -> List[str]:
    reasons: List[str] = []
    if current.content_length > 0 and stored.content_length > 0 and current.content_length != stored.content_length:
        reasons.append(f"size changed ({stored.content_length} -> {current.content_length})")
    if current.etag is not None and stored.etag is not None and current.etag != stored.etag:
        reasons.append("ETag changed")
    if (
        current.last_modified is not None
        and stored.last_modified is not None
        and current.last_modified > stored.last_modified
    ):
        reasons.append("last modified changed")
    return reasons


# ============================================================================
# Store
# ============================================================================


class FileRegistry:
    """URL-keyed JSON store of previously synchronised artifacts.

    Args:
        path: Registry JSON file. The parent directory is created on save.
        autoload: Read the file immediately.
    """

    def __init__(self, path: str | os.PathLike[str], *, autoload: bool = True) -> None:
        self.path = Path(path)
        self._records: Dict[str, ArtifactRecord] = {}
        self._lock = threading.RLock()
        if autoload:
            self.load()

    # ------------------------------------------------------------------ I/O

    def load(self) -> None:
        """Read the registry file; unreadable or corrupt files yield an empty registry."""
        with self._lock:
            self._records = {}
            if not self.path.exists() or self.path.stat().st_size == 0:
                logger.info("No existing registry found at %s - starting fresh", self.path.resolve())
                return
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
                if not isinstance(raw, dict):
                    raise ValueError("registry root must be a JSON object")
                records = {url: record_from_json(url, data) for url, data in raw.items()}
            except (OSError, ValueError, TypeError, AttributeError) as exc:
                logger.warning(
                    "Could not load registry from %s (%s); continuing with an empty registry",
                    self.path,
                    exc,
                )
                return
            self._records = records
            downloaded = sum(1 for record in records.values() if record.downloaded)
            logger.info("Loaded %d files from registry (%d marked as downloaded)", len(records), downloaded)

    def save(self) -> None:
        """Atomically write all records in :func:`sort_key` order."""
        with self._lock:
            ordered = sort_records(list(self._records.values()))
            payload = {record.url: record_to_json(record) for record in ordered}
            text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
            try:
                atomic_write_text(str(self.path), text)
            except OSError as exc:
                raise RegistryError(f"Could not save registry: {exc}", path=str(self.path)) from exc
            downloaded = sum(1 for record in ordered if record.downloaded)
            logger.info("Saved registry with %d files (%d downloaded) to %s", len(ordered), downloaded, self.path)

    # ------------------------------------------------------------------ access

    def get(self, url: str) -> Optional[ArtifactRecord]:
        with self._lock:
            return self._records.get(url)

    def register(self, record: ArtifactRecord) -> ArtifactRecord:
        """Store ``record``, keeping stored dates and version the fresh record lacks.

        The latest-release flag always comes from ``record``.
        """
        with self._lock:
            stored = self._records.get(record.url)
            if stored is not None:
                record.effective_date = record.effective_date or stored.effective_date
                record.publishing_date = record.publishing_date or stored.publishing_date
                record.version = record.version or stored.version
                if not record.category:
                    record.category = stored.category
            self._records[record.url] = record
            return record

    def records(self) -> List[ArtifactRecord]:
        with self._lock:
            return sort_records(list(self._records.values()))

    def is_empty(self) -> bool:
        with self._lock:
            return not self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._records

    def __iter__(self) -> Iterator[ArtifactRecord]:
        return iter(self.records())

    # ------------------------------------------------------------------ comparison

    def classify(
        self,
        current: ArtifactRecord,
        *,
        base_path: str | os.PathLike[str],
        verify_hashes: bool = False,
    ) -> ChangeResult:
        """Compare a freshly probed record with its stored counterpart.

        Args:
            current: Record built from the latest HEAD probe.
            base_path: Download base directory used to locate the stored file.
            verify_hashes: Re-hash the stored file and report CHANGED when it no
                longer matches the recorded digest.

        Returns:
            :class:`ChangeResult` describing NEW, CHANGED or UNCHANGED.
        """
        stored = self.get(current.url)
        if stored is None:
            return ChangeResult(current, ChangeType.NEW, None, ["not in registry"])
        if not stored.downloaded:
            return ChangeResult(current, ChangeType.NEW, stored, ["never downloaded"])

        location = expected_path(stored, base_path)
        if not location.is_file():
            return ChangeResult(current, ChangeType.NEW, stored, [f"missing on disk ({location})"])

        reasons = _detect_changes(current, stored)
        if not reasons and verify_hashes and stored.content_hash:
            actual = sha256_file(str(location))
            if actual != stored.content_hash:
                reasons.append("content hash mismatch")
        if reasons:
            return ChangeResult(current, ChangeType.CHANGED, stored, reasons)
        return ChangeResult(current, ChangeType.UNCHANGED, stored)

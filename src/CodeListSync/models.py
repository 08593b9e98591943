# === NAVMAP v1 ===
# {
#   "module": "CodeListSync.models",
#   "purpose": "Artifact records, resolved metadata tuples and the additive merge reducer.",
#   "sections": [
#     {
#       "id": "artifactmetadata",
#       "name": "ArtifactMetadata",
#       "anchor": "class-artifactmetadata",
#       "kind": "class"
#     },
#     {
#       "id": "merge",
#       "name": "merge",
#       "anchor": "function-merge",
#       "kind": "function"
#     },
#     {
#       "id": "changetype",
#       "name": "ChangeType",
#       "anchor": "class-changetype",
#       "kind": "class"
#     },
#     {
#       "id": "artifactrecord",
#       "name": "ArtifactRecord",
#       "anchor": "class-artifactrecord",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Artifact records, resolved metadata tuples and the additive merge reducer.

**Purpose**
-----------
Every stage of a synchronisation cycle speaks in terms of the types defined
here: the extractor produces :class:`ArtifactMetadata` tuples, the analyzer
turns hyperlinks into :class:`ArtifactRecord` instances, and the registry
persists those records between runs.

**Merge precedence**
--------------------
:func:`merge` is the single place where two metadata sources meet:

- a non-empty field on ``existing`` is never replaced by ``incoming``;
- empty fields on ``existing`` are filled from ``incoming``;
- ``is_latest_release`` is OR-ed, so it never reverts to ``False``.

Sources are applied in precedence order (HTML "Published:" text first,
filename-derived values last), so "first writer wins" is the same thing as
"highest precedence wins".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from CodeListSync.links import decode_filename, filename_from_url

__all__ = (
    "ArtifactMetadata",
    "ArtifactRecord",
    "ChangeType",
    "DownloadStatus",
    "MetadataMap",
    "merge",
)


@dataclass(frozen=True)
class ArtifactMetadata:
    """Business metadata resolved for a single artifact."""

    effective_date: Optional[date] = None
    """Date from which the artifact is authoritative."""

    publishing_date: Optional[date] = None
    """Date the artifact was made available."""

    version: Optional[str] = None
    """Free-form version string, e.g. ``"15"`` or ``"1.3.15"``."""

    is_latest_release: bool = False
    """Whether the source text marks the artifact as ``(latest version)``."""

    def is_empty(self) -> bool:
        return (
            self.effective_date is None
            and self.publishing_date is None
            and not self.version
            and not self.is_latest_release
        )


MetadataMap = dict[str, ArtifactMetadata]
"""URL to metadata mapping owned by one extraction pass."""


def merge(existing: Optional[ArtifactMetadata], incoming: Optional[ArtifactMetadata]) -> ArtifactMetadata:
    """Combine two metadata tuples without overwriting resolved fields.

    Args:
        existing: Metadata already associated with an artifact (higher precedence).
        incoming: Newly discovered metadata (lower precedence).

    Returns:
        Merged metadata; ``existing`` values win wherever they are non-empty.

    Examples:
        >>> a = ArtifactMetadata(version="15")
        >>> b = ArtifactMetadata(version="14", effective_date=date(2025, 11, 15))
        >>> merge(a, b).version, merge(a, b).effective_date
        ('15', datetime.date(2025, 11, 15))
    """
    if existing is None:
        return incoming or ArtifactMetadata()
    if incoming is None:
        return existing
    return ArtifactMetadata(
        effective_date=existing.effective_date or incoming.effective_date,
        publishing_date=existing.publishing_date or incoming.publishing_date,
        version=existing.version or incoming.version or None,
        is_latest_release=existing.is_latest_release or incoming.is_latest_release,
    )


class ChangeType(Enum):
    """Outcome of comparing a fresh probe against the registry."""

    NEW = "NEW"
    CHANGED = "CHANGED"
    UNCHANGED = "UNCHANGED"

    @property
    def needs_transfer(self) -> bool:
        return self is not ChangeType.UNCHANGED


@dataclass(eq=False)
class ArtifactRecord:
    """A single downloadable file referenced by the catalog.

    Identity is the URL alone: two records with the same URL compare equal
    whatever their other fields say, and ``url`` cannot be reassigned.
    """

    url: str
    filename: str = ""
    content_length: int = 0
    content_type: Optional[str] = None
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None
    effective_date: Optional[date] = None
    publishing_date: Optional[date] = None
    version: Optional[str] = None
    is_latest_release: bool = False
    category: str = ""
    downloaded: bool = False
    download_time: Optional[datetime] = None
    content_hash: Optional[str] = None
    actual_size: int = 0
    local_path: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.filename:
            self.filename = filename_from_url(self.url)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "url" and "url" in self.__dict__:
            raise AttributeError("ArtifactRecord.url is immutable")
        object.__setattr__(self, name, value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ArtifactRecord):
            return NotImplemented
        return self.url == other.url

    def __hash__(self) -> int:
        return hash(self.url)

    @property
    def decoded_filename(self) -> str:
        return decode_filename(self.filename)

    @property
    def metadata(self) -> ArtifactMetadata:
        return ArtifactMetadata(
            effective_date=self.effective_date,
            publishing_date=self.publishing_date,
            version=self.version,
            is_latest_release=self.is_latest_release,
        )

    def apply_metadata(self, incoming: Optional[ArtifactMetadata]) -> None:
        """Fill empty business fields from ``incoming`` using :func:`merge`."""
        merged = merge(self.metadata, incoming)
        self.effective_date = merged.effective_date
        self.publishing_date = merged.publishing_date
        self.version = merged.version
        self.is_latest_release = merged.is_latest_release


@dataclass(frozen=True)
class DownloadStatus:
    """Per-artifact outcome of a transfer, rendered into the downloads CSV."""

    succeeded: bool
    message: str = ""

    @classmethod
    def success(cls) -> DownloadStatus:
        return cls(True)

    @classmethod
    def failure(cls, message: str) -> DownloadStatus:
        return cls(False, message)

    @property
    def label(self) -> str:
        if self.succeeded:
            return "SUCCEEDED"
        return f"FAILED: {self.message}" if self.message else "FAILED"

"""Categorised report of every hyperlink on the catalog page.

The report is a diagnostic aid for catalog layout changes: it lists every
absolute link with its anchor text, bucketed by what the URL looks like,
so an operator can spot artifacts the link classifier no longer recognises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from CodeListSync.extraction import element_text
from CodeListSync.io_utils import atomic_write_text

__all__ = ("BUCKETS", "LinkReport", "bucket_for", "build_link_report", "write_link_report")

LOGGER = logging.getLogger(__name__)

BUCKETS: Tuple[Tuple[str, str], ...] = (
    ("eas", "EAS (ELECTRONIC ADDRESS SCHEME) LINKS"),
    ("en16931", "EN16931 CODE LISTS LINKS"),
    ("vatex", "VATEX (VAT EXEMPTION) LINKS"),
    ("validation", "VALIDATION ARTEFACTS (UBL/CII) LINKS"),
    ("genericodes", "GENERICODES LINKS"),
    ("guidance", "GUIDANCE DOCUMENTS LINKS"),
    ("other", "OTHER DOWNLOADABLE LINKS"),
    ("non_downloadable", "NON-DOWNLOADABLE LINKS (Navigation, etc.)"),
)

_OTHER_SUFFIXES = (".xlsx", ".zip", ".xml", ".pdf", ".xls", ".csv")


def bucket_for(url: str) -> str:
    """Bucket key for one absolute URL; the first matching rule wins."""
    lowered = url.lower()
    if "address" in lowered and "scheme" in lowered:
        return "eas"
    if "en16931" in lowered and "code" in lowered:
        return "en16931"
    if "exemption" in lowered or "vatex" in lowered:
        return "vatex"
    if "en16931-ubl" in lowered or "en16931-cii" in lowered:
        return "validation"
    if "genericodes" in lowered:
        return "genericodes"
    if "guidance" in lowered or "technical" in lowered or lowered.endswith(".pdf"):
        return "guidance"
    if lowered.endswith(_OTHER_SUFFIXES):
        return "other"
    return "non_downloadable"


@dataclass
class LinkReport:
    """Links grouped by bucket, each entry rendered as ``"<url> | <text>"``."""

    buckets: Dict[str, List[str]] = field(default_factory=lambda: {key: [] for key, _ in BUCKETS})
    total: int = 0
    unique: int = 0

    def counts(self) -> Dict[str, int]:
        return {key: len(entries) for key, entries in self.buckets.items()}


def build_link_report(soup: BeautifulSoup, base_url: str) -> LinkReport:
    report = LinkReport()
    seen = set()
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href:
            continue
        url = urljoin(base_url, href)
        report.total += 1
        seen.add(url)
        report.buckets[bucket_for(url)].append(f"{url} | {element_text(anchor)}")
    report.unique = len(seen)
    LOGGER.info("Found %d total links, %d unique links", report.total, report.unique)
    for key, count in report.counts().items():
        LOGGER.info("%s links: %d", key, count)
    return report


def write_link_report(report: LinkReport, path: Path, *, now: Optional[datetime] = None) -> Path:
    """Write the plain-text report, replacing any previous one."""
    stamp = (now or datetime.now()).isoformat(timespec="seconds")
    lines = [f"Registry Links Analysis - {stamp}", "=" * 80, ""]
    for key, title in BUCKETS:
        lines.extend([f"=== {title} ===", ""])
        entries = report.buckets.get(key, [])
        if key == "non_downloadable" and not entries:
            lines.append("(none - all links are downloadable resources)")
        lines.extend(entries)
        lines.append("")
    atomic_write_text(str(path), "\n".join(lines))
    LOGGER.info("Saved categorised links to %s", path)
    return Path(path)

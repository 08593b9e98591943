"""Phase 1: turn the catalog page into metadata-enriched artifact records.

The analyzer fetches the catalog page once, extracts the per-link metadata
map, probes every distinct downloadable link with ``HEAD`` and then fills
remaining gaps in a fixed order:

1. HTML metadata from :func:`CodeListSync.extraction.extract_metadata`;
2. filename fallbacks (:func:`CodeListSync.fallback.apply_fallbacks`);
3. publishing dates by effective date;
4. paired-archive propagation from canonical spreadsheets;
5. category labels.

Each step only fills empty fields, so earlier sources keep precedence.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional
from urllib.parse import urljoin

import httpx
import tenacity
from bs4 import BeautifulSoup

from CodeListSync.categories import detect_category
from CodeListSync.config import SyncConfig
from CodeListSync.errors import NetworkError, log_transfer_failure
from CodeListSync.extraction import extract_metadata, extract_publishing_dates
from CodeListSync.fallback import apply_fallbacks
from CodeListSync.http import fetch_document, probe
from CodeListSync.inventory import INVENTORY_HEADERS, inventory_row, write_with_latest_copy
from CodeListSync.links import is_downloadable
from CodeListSync.models import ArtifactRecord, MetadataMap
from CodeListSync.propagation import propagate_paired_metadata, propagate_publishing_dates
from CodeListSync.registry import sort_records

__all__ = ("discover_links", "RegistryAnalyzer")

LOGGER = logging.getLogger(__name__)


def discover_links(soup: BeautifulSoup, base_url: str) -> List[str]:
    """Distinct downloadable absolute URLs in document order."""
    seen: dict[str, None] = {}
    total = 0
    for anchor in soup.find_all("a", href=True):
        total += 1
        url = urljoin(base_url, anchor["href"].strip())
        if is_downloadable(url):
            seen.setdefault(url, None)
    LOGGER.info("Found %d total links, %d distinct downloadable", total, len(seen))
    return list(seen)


class RegistryAnalyzer:
    """Phase 1 driver.

    Args:
        config: Run configuration.
        client: HTTP client used for the page fetch and the probes.
        retrying: Shared tenacity controller; built per request when omitted.
    """

    def __init__(
        self,
        config: SyncConfig,
        client: httpx.Client,
        *,
        retrying: Optional[tenacity.Retrying] = None,
    ) -> None:
        self.config = config
        self.client = client
        self.retrying = retrying
        self.inventory_path: Optional[Path] = None

    def probe_all(self, urls: List[str], mapping: MetadataMap) -> List[ArtifactRecord]:
        """HEAD-probe every URL; failures are logged and skipped."""
        records: List[ArtifactRecord] = []
        for url in urls:
            try:
                record = probe(self.client, url, retrying=self.retrying)
            except NetworkError as exc:
                log_transfer_failure(LOGGER, url, stage="probe", exception=exc)
                continue
            record.apply_metadata(mapping.get(url))
            records.append(record)
        return records

    def enrich(self, records: List[ArtifactRecord], soup: BeautifulSoup) -> List[ArtifactRecord]:
        """Apply fallbacks, propagation and categories in precedence order."""
        apply_fallbacks(records)
        propagate_publishing_dates(records, extract_publishing_dates(soup))
        propagate_paired_metadata(records, strict=self.config.strict_propagation)
        for record in records:
            if not record.category:
                record.category = detect_category(record.filename, record.url)
        return sort_records(records)

    def analyze(self, *, write_inventory: bool = True) -> List[ArtifactRecord]:
        """Run Phase 1 and return the discovered records in registry order.

        Raises:
            NetworkError: If the catalog page itself cannot be fetched.
        """
        LOGGER.info("Phase 1: analysing catalog %s", self.config.registry_url)
        html, final_url = fetch_document(self.client, self.config.registry_url, retrying=self.retrying)
        soup = BeautifulSoup(html, "lxml")

        mapping = extract_metadata(soup, final_url)
        LOGGER.info("Extracted metadata for %d URLs from the page text", len(mapping))

        records = self.probe_all(discover_links(soup, final_url), mapping)
        records = self.enrich(records, soup)
        LOGGER.info("Phase 1 complete. Found %d downloadable files", len(records))

        if write_inventory:
            self.inventory_path = write_with_latest_copy(
                self.config.phase1_dir,
                "inventory",
                INVENTORY_HEADERS,
                [inventory_row(record) for record in records],
                write_latest=self.config.output.write_latest_copy,
            )
        return records

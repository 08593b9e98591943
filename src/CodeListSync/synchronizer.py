# === NAVMAP v1 ===
# {
#   "module": "CodeListSync.synchronizer",
#   "purpose": "Compare and download phases, full synchronisation cycles and scheduled mode",
#   "sections": [
#     {
#       "id": "syncresult",
#       "name": "SyncResult",
#       "anchor": "class-syncresult",
#       "kind": "class"
#     },
#     {
#       "id": "synchronizer",
#       "name": "Synchronizer",
#       "anchor": "class-synchronizer",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Compare and download phases, full cycles and scheduled mode.

**Responsibilities**
--------------------
- Phase 2 (:meth:`Synchronizer.compare`): seed an empty registry from the
  cumulative download history, classify every discovered artifact and write
  the diff export.
- Phase 3 (:meth:`Synchronizer.download`): gate on confirmation, fetch each
  selected artifact sequentially with a configurable pause, persist it
  atomically, and merge the result into the registry.
- Drive whole cycles (:meth:`Synchronizer.run_once`) and the scheduled loop
  (:meth:`Synchronizer.watch`).

**Durability**
--------------
The registry is saved after every successful transfer. An interrupted run
therefore leaves it describing exactly the transfers that completed; failed
transfers are never registered and come back as NEW on the next run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import httpx

from CodeListSync.analyzer import RegistryAnalyzer
from CodeListSync.categories import detect_category
from CodeListSync.config import SyncConfig
from CodeListSync.errors import CodeListSyncError, NetworkError, log_transfer_failure
from CodeListSync.http import build_retrying, create_client, stream_download
from CodeListSync.inventory import (
    DOWNLOAD_HEADERS,
    INVENTORY_HEADERS,
    append_cumulative,
    download_row,
    inventory_row,
    seed_registry_from_csv,
    write_with_latest_copy,
)
from CodeListSync.models import ArtifactRecord, ChangeType, DownloadStatus
from CodeListSync.registry import ChangeResult, FileRegistry, default_path

__all__ = ("SyncResult", "DownloadOutcome", "Synchronizer")

LOGGER = logging.getLogger(__name__)

ConfirmCallback = Callable[[Sequence[ChangeResult]], bool]
DownloadOutcome = Tuple[ArtifactRecord, DownloadStatus]


@dataclass
class SyncResult:
    """Summary of one synchronisation cycle."""

    discovered: int = 0
    new: int = 0
    changed: int = 0
    unchanged: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: bool = False
    outcomes: List[DownloadOutcome] = field(default_factory=list)

    @property
    def scheduled(self) -> int:
        return self.new + self.changed

    @property
    def ok(self) -> bool:
        return self.failed == 0


class Synchronizer:
    """Runs compare/download phases against one registry.

    Args:
        config: Run configuration.
        client: HTTP client; one is created (and closed by :meth:`close`) when omitted.
        registry: Registry instance; loaded from ``config.registry_path`` when omitted.
        confirm: Called with the scheduled changes before any download; returning
            ``False`` cancels Phase 3. Ignored when ``auto_confirm_downloads`` is set.
        sleep: Sleep function used for pacing, retries and scheduling.
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        client: Optional[httpx.Client] = None,
        registry: Optional[FileRegistry] = None,
        confirm: Optional[ConfirmCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self._owns_client = client is None
        self.client = client if client is not None else create_client(config.http)
        self.registry = registry if registry is not None else FileRegistry(config.registry_path)
        self.confirm = confirm
        self.sleep = sleep
        self.retrying = build_retrying(config.http, sleep=sleep)
        self.analyzer = RegistryAnalyzer(config, self.client, retrying=self.retrying)
        self.diff_path: Optional[Path] = None
        self.downloads_path: Optional[Path] = None

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "Synchronizer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------ phases

    def analyze(self) -> List[ArtifactRecord]:
        """Phase 1: discover and enrich the catalog's artifacts."""
        return self.analyzer.analyze()

    def classify(self, records: Sequence[ArtifactRecord]) -> List[ChangeResult]:
        """Classify every record against the registry without writing anything."""
        return [
            self.registry.classify(
                record,
                base_path=self.config.download_base_path,
                verify_hashes=self.config.verify_hashes,
            )
            for record in records
        ]

    def compare(self, records: Sequence[ArtifactRecord]) -> List[ChangeResult]:
        """Phase 2: return the NEW and CHANGED artifacts and write the diff export."""
        LOGGER.info("Phase 2: comparing %d files against the registry", len(records))
        seed_registry_from_csv(
            self.registry, self.config.cumulative_csv_path, Path(self.config.download_base_path)
        )

        results = self.classify(records)
        transfers = [result for result in results if result.change.needs_transfer]
        for result in transfers:
            LOGGER.info(
                "%s: %s (%s)", result.change.value, result.record.decoded_filename, result.reason
            )

        self.diff_path = write_with_latest_copy(
            self.config.phase2_dir,
            "diff",
            INVENTORY_HEADERS,
            [inventory_row(result.record) for result in transfers],
            write_latest=self.config.output.write_latest_copy,
        )
        LOGGER.info(
            "Phase 2 complete. %d of %d files need download", len(transfers), len(results)
        )
        return transfers

    def _transfer(self, record: ArtifactRecord) -> DownloadStatus:
        record.category = record.category or detect_category(record.filename, record.url)
        destination = default_path(record, self.config.download_base_path)
        LOGGER.info("Downloading %s -> %s", record.decoded_filename, destination)
        try:
            result = stream_download(
                self.client,
                record.url,
                str(destination),
                retrying=self.retrying,
                show_progress=self.config.show_progress,
                verify_content_length=self.config.http.verify_content_length,
            )
        except (NetworkError, OSError) as exc:
            reason = log_transfer_failure(LOGGER, record.url, stage="download", exception=exc)
            return DownloadStatus.failure(reason)

        record.downloaded = True
        record.download_time = datetime.now()
        record.content_hash = result.sha256
        record.actual_size = result.bytes_written
        record.local_path = str(destination)
        self.registry.register(record)
        self.registry.save()
        LOGGER.info("File saved (%d bytes, sha256 %s...)", result.bytes_written, result.sha256[:8])
        return DownloadStatus.success()

    def download(self, changes: Sequence[ChangeResult]) -> Optional[List[DownloadOutcome]]:
        """Phase 3: fetch every scheduled artifact.

        Returns:
            One ``(record, status)`` pair per attempted transfer, or ``None``
            when the confirmation callback declined.
        """
        if changes and not self.config.auto_confirm_downloads and self.confirm is not None:
            if not self.confirm(changes):
                LOGGER.info("Download cancelled by user")
                return None

        outcomes: List[DownloadOutcome] = []
        if changes:
            LOGGER.info("Phase 3: downloading %d files to %s", len(changes), self.config.download_base_path)
        else:
            LOGGER.info("Phase 3: no files to download")

        for index, change in enumerate(changes):
            if index and self.config.download_delay_seconds:
                LOGGER.debug("Waiting %ss before next download", self.config.download_delay_seconds)
                self.sleep(self.config.download_delay_seconds)
            status = self._transfer(change.record)
            outcomes.append((change.record, status))

        rows = [download_row(record, status) for record, status in outcomes]
        self.downloads_path = write_with_latest_copy(
            self.config.phase3_dir,
            "downloads",
            DOWNLOAD_HEADERS,
            rows,
            write_latest=True,
        )
        succeeded = [row for (_record, status), row in zip(outcomes, rows) if status.succeeded]
        if succeeded:
            append_cumulative(self.config.cumulative_csv_path, succeeded)

        LOGGER.info(
            "Phase 3 complete. %d succeeded, %d failed",
            len(succeeded),
            len(outcomes) - len(succeeded),
        )
        return outcomes

    # ------------------------------------------------------------------ cycles

    def run_once(self) -> SyncResult:
        """Run analyze, compare and download once."""
        records = self.analyze()
        changes = self.compare(records)

        result = SyncResult(discovered=len(records))
        result.new = sum(1 for change in changes if change.change is ChangeType.NEW)
        result.changed = sum(1 for change in changes if change.change is ChangeType.CHANGED)
        result.unchanged = len(records) - len(changes)

        outcomes = self.download(changes)
        if outcomes is None:
            result.cancelled = True
            return result
        result.outcomes = outcomes
        result.succeeded = sum(1 for _record, status in outcomes if status.succeeded)
        result.failed = len(outcomes) - result.succeeded
        LOGGER.info(
            "Cycle complete: %d discovered, %d new, %d changed, %d unchanged, %d downloaded, %d failed",
            result.discovered,
            result.new,
            result.changed,
            result.unchanged,
            result.succeeded,
            result.failed,
        )
        return result

    def watch(
        self,
        initial_delay: float = 0.0,
        interval: Optional[float] = None,
        *,
        max_cycles: Optional[int] = None,
        on_cycle: Optional[Callable[[SyncResult], None]] = None,
    ) -> List[SyncResult]:
        """Run :meth:`run_once` on a fixed schedule until ``max_cycles`` or Ctrl+C.

        Args:
            initial_delay: Seconds to wait before the first cycle.
            interval: Seconds between cycle starts; ``check_interval_seconds`` by default.
            max_cycles: Stop after this many cycles; run forever when ``None``.
            on_cycle: Called with each completed cycle's result.

        Returns:
            Results of the cycles that completed. An unbounded schedule only
            retains the most recent result.
        """
        period = float(interval if interval is not None else self.config.check_interval_seconds)
        LOGGER.info("Scheduled mode: first cycle in %ss, then every %ss", initial_delay, period)
        if initial_delay:
            self.sleep(initial_delay)

        results: List[SyncResult] = []
        cycles = 0
        try:
            while max_cycles is None or cycles < max_cycles:
                started = time.monotonic()
                try:
                    result = self.run_once()
                    if max_cycles is None:
                        results.clear()
                    results.append(result)
                    if on_cycle is not None:
                        on_cycle(result)
                except (CodeListSyncError, httpx.HTTPError, OSError, ValueError) as exc:
                    LOGGER.error("Synchronisation cycle failed: %s", exc, exc_info=True)
                cycles += 1
                if max_cycles is not None and cycles >= max_cycles:
                    break
                self.sleep(max(0.0, period - (time.monotonic() - started)))
        except KeyboardInterrupt:
            LOGGER.info("Scheduled mode interrupted after %d cycles", cycles)
        return results

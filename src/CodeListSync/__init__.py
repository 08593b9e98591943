"""Public API for the CodeListSync incremental code-list mirror.

This facade exposes the pieces external callers need to run a
synchronisation cycle programmatically: configuration loading, the
:class:`Synchronizer` driver, the persistent :class:`FileRegistry` and the
record types flowing between them.
"""

from __future__ import annotations

from CodeListSync.config import SyncConfig, load_config
from CodeListSync.errors import CodeListSyncError, ConfigError, NetworkError
from CodeListSync.models import ArtifactMetadata, ArtifactRecord, ChangeType, DownloadStatus
from CodeListSync.registry import ChangeResult, FileRegistry
from CodeListSync.synchronizer import SyncResult, Synchronizer

__version__ = "1.0.0"

__all__ = [
    "__version__",
    "ArtifactMetadata",
    "ArtifactRecord",
    "ChangeResult",
    "ChangeType",
    "CodeListSyncError",
    "ConfigError",
    "DownloadStatus",
    "FileRegistry",
    "NetworkError",
    "SyncConfig",
    "SyncResult",
    "Synchronizer",
    "load_config",
]

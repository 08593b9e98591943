"""
Pydantic v2 Configuration Models for CodeListSync

Provides strict, typed configuration for every synchronisation subsystem:
- HTTP client settings (timeouts, User-Agent, retry budget, TLS)
- CSV output locations for the three phases
- Top-level SyncConfig as single source of truth for one run

All models use extra="forbid" for strict validation. Environment variables
and CLI overrides follow: file < env < CLI precedence.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_REGISTRY_URL = (
    "https://ec.europa.eu/digital-building-blocks/sites/spaces/DIGITAL/pages/467108974/"
    "Registry+of+supporting+artefacts+to+implement+EN16931"
)
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; CodeListSync/1.0; EN16931 code list mirror)"


class HttpSettings(BaseModel):
    """HTTP client configuration."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    connect_timeout_ms: int = Field(default=30000, description="Connect timeout in milliseconds")
    read_timeout_ms: int = Field(default=60000, description="Read timeout in milliseconds")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent header")
    max_attempts: int = Field(default=3, description="Attempts per request, first try included")
    backoff_max_seconds: float = Field(default=30.0, description="Upper bound for one retry wait")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")
    verify_content_length: bool = Field(
        default=True, description="Verify Content-Length matches (skipped for encoded bodies)"
    )

    @field_validator("connect_timeout_ms", "read_timeout_ms")
    @classmethod
    def validate_timeouts(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Timeouts must be > 0")
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    @field_validator("backoff_max_seconds")
    @classmethod
    def validate_backoff(cls, v: float) -> float:
        if v < 0:
            raise ValueError("backoff_max_seconds must be >= 0")
        return v

    @property
    def connect_timeout_s(self) -> float:
        return self.connect_timeout_ms / 1000.0

    @property
    def read_timeout_s(self) -> float:
        return self.read_timeout_ms / 1000.0


class OutputSettings(BaseModel):
    """Where the per-phase CSV exports are written."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    csv_output_base_path: str = Field(
        default="src/main/resources",
        description="Base directory holding phase1/, phase2/ and phase3/",
    )
    write_latest_copy: bool = Field(
        default=True, description="Also write <base>-latest.csv next to each timestamped export"
    )


class SyncConfig(BaseModel):
    """
    Complete configuration for one synchronisation deployment.

    Single source of truth for catalog location, storage paths, pacing and
    behaviour switches.

    Example:
        config = SyncConfig(download_base_path="/srv/codelists")
        config.registry_path  # /srv/downloaded-files.json
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    registry_url: str = Field(default=DEFAULT_REGISTRY_URL, description="Catalog page to analyse")
    download_base_path: str = Field(
        default="downloaded-files", description="Root directory for downloaded artifacts"
    )
    registry_file_path: Optional[str] = Field(
        default=None,
        description="Registry JSON; defaults to downloaded-files.json beside the download directory",
    )
    check_interval_seconds: int = Field(default=86400, description="Interval between watch cycles")
    download_delay_seconds: float = Field(default=1.0, description="Pause between successive downloads")
    auto_confirm_downloads: bool = Field(default=False, description="Skip the download confirmation")
    verify_hashes: bool = Field(
        default=False, description="Re-hash stored files and treat a digest mismatch as CHANGED"
    )
    strict_propagation: bool = Field(
        default=False, description="Pair archives with spreadsheets on exact dates only"
    )
    show_progress: bool = Field(default=False, description="Show a tqdm bar per download")

    http: HttpSettings = Field(default_factory=HttpSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)

    @field_validator("registry_url")
    @classmethod
    def validate_registry_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("registry_url must be an http(s) URL")
        return v

    @field_validator("check_interval_seconds")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("check_interval_seconds must be > 0")
        return v

    @field_validator("download_delay_seconds")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("download_delay_seconds must be >= 0")
        return v

    @property
    def registry_path(self) -> Path:
        if self.registry_file_path:
            return Path(self.registry_file_path)
        base = Path(self.download_base_path).resolve()
        return base.parent / "downloaded-files.json"

    @property
    def cumulative_csv_path(self) -> Path:
        return self.registry_path.parent / "downloaded-files.csv"

    @property
    def phase1_dir(self) -> Path:
        return Path(self.output.csv_output_base_path) / "phase1"

    @property
    def phase2_dir(self) -> Path:
        return Path(self.output.csv_output_base_path) / "phase2"

    @property
    def phase3_dir(self) -> Path:
        return Path(self.output.csv_output_base_path) / "phase3"

    def config_hash(self) -> str:
        """
        Compute deterministic SHA256 hash of config for reproducibility.

        Returns:
            Hex-encoded SHA256 hash of normalized config JSON.
        """
        normalized = json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()

"""Tests for configuration models and file/env/CLI precedence."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from CodeListSync.config import (
    DEFAULT_REGISTRY_URL,
    HttpSettings,
    SyncConfig,
    export_config_schema,
    load_config,
    validate_config_file,
)
from CodeListSync.errors import ConfigError


def _write_yaml(path: Path, data: dict) -> str:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return str(path)


class TestModels:
    """Test defaults, validators and derived paths."""

    def test_defaults(self):
        cfg = SyncConfig()
        assert cfg.registry_url == DEFAULT_REGISTRY_URL
        assert cfg.check_interval_seconds == 86400
        assert cfg.download_delay_seconds == 1.0
        assert cfg.auto_confirm_downloads is False
        assert cfg.verify_hashes is False
        assert cfg.http.max_attempts == 3
        assert cfg.output.write_latest_copy is True

    def test_registry_path_beside_download_dir(self, tmp_path):
        cfg = SyncConfig(download_base_path=str(tmp_path / "mirror" / "files"))
        root = tmp_path.resolve() / "mirror"
        assert cfg.registry_path == root / "downloaded-files.json"
        assert cfg.cumulative_csv_path == root / "downloaded-files.csv"

    def test_explicit_registry_path(self, tmp_path):
        cfg = SyncConfig(registry_file_path=str(tmp_path / "state.json"))
        assert cfg.registry_path == tmp_path / "state.json"
        assert cfg.cumulative_csv_path == tmp_path / "downloaded-files.csv"

    def test_phase_dirs(self):
        cfg = SyncConfig()
        assert cfg.phase1_dir == Path("src/main/resources/phase1")
        assert cfg.phase3_dir == Path("src/main/resources/phase3")

    def test_timeouts_in_seconds(self):
        http = HttpSettings(connect_timeout_ms=1500, read_timeout_ms=2500)
        assert http.connect_timeout_s == 1.5
        assert http.read_timeout_s == 2.5

    @pytest.mark.parametrize(
        "overrides",
        [
            {"registry_url": "ftp://host/catalog"},
            {"check_interval_seconds": 0},
            {"download_delay_seconds": -1},
            {"http": {"max_attempts": 0}},
            {"http": {"read_timeout_ms": 0}},
            {"unknown_option": True},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigError):
            load_config(cli_overrides=overrides, environ={})

    def test_config_hash_is_stable(self):
        assert SyncConfig().config_hash() == SyncConfig().config_hash()
        assert SyncConfig().config_hash() != SyncConfig(verify_hashes=True).config_hash()


class TestLoading:
    """Test composition of file, environment and CLI values."""

    def test_precedence(self, tmp_path):
        path = _write_yaml(
            tmp_path / "sync.yaml",
            {"download_delay_seconds": 5, "check_interval_seconds": 600, "http": {"max_attempts": 2}},
        )
        environ = {
            "CLSYNC_DOWNLOAD_DELAY_SECONDS": "2",
            "CLSYNC_HTTP__MAX_ATTEMPTS": "4",
            "CLSYNC_AUTO_CONFIRM_DOWNLOADS": "true",
            "UNRELATED": "ignored",
        }
        cfg = load_config(path, cli_overrides={"download_delay_seconds": 3.5}, environ=environ)
        assert cfg.download_delay_seconds == 3.5
        assert cfg.check_interval_seconds == 600
        assert cfg.http.max_attempts == 4
        assert cfg.auto_confirm_downloads is True

    def test_none_cli_values_do_not_mask(self, tmp_path):
        path = _write_yaml(tmp_path / "sync.yaml", {"download_base_path": "/srv/codelists"})
        cfg = load_config(path, cli_overrides={"download_base_path": None}, environ={})
        assert cfg.download_base_path == "/srv/codelists"

    def test_json_file(self, tmp_path):
        path = tmp_path / "sync.json"
        path.write_text(json.dumps({"verify_hashes": True}), encoding="utf-8")
        assert load_config(str(path), environ={}).verify_hashes is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(str(tmp_path / "missing.yaml"), environ={})

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "sync.toml"
        path.write_text("x = 1", encoding="utf-8")
        with pytest.raises(ConfigError, match="Unsupported"):
            load_config(str(path), environ={})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "sync.yaml"
        path.write_text("http: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(str(path), environ={})

    def test_validate_ignores_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CLSYNC_NOT_A_FIELD", "1")
        path = _write_yaml(tmp_path / "sync.yaml", {"verify_hashes": True})
        assert validate_config_file(path) is True

    def test_schema_lists_fields(self):
        schema = export_config_schema()
        assert "registry_url" in schema["properties"]
        assert "download_delay_seconds" in schema["properties"]

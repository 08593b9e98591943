"""Tests for the Typer CLI: config commands and full runs over a fake catalog."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
import yaml
from typer.testing import CliRunner

from CodeListSync.cli import app
from CodeListSync.http import create_client

runner = CliRunner()

EAS_V14_PATH = "/download/attachments/467108974/eas-codes-v14.xlsx"


@pytest.fixture
def config_file(tmp_path: Path, config) -> str:
    data = config.model_dump(mode="json")
    data["auto_confirm_downloads"] = False
    path = tmp_path / "sync.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return str(path)


@pytest.fixture(autouse=True)
def fake_transport(monkeypatch, catalog):
    """Route every client the CLI builds to the fake catalog."""

    def _create(settings=None):
        return create_client(settings, transport=httpx.MockTransport(catalog.handler))

    monkeypatch.setattr("CodeListSync.cli.create_client", _create)


class TestConfigCommands:
    """Tests for print-config, validate-config and schema."""

    def test_print_config_raw(self, config_file):
        result = runner.invoke(app, ["print-config", "-c", config_file, "--raw"])
        assert result.exit_code == 0
        assert '"registry_url": "https://registry.example.test/catalog"' in result.stdout

    def test_validate_config_ok(self, config_file):
        result = runner.invoke(app, ["validate-config", config_file])
        assert result.exit_code == 0
        assert "Config valid" in result.stdout

    def test_validate_config_rejects_unknown_keys(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("registry_url: https://host/catalog\nnot_a_setting: 1\n", encoding="utf-8")
        result = runner.invoke(app, ["validate-config", str(path)])
        assert result.exit_code == 1
        assert "Invalid" in result.stdout

    def test_schema_to_file(self, tmp_path):
        target = tmp_path / "schema.json"
        result = runner.invoke(app, ["schema", "--output", str(target)])
        assert result.exit_code == 0
        assert "registry_url" in json.loads(target.read_text())["properties"]


class TestRunCommands:
    """Tests for analyze, compare, run, download and links."""

    def test_run_with_yes(self, config_file, config):
        result = runner.invoke(app, ["run", "-c", config_file, "--yes"])
        assert result.exit_code == 0, result.stdout
        assert "Discovered: 2" in result.stdout
        assert "Downloaded: 2" in result.stdout
        assert (Path(config.download_base_path) / "EAS code list" / "eas-codes.xlsx").exists()

    def test_run_declined_at_prompt(self, config_file, config):
        result = runner.invoke(app, ["run", "-c", config_file], input="n\n")
        assert result.exit_code == 0
        assert "Download cancelled" in result.stdout
        assert not Path(config.download_base_path).exists()

    def test_compare_after_run(self, config_file):
        runner.invoke(app, ["run", "-c", config_file, "--yes"])
        result = runner.invoke(app, ["compare", "-c", config_file])
        assert result.exit_code == 0
        assert "Everything is up to date" in result.stdout

    def test_analyze(self, config_file, config):
        result = runner.invoke(app, ["analyze", "-c", config_file])
        assert result.exit_code == 0
        assert (config.phase1_dir / "inventory-latest.csv").exists()

    def test_download_failure_exit_code(self, config_file, config, catalog):
        catalog.artifacts[EAS_V14_PATH].get_status = 404
        result = runner.invoke(app, ["download", "-c", config_file, "--yes"])
        assert result.exit_code == 1
        assert (Path(config.download_base_path) / "EAS code list" / "eas-codes.xlsx").exists()

    def test_links_report(self, config_file, tmp_path):
        target = tmp_path / "links.txt"
        result = runner.invoke(app, ["links", "-c", config_file, "--output", str(target)])
        assert result.exit_code == 0
        assert "EAS (ELECTRONIC ADDRESS SCHEME) LINKS" in target.read_text(encoding="utf-8")

    def test_unreachable_catalog(self, config_file, catalog):
        catalog.page_status = 404
        result = runner.invoke(app, ["run", "-c", config_file, "--yes"])
        assert result.exit_code == 1
        assert "Error" in result.stdout

    def test_missing_config(self, tmp_path):
        result = runner.invoke(app, ["analyze", "-c", str(tmp_path / "missing.yaml")])
        assert result.exit_code == 1

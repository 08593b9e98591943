"""
Shared fixtures for the CodeListSync suite.

The fixtures model a small catalog host: one HTML page listing two EAS
spreadsheets, HEAD/GET endpoints for each artifact, and a configuration
whose download, registry and CSV locations all live under ``tmp_path``.
Tests mutate :class:`FakeCatalog` to simulate changed, missing or failing
artifacts between runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from CodeListSync.config import OutputSettings, SyncConfig
from CodeListSync.http import create_client
from CodeListSync.synchronizer import Synchronizer

CATALOG_URL = "https://registry.example.test/catalog"
EAS_PATH = "/download/attachments/467108974/eas-codes.xlsx"
EAS_V14_PATH = "/download/attachments/467108974/eas-codes-v14.xlsx"

CATALOG_HTML = f"""
<html>
  <body>
    <h2>Electronic Address Scheme</h2>
    <p>The EAS code list enumerates the electronic address schemes.</p>
    <ul>
      <li>15/11/25 | Published: 23/10/25 | EAS code list - version 15.0 (latest version)
        <a href="{EAS_PATH}">EAS code list</a></li>
      <li>15/05/25 | Published: 10/04/25 | EAS code list - version 14
        <a href="{EAS_V14_PATH}">EAS code list v14</a></li>
    </ul>
    <p><a href="/pages/viewpage.action?pageId=1">Back to the space</a></p>
  </body>
</html>
"""


@dataclass
class FakeArtifact:
    """One downloadable file served by :class:`FakeCatalog`."""

    body: bytes
    etag: Optional[str] = None
    last_modified: str = "Thu, 23 Oct 2025 08:30:00 GMT"
    head_status: int = 200
    get_status: int = 200
    statuses: List[int] = field(default_factory=list)

    def next_get_status(self) -> int:
        return self.statuses.pop(0) if self.statuses else self.get_status


@dataclass
class FakeCatalog:
    """Mutable catalog host backing an ``httpx.MockTransport``."""

    html: str = CATALOG_HTML
    page_status: int = 200
    artifacts: Dict[str, FakeArtifact] = field(default_factory=dict)
    requests: List[Tuple[str, str]] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))
        if path == "/catalog":
            if self.page_status != 200:
                return httpx.Response(self.page_status)
            return httpx.Response(200, text=self.html, headers={"Content-Type": "text/html"})

        artifact = self.artifacts.get(path)
        if artifact is None:
            return httpx.Response(404)
        if request.method == "HEAD":
            if artifact.head_status != 200:
                return httpx.Response(artifact.head_status)
            headers = {
                "Content-Length": str(len(artifact.body)),
                "Content-Type": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
                "Last-Modified": artifact.last_modified,
            }
            if artifact.etag:
                headers["ETag"] = artifact.etag
            return httpx.Response(200, headers=headers)
        status = artifact.next_get_status()
        if status != 200:
            return httpx.Response(status)
        return httpx.Response(200, content=artifact.body)

    def count(self, method: str, path: str) -> int:
        return sum(1 for entry in self.requests if entry == (method, path))


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog(
        artifacts={
            EAS_PATH: FakeArtifact(body=b"x" * 100, etag='"eas-15"'),
            EAS_V14_PATH: FakeArtifact(body=b"y" * 80, etag='"eas-14"'),
        }
    )


@pytest.fixture
def config(tmp_path: Path) -> SyncConfig:
    """Configuration rooted in ``tmp_path`` with no pacing between downloads."""
    return SyncConfig(
        registry_url=CATALOG_URL,
        download_base_path=str(tmp_path / "downloads"),
        download_delay_seconds=0,
        auto_confirm_downloads=True,
        output=OutputSettings(csv_output_base_path=str(tmp_path / "resources")),
    )


@pytest.fixture
def client(catalog: FakeCatalog, config: SyncConfig):
    http_client = create_client(config.http, transport=httpx.MockTransport(catalog.handler))
    yield http_client
    http_client.close()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def make_sync(config: SyncConfig, client: httpx.Client, sleeps: List[float]) -> Callable[..., Synchronizer]:
    """Factory building a :class:`Synchronizer` over the fake catalog.

    Keyword arguments override the fixture configuration, e.g.
    ``make_sync(auto_confirm_downloads=False, confirm=...)``.
    """

    def _make(confirm=None, **overrides) -> Synchronizer:
        cfg = config.model_copy(update=overrides) if overrides else config
        return Synchronizer(cfg, client=client, confirm=confirm, sleep=sleeps.append)

    return _make

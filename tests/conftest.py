"""
Shared test configuration and fixtures for the email conversion tests.
"""

import asyncio
import io
import zipfile
from typing import Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from app import app
from emailconvert.router import get_uploader
from emailconvert.utils.archive import ArchiveEntry
from emailconvert.utils.error_handling import UploadAuthFailed
from emailconvert.utils.uploader import ContentAddressedUploader, StorageBackend


CDN_BASE = "https://cdn.example.com/emails"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"png-body"
JPG_BYTES = b"\xff\xd8\xff\xe0" + b"jpeg-body"


# ===== FAKE STORAGE BACKEND =====

class FakeBackend(StorageBackend):
    """
    In-memory storage backend.

    Records every call and can be told to fail for specific keys or to
    reject all credentials.
    """

    def __init__(self, supports_lookup: bool = True, delay: float = 0.0):
        self.supports_lookup = supports_lookup
        self.delay = delay
        self.records: Dict[str, str] = {}
        self.store_calls: List[Tuple[str, str]] = []
        self.probe_calls: List[str] = []
        self.fail_keys: Dict[str, Exception] = {}
        self.reject_credentials = False

    def url_for(self, key: str) -> str:
        return f"{CDN_BASE}/{key.rsplit('/', 1)[-1]}"

    async def probe_exists(self, key: str) -> Optional[str]:
        self.probe_calls.append(key)
        if self.reject_credentials:
            raise UploadAuthFailed("Invalid API Key")
        return self.records.get(key)

    async def store(self, key: str, data: bytes, filename: str = "") -> str:
        self.store_calls.append((key, filename))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.reject_credentials:
            raise UploadAuthFailed("Invalid API Key")
        if key in self.fail_keys:
            raise self.fail_keys[key]
        self.records[key] = self.url_for(key)
        return self.records[key]


# ===== BUNDLE HELPERS =====

def make_html(*image_paths: str, preload: Tuple[str, ...] = ()) -> str:
    """Build a small email document referencing the given images."""
    links = "".join(f'<link rel="preload" as="image" href="{path}">' for path in preload)
    imgs = "".join(f'<img src="{path}" alt="">' for path in image_paths)
    return f"<!DOCTYPE html><html><head>{links}</head><body>{imgs}</body></html>"


def make_zip(files: Dict[str, bytes]) -> bytes:
    """Build a ZIP archive in memory."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def entry(path: str, content: bytes = PNG_BYTES, field_name: Optional[str] = None) -> ArchiveEntry:
    return ArchiveEntry(path=path, content=content, field_name=field_name)


# ===== FIXTURES =====

@pytest.fixture
def backend():
    """Fresh in-memory storage backend."""
    return FakeBackend()


@pytest.fixture
def uploader(backend):
    """Uploader wired to the in-memory backend."""
    return ContentAddressedUploader(backend)


@pytest.fixture
def simple_bundle() -> List[ArchiveEntry]:
    """index.html referencing one image, plus that image."""
    return [
        entry("index.html", make_html("images/a.png").encode("utf-8")),
        entry("images/a.png", PNG_BYTES),
    ]


@pytest.fixture
def client(uploader):
    """FastAPI test client using the in-memory backend (lifespan not started)."""
    app.dependency_overrides[get_uploader] = lambda: uploader
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()

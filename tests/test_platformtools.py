"""Tests for PlatformTools — download, checksum verification and extraction."""

from __future__ import annotations

import hashlib
import io
import os
import zipfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from flasher.lifecycle import platformtools
from flasher.lifecycle.platformtools import (
    SHA256_SUMS,
    PlatformTools,
    tools_version_for_image,
)
from flasher.models import PlatformToolsError


# ── Helpers ──────────────────────────────────────────────────────────────


def _tools_zip() -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("platform-tools/adb", "#!/bin/sh\n")
        zf.writestr("platform-tools/fastboot", "#!/bin/sh\n")
    return buf.getvalue()


ZIP_BYTES = _tools_zip()
ZIP_SHA = hashlib.sha256(ZIP_BYTES).hexdigest()


class _Chunks:
    def __init__(self, chunks: list[bytes]):
        self._chunks = list(chunks)

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)


def _patch_client(body: bytes = ZIP_BYTES, status_error: Exception | None = None):
    """Patch httpx.AsyncClient so client.stream() yields ``body``."""
    mock_resp = MagicMock()
    if status_error:
        mock_resp.raise_for_status = MagicMock(side_effect=status_error)
    mock_resp.aiter_bytes = MagicMock(side_effect=lambda size=None: _Chunks([body[:10], body[10:]]))

    stream_cm = MagicMock()
    stream_cm.__aenter__ = AsyncMock(return_value=mock_resp)
    stream_cm.__aexit__ = AsyncMock(return_value=False)

    mock_client = MagicMock()
    mock_client.stream = MagicMock(return_value=stream_cm)

    patcher = patch("flasher.lifecycle.platformtools.httpx.AsyncClient")
    mock_cls = patcher.start()
    mock_cls.return_value.__aenter__ = AsyncMock(return_value=mock_client)
    mock_cls.return_value.__aexit__ = AsyncMock(return_value=False)
    return patcher, mock_client


@pytest.fixture
def tools(tmp_path: Path, monkeypatch) -> PlatformTools:
    pt = PlatformTools("30.0.4", "linux", tmp_path / "cache", tmp_path / "extract")
    monkeypatch.setitem(SHA256_SUMS, pt.filename, ZIP_SHA)
    return pt


# ── naming ───────────────────────────────────────────────────────────────


class TestNaming:
    def test_filename_and_uri(self, tmp_path):
        pt = PlatformTools("29.0.6", "darwin", tmp_path, tmp_path)
        assert pt.filename == "platform-tools_r29.0.6-darwin.zip"
        assert pt.download_uri == "https://dl.google.com/android/repository/platform-tools_r29.0.6-darwin.zip"

    def test_known_checksum(self, tmp_path):
        pt = PlatformTools("30.0.4", "linux", tmp_path, tmp_path)
        assert pt.sha256 == "5be24ed897c7e061ba800bfa7b9ebb4b0f8958cc062f4b2202701e02f2725891"

    def test_unknown_version(self, tmp_path):
        pt = PlatformTools("99.0.0", "linux", tmp_path, tmp_path)
        with pytest.raises(PlatformToolsError, match="no known checksum"):
            pt.sha256

    def test_path(self, tmp_path):
        pt = PlatformTools("30.0.4", "linux", tmp_path, tmp_path / "x")
        assert pt.path() == tmp_path / "x" / "platform-tools"


class TestToolsVersion:
    def test_jasmine_file(self, tmp_path):
        image = tmp_path / "jasmine_sprout-factory-1.zip"
        image.touch()
        assert tools_version_for_image(image) == "29.0.6"

    def test_other_file(self, tmp_path):
        image = tmp_path / "crosshatch-factory-1.zip"
        image.touch()
        assert tools_version_for_image(image) == "30.0.4"

    def test_directory_uses_default(self, tmp_path):
        directory = tmp_path / "jasmine-images"
        directory.mkdir()
        assert tools_version_for_image(directory) == "30.0.4"


# ── initialize ───────────────────────────────────────────────────────────


class TestInitialize:
    async def test_downloads_and_extracts(self, tools):
        patcher, client = _patch_client()
        try:
            await tools.initialize()
        finally:
            patcher.stop()
        client.stream.assert_called_once_with("GET", tools.download_uri)
        assert tools.zip_file.read_bytes() == ZIP_BYTES
        assert (tools.path() / "adb").is_file()
        assert os.access(tools.path() / "fastboot", os.X_OK)

    async def test_reuses_verified_cache(self, tools):
        tools.cache_dir.mkdir(parents=True)
        tools.zip_file.write_bytes(ZIP_BYTES)
        with patch.object(PlatformTools, "download", new_callable=AsyncMock) as download:
            await tools.initialize()
            download.assert_not_called()
        assert (tools.path() / "adb").is_file()

    async def test_redownloads_corrupt_cache(self, tools):
        tools.cache_dir.mkdir(parents=True)
        tools.zip_file.write_bytes(b"stale")
        patcher, client = _patch_client()
        try:
            await tools.initialize()
        finally:
            patcher.stop()
        client.stream.assert_called_once()
        assert tools.zip_file.read_bytes() == ZIP_BYTES

    async def test_checksum_mismatch(self, tools):
        patcher, _ = _patch_client(body=b"tampered")
        try:
            with pytest.raises(PlatformToolsError, match="checksum verification failed"):
                await tools.initialize()
        finally:
            patcher.stop()

    async def test_http_error(self, tools):
        error = httpx.HTTPStatusError("404", request=MagicMock(), response=MagicMock())
        patcher, _ = _patch_client(status_error=error)
        try:
            with pytest.raises(PlatformToolsError, match="failed to download"):
                await tools.initialize()
        finally:
            patcher.stop()
        assert not tools.zip_file.exists()
        assert not tools.zip_file.with_suffix(".part").exists()


class TestSha256File:
    def test_digest(self, tmp_path):
        path = tmp_path / "blob"
        path.write_bytes(b"hello")
        assert platformtools.sha256_file(path) == hashlib.sha256(b"hello").hexdigest()

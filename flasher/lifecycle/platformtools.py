"""PlatformTools — download, verify and unpack Google's adb/fastboot bundle."""

from __future__ import annotations

import hashlib
import logging
import shutil
import stat
from pathlib import Path

import httpx

from flasher.config import (
    PLATFORM_TOOLS_BASE_URI,
    PLATFORM_TOOLS_DEFAULT_VERSION,
    PLATFORM_TOOLS_JASMINE_VERSION,
)
from flasher.models import PlatformToolsError

logger = logging.getLogger("device-flasher.platform-tools")

FILENAME_TEMPLATE = "platform-tools_r{version}-{os}.zip"

SHA256_SUMS = {
    "platform-tools_r29.0.6-darwin.zip": "7555e8e24958cae4cfd197135950359b9fe8373d4862a03677f089d215119a3a",
    "platform-tools_r29.0.6-linux.zip": "cc9e9d0224d1a917bad71fe12d209dfffe9ce43395e048ab2f07dcfc21101d44",
    "platform-tools_r29.0.6-windows.zip": "247210e3c12453545f8e1f76e55de3559c03f2d785487b2e4ac00fe9698a039c",
    "platform-tools_r30.0.4-darwin.zip": "e0db2bdc784c41847f854d6608e91597ebc3cef66686f647125f5a046068a890",
    "platform-tools_r30.0.4-linux.zip": "5be24ed897c7e061ba800bfa7b9ebb4b0f8958cc062f4b2202701e02f2725891",
    "platform-tools_r30.0.4-windows.zip": "413182fff6c5957911e231b9e97e6be4fc6a539035e3dfb580b5c54bd5950fee",
}

_CHUNK_SIZE = 1 << 16


def tools_version_for_image(image_path: Path, default: str = PLATFORM_TOOLS_DEFAULT_VERSION) -> str:
    """jasmine images only flash correctly with the older 29.0.6 tools."""
    if image_path.is_file() and "jasmine" in image_path.name:
        return PLATFORM_TOOLS_JASMINE_VERSION
    return default


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class PlatformTools:
    """A verified, extracted copy of platform-tools for one version and host OS.

    The zip is cached under ``cache_dir`` and re-used when it still verifies.
    ``path()`` is read-only after ``initialize()`` and safe to share.
    """

    def __init__(
        self,
        version: str,
        host_os: str,
        cache_dir: Path | str,
        destination: Path | str,
        base_uri: str = PLATFORM_TOOLS_BASE_URI,
        timeout: float = 300.0,
    ) -> None:
        self.version = version
        self.host_os = host_os
        self.cache_dir = Path(cache_dir)
        self.destination = Path(destination)
        self.base_uri = base_uri.rstrip("/")
        self.timeout = timeout

    @property
    def filename(self) -> str:
        return FILENAME_TEMPLATE.format(version=self.version, os=self.host_os)

    @property
    def download_uri(self) -> str:
        return f"{self.base_uri}/{self.filename}"

    @property
    def zip_file(self) -> Path:
        return self.cache_dir / self.filename

    @property
    def sha256(self) -> str:
        try:
            return SHA256_SUMS[self.filename]
        except KeyError:
            raise PlatformToolsError(
                f"no known checksum for {self.filename}", tool="platform-tools",
            ) from None

    def path(self) -> Path:
        return self.destination / "platform-tools"

    async def initialize(self) -> None:
        """Make sure a verified zip is cached, then extract it."""
        expected = self.sha256
        if self.zip_file.exists() and self.verify(expected):
            logger.debug("using cached %s", self.zip_file)
        else:
            await self.download()
            if not self.verify(expected):
                raise PlatformToolsError(
                    f"{self.filename} checksum verification failed", tool="platform-tools",
                )
        self.extract()

    def verify(self, expected: str) -> bool:
        actual = sha256_file(self.zip_file)
        if actual != expected:
            logger.debug("checksum mismatch for %s: got %s want %s", self.zip_file, actual, expected)
            return False
        return True

    async def download(self) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        partial = self.zip_file.with_suffix(".part")
        logger.info("Downloading %s", self.download_uri)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                async with client.stream("GET", self.download_uri) as resp:
                    resp.raise_for_status()
                    with partial.open("wb") as out:
                        async for chunk in resp.aiter_bytes(_CHUNK_SIZE):
                            out.write(chunk)
        except httpx.HTTPError as e:
            partial.unlink(missing_ok=True)
            raise PlatformToolsError(
                f"failed to download {self.download_uri}: {e}", tool="platform-tools",
            ) from e
        partial.replace(self.zip_file)

    def extract(self) -> None:
        logger.debug("extracting %s to %s", self.zip_file, self.destination)
        self.destination.mkdir(parents=True, exist_ok=True)
        try:
            shutil.unpack_archive(str(self.zip_file), str(self.destination), format="zip")
        except (shutil.ReadError, OSError) as e:
            raise PlatformToolsError(
                f"failed to extract {self.zip_file}: {e}", tool="platform-tools",
            ) from e

        if self.host_os != "windows":
            # zip extraction drops the executable bit
            for name in ("adb", "fastboot"):
                tool = self.path() / name
                if tool.is_file():
                    tool.chmod(tool.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

"""FactoryImage — validate, extract and run the flash-all script of one image."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
from pathlib import Path

from flasher.device.record import Device
from flasher.image.discovery import JASMINE_OREO
from flasher.models import FlashFailure, FlasherError, ImageValidationError

logger = logging.getLogger("device-flasher.factory-image")

_READ_CHUNK = 64 * 1024
_LINE_LIMIT = 1024 * 1024  # 1MB line buffer
_LINE_BREAK = re.compile(rb"\r\n|\r|\n")


class FactoryImage:
    """An image archive for one codename.

    ``extract()`` is not reentrant and must finish before any device is
    flashed; afterwards the instance is shared read-only by every device of
    that codename.
    """

    def __init__(self, image_path: Path | str, working_directory: Path | str, host_os: str) -> None:
        self.image_path = Path(image_path)
        self.working_directory = Path(working_directory)
        self.host_os = host_os
        self.extracted_directory: Path | None = None
        self.is_extracted = False

    @property
    def is_jasmine_oreo(self) -> bool:
        return self.image_path.name == JASMINE_OREO

    @property
    def flash_all_script(self) -> str:
        stem = "flash_all" if self.is_jasmine_oreo else "flash-all"
        return f"{stem}.bat" if self.host_os == "windows" else f"{stem}.sh"

    def validate(self, codename: str) -> None:
        """Check the image is meant for ``codename``. Raises ImageValidationError."""
        logger.debug("running factory image validation for codename %s", codename)
        if not self.image_path.exists():
            raise ImageValidationError(f"image not found: {self.image_path}", tool="image")
        if self.is_jasmine_oreo:
            return
        name = self.image_path.name
        if codename.lower() not in name:
            raise ImageValidationError(
                f"image filename should contain device codename {codename}", tool="image",
            )
        if "factory" not in name:
            raise ImageValidationError("image filename should contain 'factory'", tool="image")

    def extract(self) -> None:
        """Unpack the archive once and locate the flash-all script."""
        if self.is_extracted:
            logger.debug("already extracted %s to %s", self.image_path, self.working_directory)
            return

        logger.info("Extracting factory image: %s", self.image_path)
        self.working_directory.mkdir(parents=True, exist_ok=True)
        try:
            shutil.unpack_archive(str(self.image_path), str(self.working_directory))
        except (shutil.ReadError, ValueError, OSError) as e:
            raise FlasherError(f"failed to extract {self.image_path}: {e}", tool="image") from e

        self.extracted_directory = self._find_script_directory()
        if self.host_os != "windows":
            script = self.extracted_directory / self.flash_all_script
            script.chmod(script.stat().st_mode | 0o755)
        logger.debug(
            "validated extracted factory image: script=%s directory=%s",
            self.flash_all_script, self.extracted_directory,
        )
        self.is_extracted = True

    def _find_script_directory(self) -> Path:
        candidates = [self.working_directory] + sorted(
            p for p in self.working_directory.iterdir() if p.is_dir()
        )
        for directory in candidates:
            if (directory / self.flash_all_script).is_file():
                return directory
        raise FlasherError(
            f"unable to find {self.flash_all_script} in directory {self.working_directory}",
            tool="image",
        )

    async def flash_all(self, device: Device, platform_tools_path: Path) -> None:
        """Run flash-all against ``device``, streaming its output to the device log.

        Raises FlashFailure if the script cannot start or exits non-zero.
        """
        if not self.is_extracted or self.extracted_directory is None:
            raise FlashFailure(f"factory image {self.image_path} is not extracted", tool="image")

        log = device.logger(logger)
        path_var = "Path" if self.host_os == "windows" else "PATH"
        env = dict(os.environ)
        env[path_var] = f"{platform_tools_path}{os.pathsep}{env.get(path_var, '')}"
        env["ANDROID_SERIAL"] = device.id

        script = f".{os.sep}{self.flash_all_script}"
        if self.host_os == "windows":
            cmd = ["cmd", "/c", self.flash_all_script]
        elif self.is_jasmine_oreo and self.host_os == "linux":
            cmd = ["/bin/sh", script]
        else:
            cmd = [script]

        log.debug("running flash all script %s", " ".join(cmd))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self.extracted_directory),
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                limit=_LINE_LIMIT,
            )
        except OSError as e:
            raise FlashFailure(f"failed to flash device: {e}", tool="flash-all") from e

        try:
            returncode = await self._stream_output(proc, log)
        except (ValueError, OSError) as e:
            raise FlashFailure(f"failed to flash device: {e}", tool="flash-all") from e
        finally:
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

        if returncode != 0:
            raise FlashFailure(
                f"failed to flash device: flash-all exited with {returncode}", tool="flash-all",
            )

    @staticmethod
    async def _stream_output(proc: asyncio.subprocess.Process, log: logging.LoggerAdapter) -> int:
        """Log flash-all output split on ``\\n`` and ``\\r`` and return its exit code.

        Output is read in fixed-size chunks so progress bars and very long
        lines never hit the stream's line limit.
        """
        pending = b""
        if proc.stdout is not None:
            while True:
                chunk = await proc.stdout.read(_READ_CHUNK)
                if not chunk:
                    break
                *lines, pending = _LINE_BREAK.split(pending + chunk)
                for raw in lines:
                    _log_output(log, raw)
                if len(pending) > _LINE_LIMIT:
                    _log_output(log, pending)
                    pending = b""
        _log_output(log, pending)
        return await proc.wait()


def _log_output(log: logging.LoggerAdapter, raw: bytes) -> None:
    line = raw.decode(errors="replace")
    if line.strip():
        log.info("| %s", line)

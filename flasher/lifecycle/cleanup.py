"""Best-effort teardown of everything a run leaves behind."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

from flasher.lifecycle.udev import remove_udev_rules
from flasher.models import FlasherError
from flasher.protocols import ADBLikeController

logger = logging.getLogger("device-flasher.cleanup")


class Cleanup:
    """Records temp directories and the adb server so they can be torn down.

    ``run()`` never raises and is safe to call more than once.
    """

    def __init__(self, host_os: str) -> None:
        self.host_os = host_os
        self.directories: list[Path] = []
        self.adb: ADBLikeController | None = None
        self._done = False

    def temp_dir(self, usage: str) -> Path:
        """Create and register a temp directory named after ``usage``."""
        path = Path(tempfile.mkdtemp(prefix=f"device-flasher-extracted-{usage}"))
        self.directories.append(path)
        return path

    async def run(self) -> None:
        if self._done:
            return
        self._done = True

        if self.adb is not None:
            try:
                await self.adb.kill_server()
            except FlasherError as e:
                logger.warning("cleanup error killing adb server: %s", e)

        for directory in self.directories:
            try:
                shutil.rmtree(directory)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("cleanup error removing dir %s: %s", directory, e)

        if self.host_os == "linux":
            remove_udev_rules()

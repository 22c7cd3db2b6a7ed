"""Shared subprocess plumbing for the adb and fastboot backends."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from flasher.models import CommandFailure, PlatformToolsError

logger = logging.getLogger("device-flasher.tool")


class PlatformTool:
    """An executable inside the platform-tools directory.

    Every call spawns its own process, so concurrent calls for different
    devices do not share any state.
    """

    executable_name: str = ""

    def __init__(self, tools_path: Path | str, host_os: str) -> None:
        executable = Path(tools_path) / self.executable_name
        if host_os == "windows":
            executable = executable.with_name(executable.name + ".exe")
        if not executable.is_file():
            raise PlatformToolsError(
                f"{self.executable_name} not found at {executable}",
                tool=self.executable_name,
            )
        self.executable = executable
        self.host_os = host_os

    def name(self) -> str:
        return self.executable_name

    async def _run(self, *args: str) -> str:
        """Run the tool and return its combined stdout/stderr.

        Raises CommandFailure on non-zero exit code.
        """
        logger.debug("running %s %s", self.executable_name, " ".join(args))
        try:
            proc = await asyncio.create_subprocess_exec(
                str(self.executable), *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise CommandFailure(
                f"{self.executable_name} {args[0] if args else ''} could not start: {e}",
                tool=self.executable_name,
            ) from e
        stdout, _ = await proc.communicate()
        output = stdout.decode(errors="replace")
        if proc.returncode != 0:
            cmd = " ".join(a for a in args if a)
            raise CommandFailure(
                f"{self.executable_name} {cmd} failed (exit {proc.returncode}): {output.strip()}",
                tool=self.executable_name,
            )
        return output

    @staticmethod
    def _parse_device_list(output: str) -> list[str]:
        """Extract serials from `<serial>\\t<state>` lines; anything else is chatter."""
        ids: list[str] = []
        for line in output.splitlines():
            serial, tab, state = line.partition("\t")
            serial = serial.strip()
            if not tab or not serial or not state.strip():
                continue
            ids.append(serial)
        return ids

"""AdbBackend — async wrapper around adb for devices booted into Android."""

from __future__ import annotations

import logging

from flasher.device.tool import PlatformTool

logger = logging.getLogger("device-flasher.adb")


class AdbBackend(PlatformTool):
    """Discovers booted devices and sends them to the bootloader."""

    executable_name = "adb"

    async def get_device_ids(self) -> list[str]:
        """List serials from `adb devices`."""
        output = await self._run("devices")
        return self._parse_device_list(output)

    async def get_device_codename(self, device_id: str) -> str:
        return await self._get_prop("ro.product.device", device_id)

    async def reboot_into_bootloader(self, device_id: str) -> None:
        await self._run("-s", device_id, "reboot", "bootloader")

    async def start_server(self) -> None:
        await self._run("start-server")

    async def kill_server(self) -> None:
        await self._run("kill-server")

    async def _get_prop(self, prop: str, device_id: str) -> str:
        output = await self._run("-s", device_id, "shell", "getprop", prop)
        return output.strip().strip("[]\r\n")

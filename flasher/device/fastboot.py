"""FastbootBackend — async wrapper around fastboot for devices in bootloader mode."""

from __future__ import annotations

import logging

from flasher.device.tool import PlatformTool
from flasher.models import CommandFailure, LockStatus

logger = logging.getLogger("device-flasher.fastboot")

_LOCK_VALUES = {
    "yes": LockStatus.UNLOCKED,
    "no": LockStatus.LOCKED,
}


class FastbootBackend(PlatformTool):
    """Discovers bootloader-mode devices and controls their lock status."""

    executable_name = "fastboot"

    async def get_device_ids(self) -> list[str]:
        """List serials from `fastboot devices`."""
        output = await self._run("devices")
        return self._parse_device_list(output)

    async def get_device_codename(self, device_id: str) -> str:
        return await self._get_var("product", device_id)

    async def get_lock_status(self, device_id: str) -> LockStatus:
        """Read `getvar unlocked`. Raises CommandFailure on an unexpected value."""
        unlocked = await self._get_var("unlocked", device_id)
        status = _LOCK_VALUES.get(unlocked)
        if status is None:
            raise CommandFailure(
                f"unknown unlocked value returned: {unlocked!r}", tool="fastboot",
            )
        return status

    async def set_lock_status(self, device_id: str, wanted: LockStatus) -> None:
        if wanted == LockStatus.UNLOCKED:
            await self._run("-s", device_id, "flashing", "unlock")
        elif wanted == LockStatus.LOCKED:
            await self._run("-s", device_id, "flashing", "lock")
        else:
            raise ValueError(f"cannot set bootloader lock status to {wanted.value}")

    async def reboot(self, device_id: str) -> None:
        await self._run("-s", device_id, "reboot")

    async def _get_var(self, var: str, device_id: str) -> str:
        """Return the value of a bootloader variable.

        fastboot prints `<var>: <value>` (on stderr) followed by a timing line.
        """
        output = await self._run("-s", device_id, "getvar", var)
        prefix = f"{var}:"
        for line in output.splitlines():
            line = line.strip()
            if line.startswith(prefix):
                return line[len(prefix):].strip()
        raise CommandFailure(f"var {var} not found in fastboot output", tool="fastboot")

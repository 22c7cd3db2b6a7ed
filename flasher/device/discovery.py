"""DeviceDiscovery — merges adb and fastboot listings into one identity set."""

from __future__ import annotations

import logging

from flasher.models import DeviceIdentity, FlasherError, NoDevicesFoundError, ToolName
from flasher.protocols import DiscoveryChannel

logger = logging.getLogger("device-flasher.discovery")


class DeviceDiscovery:
    """Resolves attached devices through both platform tools.

    A serial reported by both tools resolves to the fastboot entry: fastboot
    is authoritative for bootloader-mode devices, and a device adb still sees
    may be mid-reboot.
    """

    def __init__(self, adb: DiscoveryChannel, fastboot: DiscoveryChannel) -> None:
        self.adb = adb
        self.fastboot = fastboot

    async def discover_devices(self) -> dict[str, DeviceIdentity]:
        """Return devices keyed by serial.

        Raises NoDevicesFoundError when neither tool yields a usable device.
        """
        logger.debug("discovering adb devices")
        devices = await self._get_devices(self.adb, ToolName.ADB)

        logger.debug("discovering fastboot devices")
        fastboot_devices = await self._get_devices(self.fastboot, ToolName.FASTBOOT)

        for device_id, identity in fastboot_devices.items():
            if device_id in devices:
                logger.debug("fastboot entry replaces adb entry for device %s", device_id)
            devices[device_id] = identity

        if not devices:
            raise NoDevicesFoundError()
        return devices

    async def _get_devices(
        self, channel: DiscoveryChannel, channel_name: ToolName,
    ) -> dict[str, DeviceIdentity]:
        tool_name = channel.name()
        devices: dict[str, DeviceIdentity] = {}
        try:
            device_ids = await channel.get_device_ids()
        except FlasherError as e:
            logger.warning("%s unable to get devices: %s", tool_name, e)
            return devices

        for device_id in device_ids or []:
            if device_id in devices:
                logger.warning("%s skipping duplicate device %s", tool_name, device_id)
                continue
            logger.debug("%s getting codename for device %s", tool_name, device_id)
            try:
                codename = await channel.get_device_codename(device_id)
            except FlasherError as e:
                logger.warning(
                    "%s skipping device %s as getting codename failed: %s",
                    tool_name, device_id, e,
                )
                continue
            if not codename:
                logger.warning("%s skipping device %s with empty codename", tool_name, device_id)
                continue
            devices[device_id] = DeviceIdentity(id=device_id, codename=codename, channel=channel_name)
        return devices

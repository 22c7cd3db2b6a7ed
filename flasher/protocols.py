"""Capabilities the discovery and flashing core consumes.

Production backends (AdbBackend, FastbootBackend, FactoryImage, PlatformTools)
and test doubles both satisfy these protocols.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from flasher.models import LockStatus


if TYPE_CHECKING:
    from flasher.device.record import Device


@runtime_checkable
class DiscoveryChannel(Protocol):
    """A tool that can list attached devices and identify their model."""

    async def get_device_ids(self) -> list[str]:
        """Return serials of currently attached devices."""
        ...

    async def get_device_codename(self, device_id: str) -> str:
        """Return the model codename of a device."""
        ...

    def name(self) -> str:
        ...


@runtime_checkable
class BootloaderController(Protocol):
    """Lock status control over a device in bootloader mode."""

    async def set_lock_status(self, device_id: str, wanted: LockStatus) -> None:
        """Issue the lock or unlock command. ``wanted`` is LOCKED or UNLOCKED."""
        ...

    async def get_lock_status(self, device_id: str) -> LockStatus:
        """Query the device. Never served from a cache."""
        ...

    async def reboot(self, device_id: str) -> None:
        ...


@runtime_checkable
class ADBLikeController(Protocol):
    """Control over a device booted into the OS."""

    async def reboot_into_bootloader(self, device_id: str) -> None:
        ...

    async def kill_server(self) -> None:
        ...


@runtime_checkable
class FactoryImageFlasher(Protocol):
    """An extracted factory image for one codename."""

    def validate(self, codename: str) -> None:
        """Raise ImageValidationError if the image is not meant for ``codename``."""
        ...

    async def flash_all(self, device: Device, platform_tools_path: Path) -> None:
        """Run the bundled flash-all script against ``device``."""
        ...


@runtime_checkable
class PlatformToolsFlasher(Protocol):
    """Provides the directory holding adb and fastboot."""

    def path(self) -> Path:
        ...

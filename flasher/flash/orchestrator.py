"""FlashOrchestrator — per-device unlock → flash → lock state machine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from flasher.config import FlasherConfig
from flasher.device.record import Device
from flasher.flash.retry import LockStatusConverger, Sleep
from flasher.models import (
    CommandFailure,
    FlashOutcome,
    FlashStage,
    FlashStepError,
    FlasherError,
    LockStatus,
    NonFatalDeviceWarning,
    ToolName,
)
from flasher.protocols import (
    ADBLikeController,
    BootloaderController,
    FactoryImageFlasher,
    PlatformToolsFlasher,
)

logger = logging.getLogger("device-flasher.flash")


class FlashOrchestrator:
    """Runs the flash sequence for one device.

    Collaborators are shared read-only with other orchestrators; nothing here
    is written by more than one device's task.

    Steps, in order: validate image, reboot into the bootloader (adb devices
    only, best-effort), read lock status, unlock if needed, flash-all, lock,
    reboot (best-effort). Any other failure stops this device only.
    """

    def __init__(
        self,
        factory_image: FactoryImageFlasher,
        platform_tools: PlatformToolsFlasher,
        adb: ADBLikeController,
        fastboot: BootloaderController,
        *,
        retries: int = 2,
        validation_pause: float = 5.0,
        retry_interval: float = 30.0,
        sleep: Sleep = asyncio.sleep,
        should_stop: Callable[[], bool] | None = None,
    ) -> None:
        self.factory_image = factory_image
        self.platform_tools = platform_tools
        self.adb = adb
        self.fastboot = fastboot
        self.retries = retries
        self.validation_pause = validation_pause
        self.retry_interval = retry_interval
        self._sleep = sleep
        self._should_stop = should_stop or (lambda: False)

    @classmethod
    def from_config(
        cls,
        config: FlasherConfig,
        factory_image: FactoryImageFlasher,
        platform_tools: PlatformToolsFlasher,
        adb: ADBLikeController,
        fastboot: BootloaderController,
        **kwargs,
    ) -> FlashOrchestrator:
        return cls(
            factory_image, platform_tools, adb, fastboot,
            retries=config.lock_unlock_retries,
            validation_pause=config.lock_unlock_validation_pause,
            retry_interval=config.lock_unlock_retry_interval,
            **kwargs,
        )

    async def run(self, device: Device) -> FlashOutcome:
        """Flash ``device`` and report the outcome instead of raising."""
        log = device.logger(logger)
        log.info("starting to flash device")
        warnings: list[NonFatalDeviceWarning] = []
        try:
            await self.flash(device, warnings)
        except FlashStepError as e:
            log.error("flashing failed at %s: %s", e.stage.value, e.error)
            return FlashOutcome.failed(
                device.id, device.codename, e.stage, str(e.error),
                warnings=[str(w) for w in warnings],
            )
        log.info("finished flashing device")
        return FlashOutcome.succeeded(device.id, device.codename, warnings=[str(w) for w in warnings])

    async def flash(
        self, device: Device, warnings: list[NonFatalDeviceWarning] | None = None,
    ) -> None:
        """Run every step; raises FlashStepError on the first fatal failure.

        Failed best-effort reboots are appended to ``warnings``.
        """
        log = device.logger(logger)
        if warnings is None:
            warnings = []

        self._check_stop()
        log.info("validating factory image is for device")
        try:
            self.factory_image.validate(device.codename)
        except FlasherError as e:
            raise FlashStepError(FlashStage.VALIDATE, e) from e

        if device.channel == ToolName.ADB:
            self._check_stop()
            log.info("reboot into bootloader")
            try:
                await self.adb.reboot_into_bootloader(device.id)
            except FlasherError as e:
                log.warning("ignoring adb reboot error and will attempt fastboot access: %s", e)
                warnings.append(NonFatalDeviceWarning(
                    f"{FlashStage.REBOOT_BOOTLOADER.value}: {e}", tool=e.tool,
                ))

        self._check_stop()
        log.info("checking bootloader status")
        try:
            status = await self.fastboot.get_lock_status(device.id)
        except FlasherError as e:
            raise FlashStepError(FlashStage.QUERY_LOCK, e) from e
        if status == LockStatus.UNKNOWN:
            raise FlashStepError(
                FlashStage.QUERY_LOCK,
                CommandFailure("bootloader lock status is unknown", tool=ToolName.FASTBOOT.value),
            )

        if status != LockStatus.UNLOCKED:
            self._check_stop()
            log.info("starting unlocking bootloader process")
            log.info("5. Please use the volume and power keys on the device to unlock the bootloader")
            self._run_hook(device, "pre_unlock", log)
            await self._converge(device, LockStatus.UNLOCKED, log)
        log.info("bootloader is unlocked")

        self._check_stop()
        log.info("running flash all script")
        try:
            await self.factory_image.flash_all(device, self.platform_tools.path())
        except FlasherError as e:
            raise FlashStepError(FlashStage.FLASH_ALL, e) from e
        log.info("finished running flash all script")

        # A flashed device is always relocked, even after a stop request.
        log.info("starting re-locking bootloader process")
        log.info("6. Please use the volume and power keys on the device to lock the bootloader")
        self._run_hook(device, "pre_lock", log)
        await self._converge(device, LockStatus.LOCKED, log)

        log.info("rebooting device")
        try:
            await self.fastboot.reboot(device.id)
        except FlasherError as e:
            log.warning("failed to reboot device: %s. may need to manually reboot", e)
            warnings.append(NonFatalDeviceWarning(f"{FlashStage.REBOOT.value}: {e}", tool=e.tool))
        log.info("7. Disable OEM unlocking from Developer Options after setting up your device")

    async def _converge(
        self, device: Device, target: LockStatus, log: logging.LoggerAdapter,
    ) -> None:
        await LockStatusConverger(
            self.fastboot, device.id, target,
            retries=self.retries,
            validation_pause=self.validation_pause,
            retry_interval=self.retry_interval,
            sleep=self._sleep,
            log=log,
        ).run()

    @staticmethod
    def _run_hook(device: Device, name: str, log: logging.LoggerAdapter) -> None:
        hook = getattr(device.hooks, name, None) if device.hooks else None
        if hook is None:
            return
        try:
            hook(device, log)
        except Exception as e:
            log.warning("%s hook failed: %s", name.replace("_", " "), e)

    def _check_stop(self) -> None:
        if self._should_stop():
            raise FlashStepError(
                FlashStage.ABORTED, FlasherError("stop requested before next step"),
            )

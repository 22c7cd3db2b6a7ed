"""Bounded retry-poll loop driving a bootloader to a wanted lock status.

Unlocking and locking both need the operator to confirm on the device with
the volume and power keys, so the fastboot command may return before the
status actually changes. The loop re-issues the command and re-checks the
status a bounded number of times.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from flasher.models import (
    CommandFailure,
    FlashStage,
    FlashStepError,
    FlasherError,
    LockConvergenceFailure,
    LockStatus,
)
from flasher.protocols import BootloaderController

logger = logging.getLogger("device-flasher.retry")

Sleep = Callable[[float], Awaitable[None]]

_VERBS = {
    LockStatus.UNLOCKED: ("unlocking", "unlocked"),
    LockStatus.LOCKED: ("locking", "locked"),
}


class LockStatusConverger:
    """One lock or unlock transition for one device.

    State is the attempt counter; ``retries`` is the number of attempts
    allowed beyond the first. Each sub-step is a separate coroutine so it can
    be exercised on its own with a fake ``sleep``.
    """

    def __init__(
        self,
        controller: BootloaderController,
        device_id: str,
        target: LockStatus,
        *,
        retries: int,
        validation_pause: float,
        retry_interval: float,
        sleep: Sleep = asyncio.sleep,
        log: logging.Logger | logging.LoggerAdapter = logger,
    ) -> None:
        if target not in _VERBS:
            raise ValueError(f"lock status target must be locked or unlocked, not {target.value}")
        self.controller = controller
        self.device_id = device_id
        self.target = target
        self.retries = retries
        self.validation_pause = validation_pause
        self.retry_interval = retry_interval
        self.attempt = 0
        self._sleep = sleep
        self._log = log
        self._in_progress, self._complete = _VERBS[target]

    async def run(self) -> None:
        """Drive the device to ``target`` or raise FlashStepError."""
        while True:
            await self.issue_command()
            await self.wait_validation_pause()
            if await self.check_status():
                self._log.debug("bootloader is now %s", self._complete)
                return
            if not self.attempts_remaining():
                self._log.debug("max %s retries hit", self._in_progress)
                raise FlashStepError(
                    FlashStage.MAX_RETRIES,
                    LockConvergenceFailure(self.target, self.retries),
                )
            await self.wait_retry_interval()
            self.attempt += 1

    async def issue_command(self) -> None:
        """Send lock/unlock. A command-level failure is never retried."""
        self._log.info("%s bootloader", self._in_progress)
        try:
            await self.controller.set_lock_status(self.device_id, self.target)
        except FlasherError as e:
            self._log.debug("error %s bootloader: %s", self._in_progress, e)
            raise FlashStepError(FlashStage.SET_LOCK, e) from e

    async def wait_validation_pause(self) -> None:
        self._log.debug("waiting %ss before checking bootloader status", self.validation_pause)
        await self._sleep(self.validation_pause)

    async def check_status(self) -> bool:
        """Re-query the device; True when it reports ``target``."""
        self._log.info("verifying bootloader status")
        try:
            status = await self.controller.get_lock_status(self.device_id)
        except FlasherError as e:
            self._log.debug("error verifying bootloader status: %s", e)
            raise FlashStepError(FlashStage.QUERY_LOCK, e) from e
        if status == LockStatus.UNKNOWN:
            raise FlashStepError(
                FlashStage.QUERY_LOCK,
                CommandFailure("bootloader lock status is unknown", tool="fastboot"),
            )
        return status == self.target

    def attempts_remaining(self) -> bool:
        return self.attempt < self.retries

    async def wait_retry_interval(self) -> None:
        self._log.info(
            "bootloader status is not %s yet. waiting %ss before retrying",
            self._complete, self.retry_interval,
        )
        await self._sleep(self.retry_interval)

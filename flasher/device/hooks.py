"""Per-codename hooks for devices that need extra manual steps.

Some models cannot be driven through unlock/lock purely over USB: the
operator must power-cycle them back into fastboot mode mid-sequence. Their
hooks only log instructions; they never decide whether the flash succeeds.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from flasher.device.record import Device
from flasher.models import DeviceIdentity

logger = logging.getLogger("device-flasher.hooks")

# (device, device logger) -> None. May raise; callers treat failure as a warning.
Hook = Callable[[Device, logging.LoggerAdapter], None]


@dataclass(frozen=True)
class CustomHooks:
    """Optional callbacks run before the unlock and lock transitions."""

    pre_unlock: Hook | None = None
    pre_lock: Hook | None = None
    rename_codename: str | None = None


class HookRegistry:
    """Read-only codename -> CustomHooks table, built once at startup."""

    def __init__(self, hooks: Mapping[str, CustomHooks] | None = None) -> None:
        self._hooks: Mapping[str, CustomHooks] = MappingProxyType(dict(hooks or {}))

    def lookup(self, codename: str) -> CustomHooks | None:
        return self._hooks.get(codename)

    def build_device(self, identity: DeviceIdentity) -> Device:
        """Upgrade a discovered identity to a Device, attaching its hooks."""
        hooks = self.lookup(identity.codename)
        codename = identity.codename
        if hooks is not None and hooks.rename_codename:
            codename = hooks.rename_codename
            logger.debug(
                "updated device %s codename: %s -> %s",
                identity.id, identity.codename, codename,
            )
        return Device(id=identity.id, codename=codename, channel=identity.channel, hooks=hooks)


def _power_cycle_steps(step: int) -> Hook:
    def hook(device: Device, log: logging.LoggerAdapter) -> None:
        log.info(" %da. Once device boots, disconnect its cable and power it off", step)
        log.info(
            " %db. Then, press volume down + power to boot it into fastboot mode, "
            "and connect the cable again.",
            step,
        )
        log.info("The installation will resume automatically")

    return hook


def default_registry() -> HookRegistry:
    """Hooks for the models known to need a manual power cycle."""
    power_cycle = CustomHooks(
        pre_unlock=_power_cycle_steps(5),
        pre_lock=_power_cycle_steps(6),
    )
    return HookRegistry({
        "jasmine": CustomHooks(
            pre_unlock=power_cycle.pre_unlock,
            pre_lock=power_cycle.pre_lock,
            rename_codename="jasmine_sprout",
        ),
        "walleye": power_cycle,
    })

"""Core data models and error types shared by discovery, flashing and the CLI."""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field


class ToolName(str, enum.Enum):
    """Platform tool that discovered a device."""

    ADB = "adb"
    FASTBOOT = "fastboot"


class LockStatus(str, enum.Enum):
    """Bootloader lock state as reported by fastboot.

    UNKNOWN only ever results from a failed or unparseable query.
    """

    UNKNOWN = "unknown"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class FlashStage(str, enum.Enum):
    """Orchestrator step at which a device failed."""

    VALIDATE = "validate"
    REBOOT_BOOTLOADER = "reboot_bootloader"
    QUERY_LOCK = "query_lock"
    SET_LOCK = "set_lock"
    MAX_RETRIES = "max_retries"
    FLASH_ALL = "flash_all"
    REBOOT = "reboot"
    ABORTED = "aborted"
    INTERNAL = "internal"


class DeviceIdentity(BaseModel):
    """A device as seen by a single discovery pass."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Serial reported by adb or fastboot")
    codename: str = Field(description="Model codename, e.g. 'crosshatch'")
    channel: ToolName


class FlashOutcome(BaseModel):
    """Result of running the flash sequence on one device."""

    device_id: str
    codename: str
    success: bool
    stage: FlashStage | None = None
    cause: str | None = None
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def succeeded(
        cls, device_id: str, codename: str, warnings: list[str] | None = None,
    ) -> FlashOutcome:
        return cls(device_id=device_id, codename=codename, success=True, warnings=warnings or [])

    @classmethod
    def failed(
        cls, device_id: str, codename: str, stage: FlashStage, cause: str,
        warnings: list[str] | None = None,
    ) -> FlashOutcome:
        return cls(
            device_id=device_id, codename=codename, success=False,
            stage=stage, cause=cause, warnings=warnings or [],
        )


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class FlasherError(Exception):
    """Base error. ``tool`` names the component or executable that failed."""

    def __init__(self, message: str, tool: str = "flasher") -> None:
        super().__init__(message)
        self.tool = tool


class CommandFailure(FlasherError):
    """An adb/fastboot invocation exited non-zero or produced unusable output."""


class NoDevicesFoundError(FlasherError):
    """Neither discovery channel yielded a usable device."""

    def __init__(self, message: str = "no devices detected with adb or fastboot") -> None:
        super().__init__(message, tool="discovery")


class ImageValidationError(FlasherError):
    """Factory image missing or not meant for the device codename."""


class LockConvergenceFailure(FlasherError):
    """Bootloader never reached the wanted lock status within the retry budget."""

    def __init__(self, target: LockStatus, retries: int) -> None:
        super().__init__(
            f"max retries reached: bootloader not {target.value} after {retries + 1} attempts",
            tool="fastboot",
        )
        self.target = target
        self.retries = retries


class FlashFailure(FlasherError):
    """The factory image flash-all script failed."""


class NonFatalDeviceWarning(FlasherError):
    """A convenience step (reboot) failed but the flash can continue."""


class ImageDiscoveryError(FlasherError):
    """No usable factory image could be found at the given path."""


class PlatformToolsError(FlasherError):
    """Downloading, verifying or locating platform tools failed."""


class UdevSetupError(FlasherError):
    """Installing udev rules failed."""


class FlashStepError(FlasherError):
    """A fatal orchestrator step failure, tagged with the stage it happened in."""

    def __init__(self, stage: FlashStage, error: Exception) -> None:
        super().__init__(f"{stage.value}: {error}", tool=getattr(error, "tool", "flasher"))
        self.stage = stage
        self.error = error

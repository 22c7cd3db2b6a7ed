"""Device — the working record a flash orchestrator operates on."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from flasher.models import ToolName

if TYPE_CHECKING:
    from flasher.device.hooks import CustomHooks


@dataclass(frozen=True)
class Device:
    """A discovered device plus the hooks looked up for its codename."""

    id: str
    codename: str
    channel: ToolName
    hooks: CustomHooks | None = None

    def __str__(self) -> str:
        return f"id={self.id} codename={self.codename}"

    def logger(self, base: logging.Logger) -> DeviceLogAdapter:
        return DeviceLogAdapter(base, {"device": str(self)})


class DeviceLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the device id and codename."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        return f"[{self.extra['device']}] {msg}", kwargs

"""FleetRunner — runs one flash orchestrator per device and collects outcomes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from flasher.device.record import Device
from flasher.flash.orchestrator import FlashOrchestrator
from flasher.models import FlashOutcome, FlashStage

logger = logging.getLogger("device-flasher.fleet")

# (device, should_stop) -> orchestrator for that device
OrchestratorFactory = Callable[[Device, Callable[[], bool]], FlashOrchestrator]


class FleetRunner:
    """Flashes a set of devices, in parallel or one at a time.

    Each device's task writes only its own slot of the result dict. A failed
    device never cancels the others. After ``request_stop()`` no new
    orchestrator starts and running ones stop before their next step.
    """

    def __init__(self, make_orchestrator: OrchestratorFactory, parallel: bool = True) -> None:
        self._make_orchestrator = make_orchestrator
        self.parallel = parallel
        self._stop_requested = False

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def request_stop(self) -> None:
        if not self._stop_requested:
            logger.warning("stop requested: finishing current steps, no new devices will start")
        self._stop_requested = True

    async def run_all(self, devices: list[Device]) -> dict[str, FlashOutcome]:
        results: dict[str, FlashOutcome | None] = {d.id: None for d in devices}

        if self.parallel:
            await asyncio.gather(*(self._run_one(d, results) for d in devices))
        else:
            for device in devices:
                await self._run_one(device, results)

        return {device_id: outcome for device_id, outcome in results.items() if outcome is not None}

    async def _run_one(self, device: Device, results: dict[str, FlashOutcome | None]) -> None:
        if self._stop_requested:
            results[device.id] = FlashOutcome.failed(
                device.id, device.codename, FlashStage.ABORTED, "stop requested before start",
            )
            return
        orchestrator = self._make_orchestrator(device, lambda: self._stop_requested)
        try:
            results[device.id] = await orchestrator.run(device)
        except Exception as e:
            logger.exception("unexpected error flashing %s", device)
            results[device.id] = FlashOutcome.failed(
                device.id, device.codename, FlashStage.INTERNAL, repr(e),
            )


def summarize(outcomes: dict[str, FlashOutcome]) -> tuple[list[FlashOutcome], list[FlashOutcome]]:
    """Split outcomes into (succeeded, failed)."""
    succeeded = [o for o in outcomes.values() if o.success]
    failed = [o for o in outcomes.values() if not o.success]
    return succeeded, failed

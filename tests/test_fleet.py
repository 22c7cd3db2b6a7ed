"""Tests for FleetRunner — per-device isolation, sequential mode and stop requests."""

from __future__ import annotations

import asyncio

from flasher.device.record import Device
from flasher.flash.fleet import FleetRunner, summarize
from flasher.flash.orchestrator import FlashOrchestrator
from flasher.models import (
    FlashOutcome,
    FlashStage,
    ImageValidationError,
    LockStatus,
    ToolName,
)


class FakeFactoryImage:
    def __init__(self, bad_codenames=()):
        self.bad_codenames = set(bad_codenames)

    def validate(self, codename):
        if codename in self.bad_codenames:
            raise ImageValidationError(f"image is not for {codename}", tool="image")

    async def flash_all(self, device, platform_tools_path):
        await asyncio.sleep(0)


class FakePlatformTools:
    def path(self):
        return "/tmp/platform-tools"


class FakeAdb:
    async def reboot_into_bootloader(self, device_id):
        pass

    async def kill_server(self):
        pass


class FakeFastboot:
    """Tracks lock state per device; lock commands take effect immediately."""

    def __init__(self):
        self.state: dict[str, LockStatus] = {}

    async def get_lock_status(self, device_id):
        await asyncio.sleep(0)
        return self.state.get(device_id, LockStatus.LOCKED)

    async def set_lock_status(self, device_id, wanted):
        self.state[device_id] = wanted

    async def reboot(self, device_id):
        pass


async def _no_sleep(delay: float) -> None:
    await asyncio.sleep(0)


def _factory(image=None, fastboot=None):
    image = image or FakeFactoryImage()
    fastboot = fastboot or FakeFastboot()

    def make(device, should_stop):
        return FlashOrchestrator(
            image, FakePlatformTools(), FakeAdb(), fastboot,
            validation_pause=0, retry_interval=0, sleep=_no_sleep, should_stop=should_stop,
        )

    return make


DEVICES = [
    Device(id="d1", codename="crosshatch", channel=ToolName.ADB),
    Device(id="d2", codename="sargo", channel=ToolName.FASTBOOT),
    Device(id="d3", codename="crosshatch", channel=ToolName.FASTBOOT),
]


class TestIsolation:
    async def test_one_failure_does_not_affect_others(self):
        runner = FleetRunner(_factory(FakeFactoryImage(bad_codenames={"sargo"})))
        outcomes = await runner.run_all(DEVICES)

        assert set(outcomes) == {"d1", "d2", "d3"}
        assert outcomes["d1"].success
        assert outcomes["d3"].success
        assert not outcomes["d2"].success
        assert outcomes["d2"].stage == FlashStage.VALIDATE

        succeeded, failed = summarize(outcomes)
        assert len(succeeded) == 2
        assert [o.device_id for o in failed] == ["d2"]

    async def test_devices_end_locked(self):
        fastboot = FakeFastboot()
        await FleetRunner(_factory(fastboot=fastboot)).run_all(DEVICES)
        assert fastboot.state == {d.id: LockStatus.LOCKED for d in DEVICES}

    async def test_unexpected_exception_contained(self):
        class ExplodingOrchestrator:
            async def run(self, device):
                raise RuntimeError("boom")

        good = _factory()

        def make(device, should_stop):
            if device.id == "d1":
                return ExplodingOrchestrator()
            return good(device, should_stop)

        outcomes = await FleetRunner(make).run_all(DEVICES)
        assert outcomes["d1"].stage == FlashStage.INTERNAL
        assert "boom" in outcomes["d1"].cause
        assert outcomes["d2"].success
        assert outcomes["d3"].success

    async def test_empty_fleet(self):
        assert await FleetRunner(_factory()).run_all([]) == {}


class TestSequential:
    async def test_runs_in_order(self):
        order: list[str] = []
        inner = _factory()

        class Recording:
            def __init__(self, device, should_stop):
                self.orchestrator = inner(device, should_stop)

            async def run(self, device):
                order.append(f"start {device.id}")
                outcome = await self.orchestrator.run(device)
                order.append(f"end {device.id}")
                return outcome

        outcomes = await FleetRunner(Recording, parallel=False).run_all(DEVICES)
        assert all(o.success for o in outcomes.values())
        assert order == ["start d1", "end d1", "start d2", "end d2", "start d3", "end d3"]


class TestStop:
    async def test_stop_before_start(self):
        runner = FleetRunner(_factory())
        runner.request_stop()
        outcomes = await runner.run_all(DEVICES)
        assert runner.stop_requested
        assert all(o.stage == FlashStage.ABORTED for o in outcomes.values())

    async def test_stop_during_sequential_run(self):
        runner: FleetRunner
        inner = _factory()

        class StopAfterFirst:
            def __init__(self, device, should_stop):
                self.orchestrator = inner(device, should_stop)

            async def run(self, device) -> FlashOutcome:
                outcome = await self.orchestrator.run(device)
                runner.request_stop()
                return outcome

        runner = FleetRunner(StopAfterFirst, parallel=False)
        outcomes = await runner.run_all(DEVICES)
        assert outcomes["d1"].success
        assert outcomes["d2"].stage == FlashStage.ABORTED
        assert outcomes["d3"].stage == FlashStage.ABORTED

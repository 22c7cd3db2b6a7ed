"""device-flasher — flash factory images onto attached Android devices."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import threading
from pathlib import Path

from flasher.config import FlasherConfig
from flasher.device.adb import AdbBackend
from flasher.device.discovery import DeviceDiscovery
from flasher.device.fastboot import FastbootBackend
from flasher.device.hooks import HookRegistry, default_registry
from flasher.device.record import Device
from flasher.flash.fleet import FleetRunner, summarize
from flasher.flash.orchestrator import FlashOrchestrator
from flasher.image.discovery import discover_images
from flasher.image.factory import FactoryImage
from flasher.lifecycle.cleanup import Cleanup
from flasher.lifecycle.platformtools import PlatformTools, tools_version_for_image
from flasher.lifecycle.udev import setup_udev_rules
from flasher.models import FlasherError, ImageDiscoveryError

logger = logging.getLogger("device-flasher")

INSTRUCTIONS = [
    "1. Connect to a wifi network and ensure that no SIM cards are installed",
    '2. Enable Developer Options on device (Settings -> About Phone -> tap "Build number" 7 times)',
    "3. Enable USB debugging on device (Settings -> System -> Advanced -> Developer Options) "
    'and allow the computer to debug (hit "OK" on the popup when USB is connected)',
    "4. Enable OEM Unlocking (in the same Developer Options menu)",
]


async def _wait_for_enter() -> None:
    """Wait for a line on stdin (or EOF).

    stdin is read on a daemon thread so a pending prompt never keeps the
    interpreter alive after Ctrl+C.
    """
    logger.info("Press ENTER to continue")
    loop = asyncio.get_running_loop()
    entered: asyncio.Future[None] = loop.create_future()

    def _resolve() -> None:
        if not entered.done():
            entered.set_result(None)

    def _read() -> None:
        try:
            sys.stdin.readline()
        except (OSError, ValueError) as e:
            logger.debug("error reading stdin: %s", e)
        finally:
            try:
                loop.call_soon_threadsafe(_resolve)
            except RuntimeError:
                # loop already closed
                pass

    threading.Thread(target=_read, name="device-flasher-stdin", daemon=True).start()
    await entered


def _prepare_factory_images(
    devices: list[Device],
    images: dict[str, Path],
    cleanup: Cleanup,
    host_os: str,
) -> tuple[dict[str, FactoryImage], list[Device]]:
    """Extract one image per codename and drop devices with no matching image.

    Extraction failures are fatal for the whole run.
    """
    factory_images: dict[str, FactoryImage] = {}
    flashable: list[Device] = []
    for device in devices:
        log = device.logger(logger)
        image_path = images.get(device.codename)
        if image_path is None:
            log.warning("no image discovered for device")
            continue

        factory_image = factory_images.get(device.codename)
        if factory_image is None:
            log.debug("creating temporary directory for extracting factory image for device")
            factory_image = FactoryImage(image_path, cleanup.temp_dir("factory"), host_os)
            factory_images[device.codename] = factory_image
        else:
            log.debug("re-using existing factory image")

        factory_image.extract()
        flashable.append(device)
    return factory_images, flashable


async def run(
    args: argparse.Namespace,
    cleanup: Cleanup,
    config: FlasherConfig | None = None,
    registry: HookRegistry | None = None,
) -> int:
    """Run the whole flashing session. Returns the process exit code.

    Setup problems raise FlasherError; device failures are reported and
    turned into a non-zero exit code.
    """
    config = config or FlasherConfig.from_user_config()
    registry = registry or default_registry()
    host_os = config.host_os

    path = Path(args.image)
    if not path.exists():
        raise ImageDiscoveryError(f"unable to find provided path {path}", tool="cli")
    if not args.parallel and path.is_dir():
        raise FlasherError("--image must be a file (not a directory) without --parallel", tool="cli")

    logger.debug("running image discovery")
    images = discover_images(path)

    if host_os == "linux":
        setup_udev_rules()

    logger.debug("setting up platform tools")
    version = tools_version_for_image(path, config.platform_tools_version)
    platform_tools = PlatformTools(
        version=version,
        host_os=host_os,
        cache_dir=config.cache_dir / version,
        destination=cleanup.temp_dir("platformtools"),
        base_uri=config.platform_tools_base_uri,
        timeout=config.download_timeout,
    )
    await platform_tools.initialize()

    logger.debug("setting up adb")
    adb = AdbBackend(platform_tools.path(), host_os)
    cleanup.adb = adb
    try:
        await adb.kill_server()
    except FlasherError as e:
        logger.debug("failed to kill adb server: %s", e)
    await adb.start_server()

    logger.debug("setting up fastboot")
    fastboot = FastbootBackend(platform_tools.path(), host_os)

    for line in INSTRUCTIONS:
        logger.info(line)
    await _wait_for_enter()

    identities = await DeviceDiscovery(adb, fastboot).discover_devices()
    devices = [registry.build_device(identity) for identity in identities.values()]
    logger.info("Discovered the following device(s):")
    for device in devices:
        logger.info("  %s (%s)", device, device.channel.value)

    factory_images, flashable = _prepare_factory_images(devices, images, cleanup, host_os)
    if not flashable:
        raise FlasherError("there are no flashable devices", tool="cli")
    if not args.parallel and len(flashable) > 1:
        raise FlasherError("discovered multiple devices and --parallel flag is not enabled", tool="cli")

    logger.info("Flashing the following device(s):")
    for device in flashable:
        logger.info("  %s image=%s", device, factory_images[device.codename].image_path)
    await _wait_for_enter()

    def make_orchestrator(device: Device, should_stop) -> FlashOrchestrator:
        return FlashOrchestrator.from_config(
            config, factory_images[device.codename], platform_tools, adb, fastboot,
            should_stop=should_stop,
        )

    runner = FleetRunner(make_orchestrator, parallel=args.parallel)
    loop = asyncio.get_running_loop()
    handled: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.request_stop)
            handled.append(sig)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            break
    try:
        outcomes = await runner.run_all(flashable)
    finally:
        for sig in handled:
            loop.remove_signal_handler(sig)

    succeeded, failed = summarize(outcomes)
    for outcome in succeeded:
        logger.info("✓ id=%s codename=%s flashed", outcome.device_id, outcome.codename)
    for outcome in failed:
        logger.error(
            "✗ id=%s codename=%s failed at %s: %s",
            outcome.device_id, outcome.codename, outcome.stage.value, outcome.cause,
        )
    return 1 if failed else 0


async def _main(args: argparse.Namespace) -> int:
    config = FlasherConfig.from_user_config()
    cleanup = Cleanup(config.host_os)
    try:
        return await run(args, cleanup, config=config)
    except FlasherError as e:
        logger.error("%s", e)
        return 1
    finally:
        await cleanup.run()


def cli(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="device-flasher",
        description="Flash factory images onto Android devices over adb/fastboot",
    )
    parser.add_argument("--image", required=True, help="Factory image file (or directory with --parallel)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--parallel", action="store_true", default=False,
        help="Flash multiple devices at once",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        code = asyncio.run(_main(args))
    except KeyboardInterrupt:
        print("\r- Ctrl+C pressed in Terminal")
        code = 1
    sys.exit(code)

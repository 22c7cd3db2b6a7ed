"""udev rules so non-root users can reach Google and Xiaomi devices over USB (linux)."""

from __future__ import annotations

import logging
import subprocess
import tempfile
from pathlib import Path

from flasher.models import UdevSetupError

logger = logging.getLogger("device-flasher.udev")

RULES_PATH = Path("/etc/udev/rules.d")
RULES_FILE = "98-device-flasher.rules"

# (vendor name, USB idVendor)
DEFAULT_UDEV_RULES = [
    ("Google", "18d1"),
    ("Xiaomi", "2717"),
]


def render_rules(rules: list[tuple[str, str]] = DEFAULT_UDEV_RULES) -> str:
    lines = []
    for name, vendor_id in rules:
        lines.append(f"# {name}")
        lines.append(f'SUBSYSTEM=="usb", ATTR{{idVendor}}=="{vendor_id}", GROUP="sudo"')
    return "\n".join(lines) + "\n"


def _sudo(*args: str) -> None:
    """Run a command with sudo. Raises UdevSetupError on failure."""
    cmd = ["sudo", *args]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=120)
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        raise UdevSetupError(f"failed to run {' '.join(cmd)}: {e}", tool="udev") from e
    if result.returncode != 0:
        output = (result.stdout + result.stderr).strip()
        raise UdevSetupError(
            f"failed to run {' '.join(cmd)}: exit {result.returncode} output={output}",
            tool="udev",
        )


def setup_udev_rules(
    rules: list[tuple[str, str]] = DEFAULT_UDEV_RULES,
    rules_path: Path = RULES_PATH,
) -> bool:
    """Install the rules file if missing. Returns True when it was installed."""
    target = rules_path / RULES_FILE
    if target.exists():
        logger.debug("udev rules already present at %s", target)
        return False

    logger.info("setting up udev - this will require elevated privileges and may prompt for password")
    logger.info("udev: creating %s", rules_path)
    _sudo("mkdir", "-p", str(rules_path))

    content = render_rules(rules)
    logger.debug("udev: rules=%s", content)
    with tempfile.TemporaryDirectory() as tmp:
        staged = Path(tmp) / RULES_FILE
        staged.write_text(content)
        staged.chmod(0o644)
        logger.info("udev: writing rules to %s", target)
        _sudo("cp", str(staged), str(target))

    logger.info("udev: reloading rules with udevadm")
    _sudo("udevadm", "control", "--reload-rules")
    _sudo("udevadm", "trigger")
    return True


def remove_udev_rules(rules_path: Path = RULES_PATH) -> None:
    """Remove the installed rules file. Failures are logged, not raised."""
    target = rules_path / RULES_FILE
    if not target.exists():
        return
    try:
        _sudo("rm", str(target))
    except UdevSetupError as e:
        logger.warning("cleanup error removing %s: %s", target, e)

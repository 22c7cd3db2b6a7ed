"""Factory image discovery — map codenames to image archives on disk."""

from __future__ import annotations

import logging
from pathlib import Path

from flasher.models import ImageDiscoveryError

logger = logging.getLogger("device-flasher.image-discovery")

# Xiaomi's Oreo image for jasmine predates the `<codename>-factory-...` naming.
JASMINE_OREO = "jasmine_global_images_V9.6.17.0.ODIMIFE_20181108.0000.00_8.1_1c60295d1c.tgz"
JASMINE_OREO_CODENAME = "jasmine_sprout"


def is_factory_image_name(name: str) -> bool:
    return name == JASMINE_OREO or "factory" in name


def codename_from_name(name: str) -> str:
    """e.g. 'crosshatch-factory-rq3a.211001.001.zip' -> 'crosshatch'."""
    if name == JASMINE_OREO:
        return JASMINE_OREO_CODENAME
    codename = name.split("-", 1)[0]
    if not codename:
        raise ImageDiscoveryError(f"unable to parse codename from {name}", tool="image")
    return codename


def discover_images(path: Path | str) -> dict[str, Path]:
    """Find factory images at ``path`` (a single archive or a directory of them).

    Raises ImageDiscoveryError when the path is unusable, a codename has more
    than one image, or nothing is found.
    """
    path = Path(path)
    if not path.exists():
        raise ImageDiscoveryError(f"unable to find provided path {path}", tool="image")

    images: dict[str, Path] = {}
    if path.is_dir():
        for entry in sorted(path.iterdir()):
            if entry.is_dir() or not is_factory_image_name(entry.name):
                logger.debug("skipping %s: not a factory image", entry.name)
                continue
            try:
                codename = codename_from_name(entry.name)
            except ImageDiscoveryError as e:
                logger.debug("skipping %s: %s", entry.name, e)
                continue
            if codename in images:
                raise ImageDiscoveryError(
                    f"duplicate factory image ({images[codename]}) for codename={codename} found: {path}",
                    tool="image",
                )
            images[codename] = entry
    else:
        if not is_factory_image_name(path.name):
            raise ImageDiscoveryError(f"missing factory in filename: {path.name}", tool="image")
        images[codename_from_name(path.name)] = path

    if not images:
        raise ImageDiscoveryError(f"no factory images found in {path}", tool="image")

    for codename, image in images.items():
        logger.debug("discovered image codename=%s path=%s", codename, image)
    return images

"""Zip a finished build for distribution."""

from __future__ import annotations

import logging
import os
import tempfile
import time
import zipfile
from pathlib import Path

logger = logging.getLogger(__name__)


def archive_name(target_dir: Path, *, millis: int | None = None) -> str:
    stamp = millis if millis is not None else int(time.time() * 1000)
    return f"built_{Path(target_dir).name}_{stamp}.zip"


def zip_directory(target_dir: Path, archive_dir: Path | None = None) -> Path:
    """Write ``target_dir`` into a timestamped zip rooted at its directory name.

    Entries are written in sorted order so identical trees produce identical listings.
    """
    target_dir = Path(target_dir).resolve()
    destination_dir = Path(archive_dir) if archive_dir is not None else Path(tempfile.gettempdir())
    destination_dir = destination_dir.resolve()
    if destination_dir == target_dir or target_dir in destination_dir.parents:
        raise ValueError(f"Archive directory {destination_dir} lies inside the build target.")
    destination_dir.mkdir(parents=True, exist_ok=True)
    destination = destination_dir / archive_name(target_dir)

    root_name = target_dir.name
    with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for dirpath, dirnames, filenames in os.walk(target_dir):
            dirnames.sort()
            current = Path(dirpath)
            relative_dir = current.relative_to(target_dir)
            if not filenames and not dirnames:
                archive.writestr(f"{(Path(root_name) / relative_dir).as_posix()}/", "")
            for filename in sorted(filenames):
                path = current / filename
                arcname = (Path(root_name) / relative_dir / filename).as_posix()
                archive.write(path, arcname)

    logger.info("Archived %s to %s", target_dir, destination)
    return destination

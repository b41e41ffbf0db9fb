"""Lifecycle of the disposable build target directory."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

SENTINEL_FILENAME = ".protostar-project-built"
SENTINEL_TEXT = (
    "This directory is created by building a Protostar prototype so can be overwritten by protostar."
)
LAYOUT_DIRS = ("ps", "ps/ext", "ps/assets", "ps/nm")


def prepare_target_directory(target_dir: Path, *, project_dir: Path | None = None) -> Path:
    """Create or empty ``target_dir`` and stamp the sentinel marker.

    An existing directory is only emptied when it already carries the sentinel, so
    directories this tool did not create are never touched.
    """
    target_dir = Path(target_dir).resolve()
    if project_dir is not None:
        _check_not_project(target_dir, Path(project_dir).resolve())

    if target_dir.exists():
        if not target_dir.is_dir():
            raise ConfigurationError("Build target exists and is not a directory", path=target_dir)
        sentinel = target_dir / SENTINEL_FILENAME
        if not sentinel.is_file():
            raise ConfigurationError(
                f"Refusing to overwrite {target_dir}: it lacks the {SENTINEL_FILENAME} marker",
                path=target_dir,
            )
        logger.info("Emptying previous build at %s", target_dir)
        empty_directory(target_dir)
    else:
        target_dir.mkdir(parents=True)

    (target_dir / SENTINEL_FILENAME).write_text(SENTINEL_TEXT, encoding="utf-8")
    return target_dir


def empty_directory(path: Path) -> None:
    """Remove every entry below ``path`` while keeping the directory itself."""
    for item in path.iterdir():
        _delete_path(item)


def ensure_layout(target_dir: Path) -> list[Path]:
    created = []
    for relative in LAYOUT_DIRS:
        directory = target_dir / relative
        directory.mkdir(parents=True, exist_ok=True)
        created.append(directory)
    return created


def _check_not_project(target_dir: Path, project_dir: Path) -> None:
    if target_dir == project_dir:
        raise ConfigurationError("Build target must not be the project directory", path=target_dir)
    try:
        project_dir.relative_to(target_dir)
    except ValueError:
        return
    raise ConfigurationError("Build target must not contain the project directory", path=target_dir)


def _delete_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink(missing_ok=True)

from __future__ import annotations

from pathlib import Path

import pytest

from protostar.errors import ConfigurationError
from protostar.target import SENTINEL_FILENAME, ensure_layout, prepare_target_directory


def test_new_target_is_created_with_sentinel(tmp_path: Path) -> None:
    target = prepare_target_directory(tmp_path / "out")

    assert target.is_dir()
    assert (target / SENTINEL_FILENAME).is_file()


def test_existing_target_without_sentinel_is_left_untouched(tmp_path: Path) -> None:
    target = tmp_path / "precious"
    target.mkdir()
    (target / "notes.txt").write_text("keep me", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        prepare_target_directory(target)

    assert (target / "notes.txt").read_text(encoding="utf-8") == "keep me"
    assert not (target / SENTINEL_FILENAME).exists()


def test_existing_build_is_emptied(tmp_path: Path) -> None:
    target = prepare_target_directory(tmp_path / "out")
    (target / "stale").mkdir()
    (target / "stale" / "old.html").write_text("old", encoding="utf-8")
    (target / "index.html").write_text("old", encoding="utf-8")

    prepare_target_directory(target)

    assert sorted(path.name for path in target.iterdir()) == [SENTINEL_FILENAME]


def test_target_must_be_a_directory_outside_the_project(tmp_path: Path) -> None:
    project = tmp_path / "proj"
    project.mkdir()
    file_target = tmp_path / "file"
    file_target.write_text("x", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        prepare_target_directory(file_target)
    with pytest.raises(ConfigurationError):
        prepare_target_directory(project, project_dir=project)
    with pytest.raises(ConfigurationError):
        prepare_target_directory(tmp_path, project_dir=project)


def test_ensure_layout_creates_reserved_directories(tmp_path: Path) -> None:
    ensure_layout(tmp_path)

    for relative in ("ps", "ps/ext", "ps/assets", "ps/nm"):
        assert (tmp_path / relative).is_dir()

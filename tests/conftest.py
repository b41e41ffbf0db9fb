from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import Any, Callable, Mapping

import pytest

from protostar.css.engines import CompiledCss


class RecordingEngine:
    """Deterministic stand-in for the LESS/Sass engines that records every call."""

    def __init__(
        self,
        suffixes: tuple[str, ...] = (".less", ".scss", ".sass"),
        *,
        delay: float = 0.0,
        dependencies: Mapping[Path, list[Path]] | None = None,
    ) -> None:
        self.suffixes = suffixes
        self.delay = delay
        self.dependencies = dict(dependencies or {})
        self.calls: list[tuple[Path, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def compile(self, source: Path, base_path: Path, options: Mapping[str, Any]) -> CompiledCss:
        with self._lock:
            self.calls.append((Path(source), dict(options)))
        if self.delay:
            time.sleep(self.delay)
        css = source.read_text(encoding="utf-8")
        for name, value in (options.get("global_vars") or {}).items():
            css = f"/* {name}={value} */\n{css}"
        deps = [str(path) for path in self.dependencies.get(Path(source), [])]
        return CompiledCss(css=css, source_map=json.dumps({"version": 3, "sources": [source.name]}), dependencies=deps)


@pytest.fixture
def recording_engine() -> RecordingEngine:
    return RecordingEngine()


def write_file(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def make_project(tmp_path: Path) -> Callable[..., Path]:
    """Create a project tree under ``tmp_path/proj`` with an optional prototype.json."""

    def factory(files: Mapping[str, str], config: Mapping[str, Any] | None = None) -> Path:
        project = tmp_path / "proj"
        project.mkdir(exist_ok=True)
        for relative, content in files.items():
            write_file(project / relative, content)
        if config is not None:
            (project / "prototype.json").write_text(json.dumps(config, indent="\t"), encoding="utf-8")
        return project

    return factory

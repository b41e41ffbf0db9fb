import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from protostar.reporting import BuildReport, DependencyStats, PageStats, write_report


def _report(target: Path) -> BuildReport:
    return BuildReport(
        project="/work/proj",
        target=str(target),
        generated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        duration_seconds=0.5,
        pages=PageStats(compiled=2, passthrough=1, excluded=3),
        dependencies=DependencyStats(scripts=2, links=1, images=0, copied=3, compiled_stylesheets=1),
        themes=["theme.less-red.css"],
        copied_sources=["/work/proj/node_modules/jquery"],
    )


def test_write_report_writes_json(tmp_path: Path) -> None:
    report = _report(tmp_path / "out")

    path = write_report(report, tmp_path / "reports" / "build.json")

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["pages"]["compiled"] == 2
    assert data["dependencies"]["compiled_stylesheets"] == 1
    assert data["themes"] == ["theme.less-red.css"]
    assert data["archive"] is None
    assert data["generated_at"].startswith("2024-01-01T00:00:00")


def test_write_report_refuses_target_directory(tmp_path: Path) -> None:
    target = tmp_path / "out"
    target.mkdir()

    with pytest.raises(ValueError):
        write_report(_report(target), target / "report.json")

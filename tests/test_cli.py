from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from protostar.cli import app
from protostar.target import SENTINEL_FILENAME


def _project(tmp_path: Path, page: str) -> Path:
    project = tmp_path / "proj"
    (project / "js").mkdir(parents=True)
    (project / "js" / "app.js").write_text("console.log('ok');", encoding="utf-8")
    (project / "index.html").write_text(page, encoding="utf-8")
    (project / "prototype.json").write_text(json.dumps({"targetDir": "public"}), encoding="utf-8")
    return project


def test_build_and_verify_round_trip(tmp_path: Path) -> None:
    runner = CliRunner()
    project = _project(tmp_path, '<html><body><script src="/js/app.js"></script></body></html>')
    report_path = tmp_path / "report.json"

    result = runner.invoke(app, ["build", "--config", str(project), "--report", str(report_path)])
    assert result.exit_code == 0, result.output
    assert "Build complete" in result.output

    target = project / "public"
    assert (target / SENTINEL_FILENAME).exists()
    assert (target / "js" / "app.js").exists()
    assert 'src="js/app.js"' in (target / "index.html").read_text(encoding="utf-8")
    data = json.loads(report_path.read_text(encoding="utf-8"))
    assert data["pages"]["compiled"] == 1

    verified = runner.invoke(app, ["verify", "--config", str(project)])
    assert verified.exit_code == 0, verified.output
    assert "no issues found" in verified.output


def test_build_target_override_is_relative_to_project(tmp_path: Path) -> None:
    runner = CliRunner()
    project = _project(tmp_path, "<p>home</p>")

    result = runner.invoke(app, ["build", "-c", str(project / "prototype.json"), "-t", "elsewhere"])

    assert result.exit_code == 0, result.output
    assert (project / "elsewhere" / "index.html").exists()
    assert not (project / "public").exists()


def test_build_failure_exits_non_zero(tmp_path: Path) -> None:
    runner = CliRunner()
    project = _project(tmp_path, '<script src="/ps/nm/missing/missing.js"></script>')

    result = runner.invoke(app, ["build", "--config", str(project)])

    assert result.exit_code == 1
    assert "Build failed" in result.output
    assert "resolve-dependencies" in result.output


def test_build_refuses_unmarked_target(tmp_path: Path) -> None:
    runner = CliRunner()
    project = _project(tmp_path, "<p>home</p>")
    (project / "public").mkdir()
    (project / "public" / "mine.txt").write_text("mine", encoding="utf-8")

    result = runner.invoke(app, ["build", "--config", str(project)])

    assert result.exit_code == 1
    assert (project / "public" / "mine.txt").exists()


def test_verify_reports_broken_references(tmp_path: Path) -> None:
    runner = CliRunner()
    project = _project(tmp_path, "<p>home</p>")
    target = project / "public"
    target.mkdir()
    (target / "index.html").write_text('<img src="images/missing.png">', encoding="utf-8")

    result = runner.invoke(app, ["verify", "--config", str(project)])

    assert result.exit_code == 1
    assert "missing-asset" in result.output


def test_verify_requires_existing_target(tmp_path: Path) -> None:
    runner = CliRunner()
    project = _project(tmp_path, "<p>home</p>")

    result = runner.invoke(app, ["verify", "--config", str(project)])

    assert result.exit_code == 1
    assert "Build directory not found" in result.output

"""Build reporting helpers."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field


class PageStats(BaseModel):
    compiled: int
    passthrough: int
    excluded: int


class DependencyStats(BaseModel):
    scripts: int
    links: int
    images: int
    copied: int
    compiled_stylesheets: int


class BuildReport(BaseModel):
    project: str
    target: str
    generated_at: datetime
    duration_seconds: float
    pages: PageStats
    dependencies: DependencyStats
    themes: list[str] = Field(default_factory=list)
    archive: str | None = None
    copied_sources: list[str] = Field(default_factory=list)


def write_report(report: BuildReport, destination: Path) -> Path:
    """Serialize the report as JSON, refusing to place it inside the build target."""
    destination = Path(destination)
    target = Path(report.target)
    try:
        destination.resolve().relative_to(target.resolve())
    except ValueError:
        pass
    else:
        raise ValueError(f"Report path {destination} lies inside the build target {target}.")
    destination.parent.mkdir(parents=True, exist_ok=True)
    payload = report.model_dump(mode="json")
    destination.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return destination

"""CLI entrypoints for the Protostar build pipeline."""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from .builder import BuildResult, build_project
from .config import CONFIG_FILENAME, ProjectConfig, load_config
from .errors import BuildError, CssCompilationError
from .reporting import write_report
from .verify import VerificationReport, verify_build

console = Console()
app = typer.Typer(help="Protostar prototype build toolkit.")

ConfigPathOption = Annotated[
    str,
    typer.Option("--config", "-c", help=f"Path to {CONFIG_FILENAME} or to the project directory."),
]
TargetDirOption = Annotated[
    str | None,
    typer.Option("--target-dir", "-t", help="Override the configured build target directory."),
]


@app.command()
def build(
    config_path: ConfigPathOption = ".",
    target_dir: TargetDirOption = None,
    zip_archive: Annotated[
        bool,
        typer.Option("--zip", help="Also write the build as a timestamped zip archive."),
    ] = False,
    archive_dir: Annotated[
        str | None,
        typer.Option("--archive-dir", help="Directory for the zip archive (defaults to the temp directory)."),
    ] = None,
    report_path: Annotated[
        str | None,
        typer.Option("--report", "-r", help="Optional path (outside the target) for a JSON build report."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log pipeline phases while building."),
    ] = False,
) -> None:
    """Compile every page and copy its dependencies into the target directory."""
    _configure_logging(verbose)
    config = _load(config_path)
    target = _resolve_target(config, target_dir)

    console.print(f"[bold blue]Building[/]: {_display_path(config.project_dir)} -> {_display_path(target)}")
    try:
        result = build_project(
            config,
            target_dir=target,
            zip_archive=zip_archive,
            archive_dir=Path(archive_dir) if archive_dir else None,
        )
    except BuildError as exc:
        _print_build_failure(exc)
        raise typer.Exit(code=1) from exc

    _print_build_summary(result)

    if report_path and result.report is not None:
        try:
            written = write_report(result.report, Path(report_path))
        except (OSError, ValueError) as exc:
            console.print(f"[bold red]Failed to write report[/]: {exc}")
            raise typer.Exit(code=1) from exc
        console.print(f"[bold green]Report written[/]: {_display_path(written)}")


@app.command()
def verify(
    config_path: ConfigPathOption = ".",
    target_dir: TargetDirOption = None,
) -> None:
    """Scan a built target for references that will not open without a web server."""
    config = _load(config_path)
    target = _resolve_target(config, target_dir)

    if not target.exists():
        console.print(f"[bold red]Build directory not found[/]: {_display_path(target)}")
        raise typer.Exit(code=1)

    console.print(f"[bold blue]Verifying[/]: scanning HTML files under {_display_path(target)}")
    report = verify_build(target)
    _print_verification_report(report)
    raise typer.Exit(code=1 if report.error_count > 0 else 0)


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _resolve_target(config: ProjectConfig, override: str | None) -> Path:
    if override is None:
        return config.target_dir
    candidate = Path(override)
    return candidate if candidate.is_absolute() else (config.project_dir / candidate).resolve()


def _print_build_failure(exc: BuildError) -> None:
    phase = exc.phase or "build"
    console.print(f"[bold red]Build failed[/] during [bold]{phase}[/]: {exc.message}")
    if exc.path is not None:
        location = _display_path(exc.path)
        if isinstance(exc, CssCompilationError) and exc.location():
            location = f"{location}:{exc.location()}"
        console.print(f"  at {location}")


def _print_build_summary(result: BuildResult) -> None:
    report = result.report
    assert report is not None
    console.print(
        "[bold green]Build complete[/]: "
        f"{report.pages.compiled} page(s) compiled, "
        f"{report.pages.passthrough} passed through, "
        f"{report.pages.excluded} excluded."
    )
    deps = report.dependencies
    console.print(
        "[bold cyan]Dependencies[/]: "
        f"{deps.scripts} script(s), {deps.links} link(s), {deps.images} image(s); "
        f"{deps.copied} source(s) copied, {deps.compiled_stylesheets} stylesheet(s) compiled."
    )
    if report.themes:
        console.print(f"[bold cyan]Themes[/]: {', '.join(report.themes)}")
    if result.archive is not None:
        console.print(f"[bold green]Archive[/]: {_display_path(result.archive)}")
    console.print(f"[bold]Duration[/]: {report.duration_seconds:.2f}s")


def _print_verification_report(report: VerificationReport) -> None:
    if not report.issues:
        console.print(
            "[bold green]Verification complete[/]: "
            f"{report.scanned_files} HTML file(s) scanned; no issues found."
        )
        return

    console.print(
        "[bold red]Verification issues[/]: "
        f"{len(report.issues)} issue(s) detected across {report.scanned_files} file(s)."
    )
    for issue in report.issues:
        color = "yellow" if issue.kind == "warning" else "red"
        console.print(
            f"[bold {color}]{issue.kind}[/] "
            f"{_display_path(issue.source)} -> {issue.target} :: {issue.message}"
        )


def _display_path(path: Path) -> str:
    try:
        return path.relative_to(Path.cwd()).as_posix()
    except ValueError:
        return path.as_posix()


def _load(path: str) -> ProjectConfig:
    try:
        return load_config(path)
    except FileNotFoundError as exc:
        raise typer.BadParameter(f"Config file not found: {path}") from exc
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


if __name__ == "__main__":  # pragma: no cover
    app()
